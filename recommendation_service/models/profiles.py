"""
User profile data model.
"""

from datetime import datetime
from typing import Dict, List, Optional

import numpy as np
from pydantic import BaseModel, Field

from .common import utc_now


class UserProfile(BaseModel):
    """Decayed, weighted aggregate of a user's interacted content vectors.

    ``weighted_sum`` and ``category_weights`` are referenced to ``watermark``:
    an event at the watermark contributes its full weight. ``vector`` is the
    L2-normalized ``weighted_sum``.
    """
    user_id: str = Field(description="Profile owner")
    vector: List[float] = Field(description="Unit-length preference vector, or zeros")
    weighted_sum: List[float] = Field(description="Unnormalized decayed sum of content vectors")
    total_weight: float = Field(default=0.0, description="Decayed sum of event weights")
    category_weights: Dict[str, float] = Field(default_factory=dict, description="Decayed weight per category")
    scheme_version: str = Field(description="Extraction scheme of the folded vectors")
    dimension: int = Field(description="Vector dimensionality")
    watermark: Optional[datetime] = Field(default=None, description="Timestamp of the newest folded event")
    event_count: int = Field(default=0, description="Number of events folded into the profile")
    log_position: Optional[int] = Field(
        default=None, description="Interaction log bytes consumed so far; None for profiles that predate it"
    )
    updated_at: datetime = Field(default_factory=utc_now, description="Last recomputation time (UTC)")

    @property
    def is_zero(self) -> bool:
        return not any(self.vector)

    def as_array(self) -> np.ndarray:
        return np.asarray(self.vector, dtype=float)

    def category_distribution(self) -> Dict[str, float]:
        total = sum(w for w in self.category_weights.values() if w > 0)
        if total <= 0:
            return {}
        return {name: w / total for name, w in self.category_weights.items() if w > 0}
