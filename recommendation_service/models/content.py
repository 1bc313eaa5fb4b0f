"""
Content catalog data models.
"""

import hashlib
import json
from datetime import datetime
from typing import List, Optional

import numpy as np
from pydantic import BaseModel, Field, field_validator

from .common import ensure_utc, utc_now


class ContentItem(BaseModel):
    """Catalog entry as supplied by the catalog feed."""
    content_id: str = Field(min_length=1, description="Catalog identifier")
    title: str = Field(default="", description="Content title")
    body: str = Field(default="", description="Content body text, may contain HTML")
    categories: List[str] = Field(default_factory=list, description="Category names, primary first")
    tags: List[str] = Field(default_factory=list, description="Free-form tags")
    published_at: datetime = Field(default_factory=utc_now, description="Publication time (UTC)")
    updated_at: datetime = Field(default_factory=utc_now, description="Last edit time (UTC)")

    @field_validator("published_at", "updated_at")
    @classmethod
    def _normalize_timestamp(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    @property
    def primary_category(self) -> Optional[str]:
        for category in self.categories:
            if category and category.strip():
                return category.strip().lower()
        return None

    def analyzable_fingerprint(self) -> str:
        """Hash of every field the feature extractor reads."""
        payload = json.dumps(
            {
                "title": self.title,
                "body": self.body,
                "categories": self.categories,
                "tags": self.tags,
            },
            ensure_ascii=False,
            sort_keys=True,
        )
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()


class ContentVector(BaseModel):
    """Fixed-length feature vector owned by a ContentItem."""
    content_id: str = Field(description="Owning content item")
    values: List[float] = Field(description="L2-normalized feature values")
    scheme_version: str = Field(description="Extraction scheme that produced the values")
    dimension: int = Field(description="Length of values")
    source_fingerprint: str = Field(default="", description="Fingerprint of the analyzed content")
    generated_at: datetime = Field(default_factory=utc_now, description="Extraction time (UTC)")

    @property
    def is_zero(self) -> bool:
        return not any(self.values)

    def as_array(self) -> np.ndarray:
        return np.asarray(self.values, dtype=float)
