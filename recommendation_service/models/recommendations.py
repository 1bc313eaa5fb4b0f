"""
Recommendation output and batch job data models.
"""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional
from uuid import uuid4

from pydantic import BaseModel, Field

from .common import utc_now
from .interactions import RecommendationSource


class RecommendedItem(BaseModel):
    """One ranked entry in a recommendation list."""
    content_id: str = Field(description="Recommended content")
    score: float = Field(description="Similarity or popularity score")
    rank: int = Field(ge=1, description="1-based position in the list")
    category: Optional[str] = Field(default=None, description="Primary category of the content")
    reason: str = Field(default="", description="Short human-readable explanation")


class RecommendationList(BaseModel):
    """Ranked list persisted with provenance so impressions can be attributed."""
    recommendation_id: str = Field(default_factory=lambda: uuid4().hex, description="List identifier")
    user_id: Optional[str] = Field(default=None, description="Target user, if personalized or per-user")
    source: RecommendationSource = Field(description="Generation path")
    k: int = Field(description="Requested list length")
    items: List[RecommendedItem] = Field(default_factory=list, description="Ranked items, may be shorter than k")
    scheme_version: str = Field(default="", description="Extraction scheme of the scored vectors")
    generated_at: datetime = Field(default_factory=utc_now, description="Generation time (UTC)")

    @property
    def content_ids(self) -> List[str]:
        return [item.content_id for item in self.items]


class JobStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


class RecommendationBatchJob(BaseModel):
    """One chunk of a batch recommendation run."""
    job_id: str = Field(default_factory=lambda: uuid4().hex, description="Chunk job identifier")
    batch_id: str = Field(description="Identifier shared by all chunks of one submission")
    chunk_index: int = Field(description="0-based chunk position within the batch")
    user_ids: List[str] = Field(description="Ordered users in this chunk")
    k: int = Field(description="Requested list length")
    status: JobStatus = Field(default=JobStatus.QUEUED, description="Job status")
    attempts: int = Field(default=0, description="Number of executions started")
    failure_count: int = Field(default=0, description="Users that failed in the last execution")
    failures: Dict[str, str] = Field(default_factory=dict, description="Per-user error messages")
    completed_users: int = Field(default=0, description="Users processed successfully in the last execution")
    error: Optional[str] = Field(default=None, description="Chunk-level error, if the chunk itself raised")
    created_at: datetime = Field(default_factory=utc_now, description="Submission time (UTC)")
    started_at: Optional[datetime] = Field(default=None, description="Start of the last execution")
    finished_at: Optional[datetime] = Field(default=None, description="End of the last execution")
