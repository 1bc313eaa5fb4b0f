"""
Deterministic feature extraction for catalog content.

Text is tokenized and hashed into a fixed number of buckets (the hashing
trick), weighted with sublinear term frequency, and blended with a per-category
indicator block. The final vector has unit L2 norm so downstream cosine
comparisons are scale-invariant; degenerate content yields a zero vector.
"""

from __future__ import annotations

import hashlib
import json
import logging
import math
import re
import threading
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from ..config import FeatureConfig
from ..errors import ExtractionError
from ..models import ContentItem, ContentVector, utc_now

_LOG = logging.getLogger(__name__)

# Bump when the algorithm changes in a way the parameters do not capture.
SCHEME_REVISION = 1

_HTML_TAG_RE = re.compile(r"<[^>]+>")
_URL_RE = re.compile(r"(?:https?://|www\.)\S+")
_EMAIL_RE = re.compile(r"\S+@\S+\.\S+")
_SPLIT_RE = re.compile(r"[\W_]+", re.UNICODE)

STOP_WORDS = frozenset(
    """
    a about above after again against all also am an and any are as at be because been before
    being below between both but by can could did do does doing down during each few for from
    further had has have having he her here hers herself him himself his how i if in into is it
    its itself just me more most my myself no nor not now of off on once only or other our ours
    ourselves out over own same she should so some such than that the their theirs them
    themselves then there these they this those through to too under until up very was we were
    what when where which while who whom why will with would you your yours yourself yourselves
    """.split()
)


@dataclass(slots=True)
class ExtractionResult:
    """Outcome of a catalog-wide extraction batch."""

    vectors: List[ContentVector] = field(default_factory=list)
    skipped: int = 0
    failures: int = 0
    failed_ids: List[str] = field(default_factory=list)
    cancelled: bool = False

    def __iter__(self) -> Iterator[Tuple[str, ContentVector]]:
        for vector in self.vectors:
            yield vector.content_id, vector

    def summary(self) -> Dict[str, int]:
        return {
            "extracted": len(self.vectors),
            "skipped": self.skipped,
            "failures": self.failures,
        }


class FeatureExtractor:
    """Maps content items to fixed-dimension, unit-length feature vectors."""

    def __init__(self, config: FeatureConfig):
        self.config = config
        self.text_dimensions = config.text_dimensions
        self.category_dimensions = config.category_dimensions
        self.dimension = config.text_dimensions + config.category_dimensions
        self.scheme_version = self._compute_scheme_version(config)

    @staticmethod
    def _compute_scheme_version(config: FeatureConfig) -> str:
        params = {
            "revision": SCHEME_REVISION,
            "text_dimensions": config.text_dimensions,
            "category_dimensions": config.category_dimensions,
            "category_blend": config.category_blend,
            "title_weight": config.title_weight,
            "tag_weight": config.tag_weight,
            "use_bigrams": config.use_bigrams,
            "min_tokens": config.min_tokens,
            "min_token_length": config.min_token_length,
        }
        digest = hashlib.sha1(json.dumps(params, sort_keys=True).encode("utf-8")).hexdigest()
        return f"v{SCHEME_REVISION}-{digest[:12]}"

    # Public API ---------------------------------------------------------------

    def extract(self, content: ContentItem) -> ContentVector:
        """Extract the feature vector for one content item."""
        try:
            values = self._vectorize(content)
        except Exception as exc:
            raise ExtractionError(f"Failed to extract features for {content.content_id}: {exc}") from exc
        return ContentVector(
            content_id=content.content_id,
            values=[float(v) for v in values],
            scheme_version=self.scheme_version,
            dimension=self.dimension,
            source_fingerprint=content.analyzable_fingerprint(),
            generated_at=utc_now(),
        )

    def is_fresh(self, vector: Optional[ContentVector], content: ContentItem) -> bool:
        """True when the stored vector matches this scheme and the current content text."""
        return (
            vector is not None
            and vector.scheme_version == self.scheme_version
            and vector.dimension == self.dimension
            and vector.source_fingerprint == content.analyzable_fingerprint()
        )

    def extract_all(
        self,
        items: Iterable[ContentItem],
        existing: Optional[Mapping[str, ContentVector]] = None,
        force: bool = False,
        cancel_event: Optional[threading.Event] = None,
    ) -> ExtractionResult:
        """(Re)populate vectors for a set of content items.

        Items whose existing vector is already fresh are skipped unless
        ``force`` is set. Failures are logged and tallied, never raised.
        """
        existing = existing or {}
        result = ExtractionResult()
        for item in items:
            if cancel_event is not None and cancel_event.is_set():
                _LOG.info("Extraction cancelled after %d vectors", len(result.vectors))
                result.cancelled = True
                break
            if not force and self.is_fresh(existing.get(item.content_id), item):
                result.skipped += 1
                continue
            try:
                result.vectors.append(self.extract(item))
            except ExtractionError as exc:
                _LOG.warning("%s", exc)
                result.failures += 1
                result.failed_ids.append(item.content_id)
        _LOG.info(
            "Extraction finished: %d extracted, %d skipped, %d failed",
            len(result.vectors), result.skipped, result.failures,
        )
        return result

    # Internals ----------------------------------------------------------------

    def tokenize(self, text: str) -> List[str]:
        """Lowercase, strip markup, URLs and e-mail addresses, drop stop words and short tokens."""
        if not text:
            return []
        clean = _HTML_TAG_RE.sub(" ", text)
        clean = _EMAIL_RE.sub(" ", clean)
        clean = _URL_RE.sub(" ", clean)
        tokens = []
        for raw in _SPLIT_RE.split(clean.lower()):
            if len(raw) < self.config.min_token_length or raw in STOP_WORDS or raw.isdigit():
                continue
            tokens.append(raw)
        return tokens

    def _terms(self, tokens: Sequence[str]) -> List[str]:
        terms = list(tokens)
        if self.config.use_bigrams:
            terms.extend(f"{a}_{b}" for a, b in zip(tokens, tokens[1:]))
        return terms

    def _vectorize(self, content: ContentItem) -> np.ndarray:
        title_tokens = self.tokenize(content.title)
        body_tokens = self.tokenize(content.body)
        tag_tokens: List[str] = []
        for tag in content.tags:
            tag_tokens.extend(self.tokenize(tag))
        categories = _normalize_categories(content.categories)

        token_total = len(title_tokens) + len(body_tokens) + len(tag_tokens)
        if token_total < self.config.min_tokens and not categories:
            return np.zeros(self.dimension)

        counts: Counter = Counter()
        for term in self._terms(title_tokens):
            counts[term] += self.config.title_weight
        for term in self._terms(body_tokens):
            counts[term] += 1.0
        for term in tag_tokens:
            counts[term] += self.config.tag_weight

        text_block = np.zeros(self.text_dimensions)
        for term, count in counts.items():
            if count <= 0:
                continue
            weight = 1.0 + math.log(count) if count >= 1 else count
            text_block[_bucket(term, self.text_dimensions)] += weight

        category_block = np.zeros(self.category_dimensions)
        for category in categories:
            category_block[_bucket(f"category:{category}", self.category_dimensions)] = 1.0

        blend = self.config.category_blend
        text_block = _unit(text_block) * (1.0 - blend)
        category_block = _unit(category_block) * blend
        return _unit(np.concatenate([text_block, category_block]))


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _bucket(term: str, dimensions: int) -> int:
    digest = hashlib.blake2b(term.encode("utf-8"), digest_size=8).digest()
    return int.from_bytes(digest, "big") % dimensions


def _unit(vector: np.ndarray) -> np.ndarray:
    norm = float(np.linalg.norm(vector))
    if norm == 0.0:
        return vector
    return vector / norm


def _normalize_categories(categories: Iterable[str]) -> List[str]:
    seen = []
    for category in categories:
        if not isinstance(category, str):
            continue
        clean = category.strip().lower()
        if clean and clean not in seen:
            seen.append(clean)
    return seen


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    """Cosine similarity, 0.0 when either vector is zero."""
    norm_a = float(np.linalg.norm(a))
    norm_b = float(np.linalg.norm(b))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    return float(np.dot(a, b) / (norm_a * norm_b))
