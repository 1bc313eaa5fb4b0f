"""
catalog.py - Content catalog and vector maintenance
"""

from __future__ import annotations

import logging
import threading
from typing import Dict, Iterable, List, Optional

from .errors import ContentNotFoundError, ExtractionError
from .features import ExtractionResult, FeatureExtractor
from .models import ContentItem, ContentVector
from .storage import ContentStore, VectorStore

_LOG = logging.getLogger(__name__)


class CatalogService:
    """Consumes the catalog feed and keeps content vectors current."""

    def __init__(self, content_store: ContentStore, vector_store: VectorStore, extractor: FeatureExtractor):
        self.content_store = content_store
        self.vector_store = vector_store
        self.extractor = extractor

    def upsert_item(self, item: ContentItem) -> ContentVector | None:
        """Store a new or edited item and replace its vector if the analyzable text changed."""
        self.content_store.put(item)
        current = self.vector_store.get(item.content_id)
        if self.extractor.is_fresh(current, item):
            return current
        try:
            vector = self.extractor.extract(item)
        except ExtractionError as exc:
            _LOG.warning("%s; dropping stale vector", exc)
            self.vector_store.delete(item.content_id)
            return None
        self.vector_store.put(vector)
        return vector

    def delete_item(self, content_id: str) -> bool:
        """Remove an item together with its vector."""
        self.vector_store.delete(content_id)
        return self.content_store.delete(content_id)

    def get_item(self, content_id: str) -> ContentItem:
        item = self.content_store.get(content_id)
        if item is None:
            raise ContentNotFoundError(f"Unknown content: {content_id}")
        return item

    def items(self, content_ids: Optional[Iterable[str]] = None) -> Dict[str, ContentItem]:
        if content_ids is None:
            return {item.content_id: item for item in self.content_store.all()}
        found = {}
        for content_id in content_ids:
            if (item := self.content_store.get(content_id)) is not None:
                found[content_id] = item
        return found

    def catalog_size(self) -> int:
        return self.content_store.count()

    def refresh_vectors(
        self,
        force: bool = False,
        cancel_event: Optional[threading.Event] = None,
    ) -> ExtractionResult:
        """Offline job: extract vectors for every item whose vector is missing or stale."""
        items = list(self.content_store.all())
        existing = self.vector_store.get_many(item.content_id for item in items)
        result = self.extractor.extract_all(items, existing=existing, force=force, cancel_event=cancel_event)
        for vector in result.vectors:
            self.vector_store.put(vector)

        live_ids = {item.content_id for item in items}
        for orphan in set(self.vector_store.keys()) - live_ids:
            self.vector_store.delete(orphan)
            _LOG.info("Removed orphan vector %s", orphan)
        return result

    def fresh_vectors(self, content_ids: Optional[Iterable[str]] = None) -> Dict[str, ContentVector]:
        """Current-scheme vectors for the given items, regenerating stale ones first.

        Items that fail extraction are left out.
        """
        items = self.items(content_ids)
        vectors: Dict[str, ContentVector] = {}
        stale: List[str] = []
        for content_id, item in items.items():
            vector = self.vector_store.get(content_id)
            if not self.extractor.is_fresh(vector, item):
                stale.append(content_id)
                try:
                    vector = self.extractor.extract(item)
                except ExtractionError as exc:
                    _LOG.warning("%s", exc)
                    continue
                self.vector_store.put(vector)
            vectors[content_id] = vector
        if stale:
            _LOG.info("Regenerated %d stale vectors before scoring", len(stale))
        return vectors
