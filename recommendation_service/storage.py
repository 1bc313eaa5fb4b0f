"""
JSON-file persistence for engine state.

Each entity lives in its own file and every write replaces that file
atomically (temp file + ``os.replace``), so a write is scoped to a single
entity. The interaction log is append-only JSON lines, one file per user,
with a small index of per-user last-event watermarks and log sizes used for
dirty tracking.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, Generic, Iterable, Iterator, List, Optional, Tuple, Type, TypeVar
from urllib.parse import quote, unquote

from pydantic import BaseModel, ValidationError

from .models import (
    AccessRecord,
    ContentItem,
    ContentVector,
    InteractionEvent,
    MetricsReport,
    PopulationBaseline,
    RecommendationBatchJob,
    RecommendationList,
    TimeWindow,
    UserProfile,
    parse_timestamp,
)

_LOG = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


def _atomic_write_text(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def _safe_name(key: str) -> str:
    return quote(key, safe="")


def _is_behind(candidate, current) -> bool:
    return current is not None and (candidate is None or candidate < current)


# ---------------------------------------------------------------------------
# Generic record store
# ---------------------------------------------------------------------------


class JsonRecordStore(Generic[M]):
    """Directory of ``<key>.json`` files holding one Pydantic record each."""

    def __init__(self, directory: Path, model: Type[M], key_of: Callable[[M], str]):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)
        self.model = model
        self.key_of = key_of
        self._lock = threading.RLock()

    def _path(self, key: str) -> Path:
        return self.directory / f"{_safe_name(key)}.json"

    def get(self, key: str) -> Optional[M]:
        path = self._path(key)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        try:
            return self.model.model_validate_json(raw)
        except ValidationError as exc:
            _LOG.warning("Ignoring unreadable record %s: %s", path, exc)
            return None

    def put(self, record: M) -> None:
        text = json.dumps(record.model_dump(mode="json"), indent=2, ensure_ascii=False)
        with self._lock:
            _atomic_write_text(self._path(self.key_of(record)), text)

    def delete(self, key: str) -> bool:
        with self._lock:
            try:
                self._path(key).unlink()
                return True
            except FileNotFoundError:
                return False

    def keys(self) -> List[str]:
        return sorted(unquote(p.stem) for p in self.directory.glob("*.json"))

    def all(self) -> Iterator[M]:
        for key in self.keys():
            record = self.get(key)
            if record is not None:
                yield record

    def count(self) -> int:
        return sum(1 for _ in self.directory.glob("*.json"))


class ContentStore(JsonRecordStore[ContentItem]):
    def __init__(self, directory: Path):
        super().__init__(directory, ContentItem, lambda item: item.content_id)


class VectorStore(JsonRecordStore[ContentVector]):
    def __init__(self, directory: Path):
        super().__init__(directory, ContentVector, lambda vector: vector.content_id)

    def get_many(self, content_ids: Iterable[str]) -> Dict[str, ContentVector]:
        vectors: Dict[str, ContentVector] = {}
        for content_id in content_ids:
            if (vector := self.get(content_id)) is not None:
                vectors[content_id] = vector
        return vectors


class ProfileStore(JsonRecordStore[UserProfile]):
    def __init__(self, directory: Path):
        super().__init__(directory, UserProfile, lambda profile: profile.user_id)

    def put_if_newer(self, profile: UserProfile) -> bool:
        """Last-write-wins keyed by ingestion position and event watermark.

        A profile that accounts for less of the log, or whose watermark is
        older than the stored one, is discarded. Returns whether the profile
        was written.
        """
        with self._lock:
            current = self.get(profile.user_id)
            if current is not None and current.scheme_version == profile.scheme_version and (
                _is_behind(profile.log_position, current.log_position)
                or _is_behind(profile.watermark, current.watermark)
            ):
                _LOG.debug(
                    "Discarding stale profile write for %s (position %s, watermark %s)",
                    profile.user_id, profile.log_position, profile.watermark,
                )
                return False
            self.put(profile)
            return True


class AccessStore(JsonRecordStore[AccessRecord]):
    def __init__(self, directory: Path):
        super().__init__(directory, AccessRecord, lambda record: record.user_id)


class RecommendationStore(JsonRecordStore[RecommendationList]):
    def __init__(self, directory: Path):
        super().__init__(directory, RecommendationList, lambda rec: rec.user_id or rec.recommendation_id)


class JobStore(JsonRecordStore[RecommendationBatchJob]):
    def __init__(self, directory: Path):
        super().__init__(directory, RecommendationBatchJob, lambda job: job.job_id)

    def for_batch(self, batch_id: str) -> List[RecommendationBatchJob]:
        jobs = [job for job in self.all() if job.batch_id == batch_id]
        return sorted(jobs, key=lambda job: job.chunk_index)


class BaselineStore(JsonRecordStore[PopulationBaseline]):
    KEY = "population"

    def __init__(self, directory: Path):
        super().__init__(directory, PopulationBaseline, lambda _baseline: self.KEY)

    def current(self) -> Optional[PopulationBaseline]:
        return self.get(self.KEY)


class ReportStore:
    """Cache of computed metrics reports keyed by their parameters."""

    def __init__(self, directory: Path):
        self._records: JsonRecordStore[MetricsReport] = JsonRecordStore(
            directory, MetricsReport, lambda report: report_cache_key(report)
        )

    def get(self, key: str) -> Optional[MetricsReport]:
        return self._records.get(key)

    def put(self, report: MetricsReport) -> str:
        self._records.put(report)
        return report_cache_key(report)

    def keys(self) -> List[str]:
        return self._records.keys()

    def prune(self, expired_at: datetime) -> int:
        """Delete reports generated at or before the cutoff; returns how many went."""
        removed = 0
        for key in self._records.keys():
            report = self._records.get(key)
            if report is None or report.generated_at <= expired_at:
                removed += int(self._records.delete(key))
        return removed

    def clear(self) -> int:
        removed = 0
        for key in self._records.keys():
            removed += int(self._records.delete(key))
        return removed


def report_cache_key(report_or_params) -> str:
    """Cache key from a report or a ``(k, start, end, source)`` tuple."""
    if isinstance(report_or_params, MetricsReport):
        params = (
            report_or_params.k,
            report_or_params.window_start,
            report_or_params.window_end,
            report_or_params.source.value if report_or_params.source else None,
        )
    else:
        params = report_or_params
    k, start, end, source = params
    return f"k{k}_{start.isoformat()}_{end.isoformat()}_{source or 'all'}"


# ---------------------------------------------------------------------------
# Interaction log
# ---------------------------------------------------------------------------


class InteractionLog:
    """Append-only interaction event log stored as per-user JSON lines.

    A line's byte offset in its user file is the event's ingestion
    position. The index keeps, per user, the newest event timestamp and the
    log size after the last append, so consumers can pick up exactly the events
    they have not seen even when a collaborator delivers them out of order.
    """

    INDEX_FILE = "_index.json"

    def __init__(self, directory: Path):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()

    def _user_file(self, user_id: str) -> Path:
        return self.directory / f"{_safe_name(user_id)}.jsonl"

    def _index_path(self) -> Path:
        return self.directory / self.INDEX_FILE

    def _load_index(self) -> Dict[str, Dict[str, Any]]:
        try:
            index = json.loads(self._index_path().read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except json.JSONDecodeError:
            _LOG.warning("Interaction index is corrupt, rebuilding from log files")
            return self._rebuild_index()
        if not all(isinstance(entry, dict) for entry in index.values()):
            _LOG.info("Interaction index predates ingestion positions, rebuilding from log files")
            return self._rebuild_index()
        return index

    def _rebuild_index(self) -> Dict[str, Dict[str, Any]]:
        with self._lock:
            index: Dict[str, Dict[str, Any]] = {}
            for user_id in self._user_ids_from_files():
                events, size = self.read_since(user_id)
                if events:
                    index[user_id] = {
                        "last_event_at": max(e.timestamp for e in events).isoformat(),
                        "size": size,
                    }
            _atomic_write_text(self._index_path(), json.dumps(index, indent=2))
            return index

    def _user_ids_from_files(self) -> List[str]:
        return sorted(unquote(p.stem) for p in self.directory.glob("*.jsonl"))

    def append(self, event: InteractionEvent) -> InteractionEvent:
        line = json.dumps(event.model_dump(mode="json"), ensure_ascii=False) + "\n"
        with self._lock:
            index = self._load_index()
            with open(self._user_file(event.user_id), "ab") as f:
                f.write(line.encode("utf-8"))
                size = f.tell()
            entry = index.setdefault(event.user_id, {"last_event_at": None, "size": 0})
            previous = parse_timestamp(entry.get("last_event_at"))
            if previous is None or event.timestamp > previous:
                entry["last_event_at"] = event.timestamp.isoformat()
            entry["size"] = size
            _atomic_write_text(self._index_path(), json.dumps(index, indent=2))
        return event

    def extend(self, events: Iterable[InteractionEvent]) -> int:
        count = 0
        for event in events:
            self.append(event)
            count += 1
        return count

    def read_since(self, user_id: str, position: int = 0) -> Tuple[List[InteractionEvent], int]:
        """Events appended after the given ingestion position.

        Returns the events ordered by timestamp and the byte offset reached,
        to be handed back on the next call. A trailing partial line is left
        for the next read.
        """
        path = self._user_file(user_id)
        if not path.exists():
            return [], position
        events: List[InteractionEvent] = []
        offset = position
        with self._lock, open(path, "rb") as f:
            f.seek(position)
            for raw in f:
                if not raw.endswith(b"\n"):
                    break
                offset += len(raw)
                line = raw.decode("utf-8").strip()
                if not line:
                    continue
                try:
                    events.append(InteractionEvent.model_validate_json(line))
                except ValidationError as exc:
                    _LOG.warning("Skipping malformed event in %s at byte %d: %s", path.name, offset - len(raw), exc)
        events.sort(key=lambda e: (e.timestamp, e.event_id))
        return events, offset

    def events_for(
        self,
        user_id: str,
        window: Optional[TimeWindow] = None,
        after: Optional[datetime] = None,
    ) -> List[InteractionEvent]:
        """Events of one user ordered by timestamp.

        Args:
            window: Only events inside [start, end)
            after: Only events with a timestamp strictly after this one
        """
        events, _ = self.read_since(user_id)
        if window is not None:
            events = [e for e in events if window.contains(e.timestamp)]
        if after is not None:
            events = [e for e in events if e.timestamp > after]
        return events

    def events_in(self, window: TimeWindow) -> List[InteractionEvent]:
        """All events inside the window, across users."""
        events: List[InteractionEvent] = []
        for user_id in self.user_ids(active_since=window.start):
            events.extend(self.events_for(user_id, window=window))
        events.sort(key=lambda e: (e.timestamp, e.user_id, e.event_id))
        return events

    def user_ids(self, active_since: Optional[datetime] = None) -> List[str]:
        index = self._load_index()
        if active_since is None:
            return sorted(index)
        return sorted(
            user_id for user_id, entry in index.items()
            if (last := parse_timestamp(entry.get("last_event_at"))) is not None and last >= active_since
        )

    def last_event_at(self, user_id: str) -> Optional[datetime]:
        return parse_timestamp(self._load_index().get(user_id, {}).get("last_event_at"))

    def log_size(self, user_id: str) -> int:
        return int(self._load_index().get(user_id, {}).get("size", 0))

    def dirty_users(self, positions: Dict[str, Optional[int]]) -> List[str]:
        """Users whose log grew past their processed ingestion position."""
        dirty = []
        for user_id, entry in sorted(self._load_index().items()):
            processed = positions.get(user_id)
            if processed is None or int(entry.get("size", 0)) > processed:
                dirty.append(user_id)
        return dirty
