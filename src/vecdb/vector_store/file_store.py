"""
Local File Vector Store

Durable single-file backend. Records are serialized as JSON lines into an
append-only log; a delete appends a tombstone entry. An in-memory map from id
to byte offset of the latest live entry serves point reads. Compaction
rewrites the log with live records only.
"""

import json
import logging
import os
import threading
import time
from collections import OrderedDict
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

from ..exceptions import DuplicateIdError, NotFoundError
from .base import RecordPredicate, VectorStore, compile_predicate
from .schema import VectorRecord

logger = logging.getLogger(__name__)

OP_PUT = "put"
OP_DELETE = "delete"


class FileVectorStore(VectorStore):
    """
    Append-log file store.

    Provides persistent storage of vector records with crash-tolerant
    replay (a torn trailing entry is dropped on open) and explicit or
    threshold-triggered compaction.
    """

    backend_name = "file"

    def __init__(self,
                 dimensions: int,
                 path: Union[str, Path] = "data/vector_store/vectors.log",
                 fsync: bool = False,
                 compaction_threshold: Optional[float] = 0.5,
                 min_compaction_entries: int = 64):
        """
        Initialize the file store, replaying an existing log if present.

        Args:
            dimensions (int): Vector dimensionality
            path (Union[str, Path]): Log file path
            fsync (bool): fsync after every write for power-loss durability
            compaction_threshold (Optional[float]): Dead-entry ratio that
                triggers automatic log compaction, None to disable
            min_compaction_entries (int): Minimum log entries before automatic
                compaction is considered
        """
        super().__init__(dimensions)
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.meta_path = self.path.with_name(self.path.name + ".meta.json")
        self.fsync = fsync
        self.compaction_threshold = compaction_threshold
        self.min_compaction_entries = min_compaction_entries

        self._lock = threading.RLock()
        self._offsets: "OrderedDict[str, int]" = OrderedDict()
        self._dead_entries = 0
        self._size = 0
        self._generation = 0
        self.compactions = 0

        self._replay()
        self._writer = open(self.path, "ab")
        self._reader = open(self.path, "rb")

        logger.info(f"File store opened at {self.path} with {len(self._offsets)} records")

    # Log replay and encoding

    def _replay(self) -> None:
        if not self.path.exists():
            self.path.touch()
            return

        offset = 0
        with open(self.path, "rb") as f:
            for line in f:
                if not line.endswith(b"\n"):
                    logger.warning(f"Dropping torn trailing entry at offset {offset} in {self.path}")
                    break
                try:
                    entry = json.loads(line)
                except json.JSONDecodeError:
                    logger.warning(f"Dropping corrupt entry at offset {offset} in {self.path}")
                    break
                self._apply(entry, offset)
                offset += len(line)

        if offset != self.path.stat().st_size:
            with open(self.path, "r+b") as f:
                f.truncate(offset)
        self._size = offset

    def _apply(self, entry: Dict[str, Any], offset: int) -> None:
        if entry.get("op") == OP_PUT:
            record_id = entry["record"]["id"]
            if record_id in self._offsets:
                self._dead_entries += 1
                del self._offsets[record_id]
            self._offsets[record_id] = offset
        elif entry.get("op") == OP_DELETE:
            if self._offsets.pop(entry["id"], None) is not None:
                self._dead_entries += 2
            else:
                self._dead_entries += 1

    @staticmethod
    def _encode(entry: Dict[str, Any]) -> bytes:
        return (json.dumps(entry, separators=(",", ":")) + "\n").encode("utf-8")

    def _append_locked(self, lines: List[bytes]) -> List[int]:
        offsets = []
        for line in lines:
            offsets.append(self._size)
            self._size += len(line)
        self._writer.write(b"".join(lines))
        self._writer.flush()
        if self.fsync:
            os.fsync(self._writer.fileno())
        return offsets

    def _read_locked(self, offset: int) -> VectorRecord:
        self._reader.seek(offset)
        entry = json.loads(self._reader.readline())
        return VectorRecord.from_dict(entry["record"])

    # Contract

    def put(self, record: VectorRecord, overwrite: bool = False) -> None:
        self.put_many([record], overwrite=overwrite)

    def put_many(self, records: List[VectorRecord], overwrite: bool = False) -> None:
        for record in records:
            self.validate_record(record)
        lines = [self._encode({"op": OP_PUT, "record": record.to_dict()}) for record in records]

        with self._lock:
            if not overwrite:
                seen = set()
                for record in records:
                    if record.id in self._offsets or record.id in seen:
                        raise DuplicateIdError(record.id)
                    seen.add(record.id)

            offsets = self._append_locked(lines)
            for record, offset in zip(records, offsets):
                if record.id in self._offsets:
                    self._dead_entries += 1
                    del self._offsets[record.id]
                self._offsets[record.id] = offset
            self._maybe_compact_locked()

    def get(self, record_id: str) -> VectorRecord:
        with self._lock:
            offset = self._offsets.get(record_id)
            if offset is None:
                raise NotFoundError(record_id)
            return self._read_locked(offset)

    def delete(self, record_id: str) -> bool:
        with self._lock:
            if record_id not in self._offsets:
                return False
            self._append_locked([self._encode({"op": OP_DELETE, "id": record_id})])
            del self._offsets[record_id]
            self._dead_entries += 2
            self._maybe_compact_locked()
            return True

    def scan(self, predicate: Optional[RecordPredicate] = None) -> Iterator[VectorRecord]:
        check = compile_predicate(predicate)
        with self._lock:
            generation = self._generation
            snapshot: List[Tuple[str, int]] = list(self._offsets.items())

        for record_id, offset in snapshot:
            with self._lock:
                if self._generation != generation:
                    # log was rewritten mid-scan
                    offset = self._offsets.get(record_id)
                    if offset is None:
                        continue
                elif record_id not in self._offsets:
                    continue
                else:
                    offset = self._offsets[record_id]
                record = self._read_locked(offset)
            if check is None or check(record):
                yield record

    def count(self) -> int:
        return len(self._offsets)

    def contains(self, record_id: str) -> bool:
        return record_id in self._offsets

    def clear(self) -> None:
        with self._lock:
            self._writer.close()
            self._reader.close()
            self.path.write_bytes(b"")
            self._offsets.clear()
            self._dead_entries = 0
            self._size = 0
            self._generation += 1
            self._writer = open(self.path, "ab")
            self._reader = open(self.path, "rb")
        logger.info(f"File store {self.path} cleared")

    # Compaction

    @property
    def dead_entries(self) -> int:
        return self._dead_entries

    @property
    def dead_ratio(self) -> float:
        total = self._dead_entries + len(self._offsets)
        return self._dead_entries / total if total else 0.0

    def _maybe_compact_locked(self) -> None:
        if self.compaction_threshold is None:
            return
        total = self._dead_entries + len(self._offsets)
        if total >= self.min_compaction_entries and self.dead_ratio > self.compaction_threshold:
            self._compact_locked()

    def compact(self) -> Dict[str, Any]:
        """
        Rewrite the log without tombstoned or superseded entries.

        Returns:
            Dict[str, Any]: Compaction results
        """
        with self._lock:
            return self._compact_locked()

    def _compact_locked(self) -> Dict[str, Any]:
        start_time = time.time()
        size_before = self._size
        dropped = self._dead_entries
        tmp_path = self.path.with_name(self.path.name + ".compact")

        new_offsets: "OrderedDict[str, int]" = OrderedDict()
        new_size = 0
        with open(tmp_path, "wb") as out:
            for record_id, offset in self._offsets.items():
                self._reader.seek(offset)
                line = self._reader.readline()
                new_offsets[record_id] = new_size
                out.write(line)
                new_size += len(line)
            out.flush()
            os.fsync(out.fileno())

        self._writer.close()
        self._reader.close()
        os.replace(tmp_path, self.path)
        self._writer = open(self.path, "ab")
        self._reader = open(self.path, "rb")

        self._offsets = new_offsets
        self._size = new_size
        self._dead_entries = 0
        self._generation += 1
        self.compactions += 1

        result = {
            "records": len(new_offsets),
            "dropped_entries": dropped,
            "bytes_before": size_before,
            "bytes_after": new_size,
            "compaction_time_seconds": time.time() - start_time,
        }
        logger.info(f"Compacted {self.path}: dropped {dropped} entries, "
                    f"{size_before} -> {new_size} bytes")
        return result

    # Index metadata

    def put_index_metadata(self, name: str, document: Dict[str, Any]) -> None:
        with self._lock:
            documents = self._load_meta()
            documents[name] = document
            tmp_path = self.meta_path.with_name(self.meta_path.name + ".tmp")
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(documents, f, indent=2)
            os.replace(tmp_path, self.meta_path)

    def get_index_metadata(self, name: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            return self._load_meta().get(name)

    def _load_meta(self) -> Dict[str, Any]:
        if not self.meta_path.exists():
            return {}
        with open(self.meta_path, "r", encoding="utf-8") as f:
            return json.load(f)

    # Utility Methods

    def health_check(self) -> Dict[str, Any]:
        healthy = self.path.exists() and os.access(self.path, os.W_OK)
        return {
            "status": "healthy" if healthy else "unhealthy",
            "backend": self.backend_name,
            "path": str(self.path),
            "records": self.count(),
        }

    def get_statistics(self) -> Dict[str, Any]:
        stats = super().get_statistics()
        stats.update({
            "path": str(self.path),
            "log_size_bytes": self._size,
            "dead_entries": self._dead_entries,
            "dead_ratio": self.dead_ratio,
            "compactions": self.compactions,
        })
        return stats

    def close(self) -> None:
        with self._lock:
            if not self._writer.closed:
                self._writer.close()
            if not self._reader.closed:
                self._reader.close()
        logger.info(f"File store {self.path} closed")
