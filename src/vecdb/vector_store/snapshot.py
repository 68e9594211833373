"""
Portable Snapshot Format

Self-contained binary export of every record in a store. Layout (little-endian):

    magic        8 bytes   b"VECDBSNP"
    version      uint16
    record_count uint64
    header_len   uint32
    header       JSON      dimensions, metric, quantization, quantizer state
    records      record_count times:
        id_len   uint16, id (utf-8)
        flags    uint8     bit 0 float32 vector present, bit 1 quantized codes present
        vector   dimensions * float32                 (if bit 0)
        qversion uint32, codes dimensions * uint8     (if bit 1)
        blob_len uint32, blob JSON: metadata and timestamps

Loading restores store contents; the graph is rebuilt from them afterwards.
"""

import json
import logging
import os
import struct
from dataclasses import dataclass
from pathlib import Path
from typing import Any, BinaryIO, Dict, Iterable, Iterator, Optional, Union

import numpy as np

from ..exceptions import SnapshotFormatError
from ..similarity.quantizer import QuantizedVector
from .schema import VectorRecord, _parse_time

logger = logging.getLogger(__name__)

MAGIC = b"VECDBSNP"
FORMAT_VERSION = 1

_PREFIX = struct.Struct("<8sHQI")
_U16 = struct.Struct("<H")
_U32 = struct.Struct("<I")

FLAG_VECTOR = 0x01
FLAG_QUANTIZED = 0x02


@dataclass
class SnapshotHeader:
    dimensions: int
    metric: str
    quantization: bool
    record_count: int = 0
    quantizer: Optional[Dict[str, Any]] = None
    version: int = FORMAT_VERSION

    def to_json(self) -> bytes:
        return json.dumps({
            "dimensions": self.dimensions,
            "metric": self.metric,
            "quantization": self.quantization,
            "quantizer": self.quantizer,
        }).encode("utf-8")


def _encode_record(record: VectorRecord) -> bytes:
    record_id = record.id.encode("utf-8")
    parts = [_U16.pack(len(record_id)), record_id]

    flags = 0
    if record.vector is not None:
        flags |= FLAG_VECTOR
    if record.quantized is not None:
        flags |= FLAG_QUANTIZED
    parts.append(bytes([flags]))

    if record.vector is not None:
        parts.append(np.asarray(record.vector, dtype="<f4").tobytes())
    if record.quantized is not None:
        parts.append(_U32.pack(record.quantized.version))
        parts.append(np.asarray(record.quantized.codes, dtype=np.uint8).tobytes())

    blob = json.dumps({
        "metadata": record.metadata,
        "created_at": record.created_at.isoformat() if record.created_at else None,
        "updated_at": record.updated_at.isoformat() if record.updated_at else None,
    }).encode("utf-8")
    parts.append(_U32.pack(len(blob)))
    parts.append(blob)
    return b"".join(parts)


def write_snapshot(path: Union[str, Path], header: SnapshotHeader,
                   records: Iterable[VectorRecord]) -> int:
    """
    Write records to a snapshot file.

    Records are streamed to a temporary file whose record count is patched
    once every record has been written; the file then replaces ``path``.

    Returns:
        int: Number of records written
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    header_bytes = header.to_json()
    tmp_path = path.with_name(path.name + ".tmp")

    count = 0
    try:
        with open(tmp_path, "wb") as f:
            f.write(_PREFIX.pack(MAGIC, FORMAT_VERSION, 0, len(header_bytes)))
            f.write(header_bytes)
            for record in records:
                if record.dimensions != header.dimensions:
                    raise SnapshotFormatError(
                        f"Record {record.id} has {record.dimensions} dimensions, expected {header.dimensions}")
                f.write(_encode_record(record))
                count += 1
            f.seek(0)
            f.write(_PREFIX.pack(MAGIC, FORMAT_VERSION, count, len(header_bytes)))
        os.replace(tmp_path, path)
    finally:
        if tmp_path.exists():
            tmp_path.unlink()

    header.record_count = count
    logger.info(f"Exported {count} records to snapshot {path}")
    return count


def _read_exact(f: BinaryIO, size: int) -> bytes:
    data = f.read(size)
    if len(data) != size:
        raise SnapshotFormatError("Snapshot is truncated", {"expected_bytes": size, "read_bytes": len(data)})
    return data


def _read_header(f: BinaryIO) -> SnapshotHeader:
    magic, version, record_count, header_len = _PREFIX.unpack(_read_exact(f, _PREFIX.size))
    if magic != MAGIC:
        raise SnapshotFormatError("Not a vector snapshot file", {"magic": magic.hex()})
    if version != FORMAT_VERSION:
        raise SnapshotFormatError(f"Unsupported snapshot version {version}",
                                  {"version": version, "supported": FORMAT_VERSION})
    try:
        data = json.loads(_read_exact(f, header_len))
        return SnapshotHeader(
            dimensions=int(data["dimensions"]),
            metric=data["metric"],
            quantization=bool(data["quantization"]),
            record_count=record_count,
            quantizer=data.get("quantizer"),
            version=version,
        )
    except (ValueError, KeyError) as e:
        raise SnapshotFormatError(f"Corrupt snapshot header: {e}")


def _read_record(f: BinaryIO, dimensions: int) -> VectorRecord:
    (id_len,) = _U16.unpack(_read_exact(f, _U16.size))
    record_id = _read_exact(f, id_len).decode("utf-8")
    flags = _read_exact(f, 1)[0]

    vector = None
    quantized = None
    if flags & FLAG_VECTOR:
        vector = np.frombuffer(_read_exact(f, dimensions * 4), dtype="<f4").astype(np.float32)
    if flags & FLAG_QUANTIZED:
        (qversion,) = _U32.unpack(_read_exact(f, _U32.size))
        codes = np.frombuffer(_read_exact(f, dimensions), dtype=np.uint8).copy()
        quantized = QuantizedVector(codes=codes, version=qversion)

    (blob_len,) = _U32.unpack(_read_exact(f, _U32.size))
    try:
        blob = json.loads(_read_exact(f, blob_len))
        return VectorRecord(
            id=record_id,
            vector=vector,
            metadata=blob.get("metadata") or {},
            quantized=quantized,
            created_at=_parse_time(blob.get("created_at")),
            updated_at=_parse_time(blob.get("updated_at")),
        )
    except ValueError as e:
        raise SnapshotFormatError(f"Corrupt record {record_id!r}: {e}")


def read_snapshot_header(path: Union[str, Path]) -> SnapshotHeader:
    with open(path, "rb") as f:
        return _read_header(f)


def iter_snapshot(path: Union[str, Path]) -> Iterator[VectorRecord]:
    """Lazily yield every record of a snapshot file."""
    with open(path, "rb") as f:
        header = _read_header(f)
        for _ in range(header.record_count):
            yield _read_record(f, header.dimensions)
        if f.read(1):
            raise SnapshotFormatError("Trailing bytes after the last record")
