"""
Quantizer Module

Uniform scalar quantization of float vectors to 8-bit codes. Each component
is mapped linearly from its observed [min, max] range to 0..255. Ranges are
tracked per index and widened incrementally as new vectors arrive; every
widening creates a new range version so codes written under an older range
still dequantize correctly.
"""

import threading
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import numpy as np

from ..exceptions import DimensionMismatchError
from .distance import VectorLike, as_vector

LEVELS = 255


@dataclass(frozen=True)
class QuantizedVector:
    """8-bit codes plus the range version they were encoded with."""

    codes: np.ndarray
    version: int

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON/BSON friendly dictionary."""
        return {"codes": self.codes.tolist(), "version": self.version}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "QuantizedVector":
        return cls(codes=np.asarray(data["codes"], dtype=np.uint8), version=int(data["version"]))

    def __eq__(self, other) -> bool:
        if not isinstance(other, QuantizedVector):
            return NotImplemented
        return self.version == other.version and np.array_equal(self.codes, other.codes)

    def __hash__(self) -> int:
        return hash((self.version, self.codes.tobytes()))

    @property
    def nbytes(self) -> int:
        return int(self.codes.nbytes)


class ScalarQuantizer:
    """
    Per-index scalar quantizer.

    Quantization is chosen once when an index is created; the quantizer state
    (range history) is persisted alongside the records so dequantization
    survives restarts and snapshot round trips.
    """

    def __init__(self, dimensions: int, headroom: float = 0.1):
        """
        Initialize the quantizer.

        Args:
            dimensions (int): Vector dimensionality
            headroom (float): Fraction of the span added on each widening, so
                nearby future values do not force another range version
        """
        self.dimensions = dimensions
        self.headroom = headroom
        self._ranges: List[Tuple[np.ndarray, np.ndarray]] = []
        self._lock = threading.Lock()

    @property
    def version(self) -> int:
        """Current range version, -1 before any vector has been observed."""
        return len(self._ranges) - 1

    @property
    def fitted(self) -> bool:
        return bool(self._ranges)

    def _validate(self, vector: VectorLike) -> np.ndarray:
        array = as_vector(vector)
        if array.shape[0] != self.dimensions:
            raise DimensionMismatchError(expected=self.dimensions, actual=array.shape[0])
        return array

    def observe(self, vector: VectorLike) -> bool:
        """
        Widen the tracked range to cover a vector.

        Returns:
            bool: True if a new range version was created
        """
        array = self._validate(vector)
        with self._lock:
            return self._observe_locked(array)

    def _observe_locked(self, array: np.ndarray) -> bool:
        if not self._ranges:
            self._ranges.append((array.copy(), array.copy()))
            return True

        low, high = self._ranges[-1]
        if np.all(array >= low) and np.all(array <= high):
            return False

        new_low = np.minimum(low, array)
        new_high = np.maximum(high, array)
        pad = (new_high - new_low) * self.headroom
        widened_low = np.where(array < low, new_low - pad, low)
        widened_high = np.where(array > high, new_high + pad, high)
        self._ranges.append((widened_low.astype(np.float32), widened_high.astype(np.float32)))
        return True

    def fit(self, vectors: np.ndarray) -> None:
        """Reset the range history to a single range covering all given vectors."""
        matrix = np.asarray(vectors, dtype=np.float32)
        if matrix.size == 0:
            with self._lock:
                self._ranges = []
            return
        if matrix.ndim != 2 or matrix.shape[1] != self.dimensions:
            raise DimensionMismatchError(expected=self.dimensions, actual=matrix.shape[-1])
        with self._lock:
            self._ranges = [(matrix.min(axis=0), matrix.max(axis=0))]

    def quantize(self, vector: VectorLike) -> QuantizedVector:
        """
        Compress a vector to 8-bit codes, widening the range if needed.

        Args:
            vector (VectorLike): Vector to quantize

        Returns:
            QuantizedVector: Codes and range version
        """
        array = self._validate(vector)
        with self._lock:
            self._observe_locked(array)
            version = len(self._ranges) - 1
            low, high = self._ranges[version]

        span = high - low
        safe_span = np.where(span > 0, span, 1.0)
        scaled = (array - low) / safe_span * LEVELS
        codes = np.clip(np.rint(scaled), 0, LEVELS).astype(np.uint8)
        codes[span <= 0] = 0
        return QuantizedVector(codes=codes, version=version)

    def dequantize(self, quantized: QuantizedVector) -> np.ndarray:
        """Reconstruct an approximate float32 vector from codes."""
        if quantized.codes.shape[0] != self.dimensions:
            raise DimensionMismatchError(expected=self.dimensions, actual=quantized.codes.shape[0])
        low, high = self._range(quantized.version)
        step = (high - low) / LEVELS
        return (low + quantized.codes.astype(np.float32) * step).astype(np.float32)

    def max_error(self, version: Optional[int] = None) -> np.ndarray:
        """Per-component worst-case reconstruction error (half a quantization step)."""
        low, high = self._range(self.version if version is None else version)
        return (high - low) / LEVELS / 2.0

    def _range(self, version: int) -> Tuple[np.ndarray, np.ndarray]:
        with self._lock:
            if version < 0 or version >= len(self._ranges):
                raise ValueError(f"Unknown quantizer range version {version}")
            return self._ranges[version]

    def to_dict(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "dimensions": self.dimensions,
                "headroom": self.headroom,
                "ranges": [[low.tolist(), high.tolist()] for low, high in self._ranges],
            }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ScalarQuantizer":
        quantizer = cls(dimensions=int(data["dimensions"]), headroom=float(data.get("headroom", 0.1)))
        quantizer._ranges = [
            (np.asarray(low, dtype=np.float32), np.asarray(high, dtype=np.float32))
            for low, high in data.get("ranges", [])
        ]
        return quantizer
