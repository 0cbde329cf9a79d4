from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

import numpy as np


def _freeze_array(array: np.ndarray, *, dtype: type, ndim: int | None = None) -> np.ndarray:
    """Return a read-only, C-contiguous copy of `array`, validating dimensions."""
    arr = np.array(array, dtype=dtype, copy=True, order="C")
    if ndim is not None and arr.ndim != ndim:
        raise ValueError(f"array must be {ndim}D, got {arr.ndim}D")
    arr.setflags(write=False)
    return arr


@dataclass(frozen=True)
class SampleBatch:
    """One poll cycle worth of results, one entry per active channel."""

    timestamp_ms: float
    channel_ids: Tuple[int, ...]
    success: np.ndarray
    values: np.ndarray

    def __post_init__(self) -> None:
        success = _freeze_array(self.success, dtype=bool, ndim=1)
        values = _freeze_array(self.values, dtype=np.float64, ndim=1)
        if success.shape != values.shape:
            raise ValueError("success and values must have the same length")
        if success.shape[0] != len(self.channel_ids):
            raise ValueError("samples shape mismatch: length must match len(channel_ids)")

        object.__setattr__(self, "channel_ids", tuple(self.channel_ids))
        object.__setattr__(self, "success", success)
        object.__setattr__(self, "values", values)

    @property
    def n_channels(self) -> int:
        return len(self.channel_ids)

    @property
    def all_ok(self) -> bool:
        return bool(self.success.all())

    def value_for(self, channel_id: int) -> float:
        """Value of one channel; NaN when its read failed."""
        index = self.channel_ids.index(channel_id)
        if not self.success[index]:
            return float("nan")
        return float(self.values[index])


__all__ = ["SampleBatch"]
