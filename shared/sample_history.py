from __future__ import annotations

from typing import Tuple

import numpy as np


class SampleHistory:
    """
    Append-only (time, value) history backed by preallocated NumPy arrays.

    Capacity doubles when full, so appending is amortized O(1). ``x`` and
    ``y`` are views of the filled part; they stay valid until ``clear``.
    """

    def __init__(self, capacity: int = 1024, dtype: np.dtype | str = np.float64) -> None:
        capacity = int(capacity)
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self._x = np.empty(capacity, dtype=dtype)
        self._y = np.empty(capacity, dtype=dtype)
        self._count = 0

    def __len__(self) -> int:
        return self._count

    @property
    def capacity(self) -> int:
        return self._x.shape[0]

    @property
    def x(self) -> np.ndarray:
        return self._x[: self._count]

    @property
    def y(self) -> np.ndarray:
        return self._y[: self._count]

    def append(self, t: float, value: float) -> None:
        if self._count == self.capacity:
            self._grow(2 * self.capacity)
        self._x[self._count] = t
        self._y[self._count] = value
        self._count += 1

    def clear(self) -> None:
        # Fresh arrays; views handed out earlier keep their old contents
        self._x = np.empty_like(self._x)
        self._y = np.empty_like(self._y)
        self._count = 0

    def span(self) -> Tuple[float, float]:
        """(first, last) time stamp; raises IndexError when empty."""
        if self._count == 0:
            raise IndexError("history is empty")
        return float(self._x[0]), float(self._x[self._count - 1])

    def _grow(self, capacity: int) -> None:
        x = np.empty(capacity, dtype=self._x.dtype)
        y = np.empty(capacity, dtype=self._y.dtype)
        x[: self._count] = self._x[: self._count]
        y[: self._count] = self._y[: self._count]
        self._x, self._y = x, y


__all__ = ["SampleHistory"]
