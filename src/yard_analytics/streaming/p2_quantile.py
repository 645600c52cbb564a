from __future__ import annotations

import math


class P2Quantile:
    """Streaming single-quantile estimator (Jain & Chlamtac, 1985).

    Keeps five marker heights and their actual/desired positions, so memory
    stays constant regardless of stream length. The first five samples are
    buffered and answered exactly; afterwards marker 2 estimates quantile ``p``.
    """

    def __init__(self, p: float) -> None:
        if not 0.0 <= p <= 1.0:
            raise ValueError("p must be within [0, 1]")
        self.p = float(p)
        self.count = 0
        self._initial: list[float] = []
        self._heights: list[float] = []
        self._positions: list[int] = []
        self._desired: list[float] = []
        self._increments: list[float] = []

    @property
    def markers(self) -> tuple[float, ...]:
        if self._heights:
            return tuple(self._heights)
        return tuple(sorted(self._initial))

    def add(self, x: object) -> None:
        if isinstance(x, bool) or not isinstance(x, (int, float)):
            return
        value = float(x)
        if not math.isfinite(value):
            return
        self.count += 1

        if self.count <= 5:
            self._initial.append(value)
            if self.count == 5:
                p = self.p
                self._heights = sorted(self._initial)
                self._positions = [1, 2, 3, 4, 5]
                self._desired = [1.0, 1.0 + 2.0 * p, 1.0 + 4.0 * p, 3.0 + 2.0 * p, 5.0]
                self._increments = [0.0, p / 2.0, p, (1.0 + p) / 2.0, 1.0]
            return

        q = self._heights
        if value < q[0]:
            q[0] = value
            k = 0
        elif value < q[1]:
            k = 0
        elif value < q[2]:
            k = 1
        elif value < q[3]:
            k = 2
        elif value <= q[4]:
            k = 3
        else:
            q[4] = value
            k = 3

        for i in range(k + 1, 5):
            self._positions[i] += 1
        for i in range(5):
            self._desired[i] += self._increments[i]

        n = self._positions
        for i in range(1, 4):
            d = self._desired[i] - n[i]
            if (d >= 1.0 and n[i + 1] - n[i] > 1) or (d <= -1.0 and n[i - 1] - n[i] < -1):
                step = 1 if d > 0 else -1
                candidate = self._parabolic(i, step)
                if q[i - 1] < candidate < q[i + 1]:
                    q[i] = candidate
                else:
                    q[i] = self._linear(i, step)
                n[i] += step

    def _parabolic(self, i: int, d: int) -> float:
        q = self._heights
        n = self._positions
        return q[i] + (d / (n[i + 1] - n[i - 1])) * (
            (n[i] - n[i - 1] + d) * (q[i + 1] - q[i]) / (n[i + 1] - n[i])
            + (n[i + 1] - n[i] - d) * (q[i] - q[i - 1]) / (n[i] - n[i - 1])
        )

    def _linear(self, i: int, d: int) -> float:
        q = self._heights
        n = self._positions
        return q[i] + d * (q[i + d] - q[i]) / (n[i + d] - n[i])

    def value(self) -> float | None:
        if self.count == 0:
            return None
        if self.count <= 5:
            ordered = sorted(self._initial)
            return ordered[int(math.floor((len(ordered) - 1) * self.p))]
        return self._heights[2]


class QuantilePair:
    """Median and p90 estimators fed from the same stream."""

    def __init__(self) -> None:
        self.median = P2Quantile(0.5)
        self.p90 = P2Quantile(0.9)

    def add(self, x: object) -> None:
        self.median.add(x)
        self.p90.add(x)

    @property
    def count(self) -> int:
        return self.median.count
