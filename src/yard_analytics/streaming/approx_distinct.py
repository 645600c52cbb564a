from __future__ import annotations

import math

FNV_OFFSET_BASIS = 0x811C9DC5
FNV_PRIME = 0x01000193


def fnv1a32(text: str) -> int:
    """32-bit FNV-1a over the UTF-16 code units of ``text``, one unit per round."""
    h = FNV_OFFSET_BASIS
    data = text.encode("utf-16-le", errors="surrogatepass")
    for low, high in zip(data[0::2], data[1::2]):
        h ^= low | (high << 8)
        h = (h * FNV_PRIME) & 0xFFFFFFFF
    return h


class ApproxDistinct:
    """Linear-counting cardinality estimate over a fixed bitmap.

    Accuracy degrades as the true cardinality approaches ``bits``; once every
    bit is set the estimate saturates at ``bits`` and is only a lower bound.
    """

    def __init__(self, bits: int = 2048) -> None:
        if bits < 1:
            raise ValueError("bits must be >= 1")
        self.bits = int(bits)
        self._bitmap = bytearray((self.bits + 7) // 8)

    def add(self, key: object) -> None:
        text = "" if key is None else str(key).strip()
        if not text:
            return
        idx = fnv1a32(text) % self.bits
        self._bitmap[idx >> 3] |= 1 << (idx & 7)

    def zero_bits(self) -> int:
        set_bits = sum(bin(byte).count("1") for byte in self._bitmap)
        return self.bits - set_bits

    def estimate(self) -> int:
        m = self.bits
        zeros = self.zero_bits()
        if zeros == 0:
            return m
        return int(round(-m * math.log(zeros / m)))
