"""Fixed-size bit set stored as 64-bit chunks."""

from __future__ import annotations

_CHUNK = 64
_MASK = (1 << _CHUNK) - 1


class Bitset:
    """A set of bit positions; bit ``p`` lives in chunk ``p // 64``."""

    __slots__ = ("_chunks",)

    def __init__(self, bits: int) -> None:
        self._chunks = [0] * (-(-bits // _CHUNK))

    def clone(self) -> Bitset:
        """Return an independent copy."""
        copy = Bitset(0)
        copy._chunks = list(self._chunks)
        return copy

    def _locate(self, pos: int) -> tuple[int, int]:
        if pos < 0 or pos >= len(self._chunks) * _CHUNK:
            raise IndexError(f"bit position {pos} out of range")
        return divmod(pos, _CHUNK)

    def set(self, pos: int) -> Bitset:
        """Set bit ``pos`` and return this bitset."""
        major, minor = self._locate(pos)
        self._chunks[major] |= 1 << minor
        return self

    def clear(self, pos: int) -> Bitset:
        """Clear bit ``pos`` and return this bitset."""
        major, minor = self._locate(pos)
        self._chunks[major] &= ~(1 << minor) & _MASK
        return self

    def get(self, pos: int) -> bool:
        """Return whether bit ``pos`` is set."""
        major, minor = self._locate(pos)
        return bool(self._chunks[major] >> minor & 1)

    def popcount(self) -> int:
        """Return the number of set bits."""
        return sum(chunk.bit_count() for chunk in self._chunks)

    def fingerprint(self) -> int:
        """Return a cheap hash: the popcount xor-ed with every chunk."""
        value = self.popcount()
        for chunk in self._chunks:
            value ^= chunk
        return value

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Bitset):
            return NotImplemented
        return self._chunks == other._chunks

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        bits = [pos for pos in range(len(self._chunks) * _CHUNK) if self.get(pos)]
        return f"Bitset({bits})"