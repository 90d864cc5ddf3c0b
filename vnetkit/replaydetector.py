"""Sliding-window replay detection for sequence numbers."""

from __future__ import annotations

from typing import Callable, Optional

__all__ = [
    "FixedBigInt",
    "SlidingWindowDetector",
    "WrappedSlidingWindowDetector",
    "new",
    "with_wrap",
]

_WORD = 64
_MASK64 = (1 << 64) - 1

Accept = Callable[[], None]


def _int64(value: int) -> int:
    """Reinterpret the low 64 bits of ``value`` as a signed integer."""
    value &= _MASK64
    return value - (1 << 64) if value >= 1 << 63 else value


def _half_toward_zero(value: int) -> int:
    return -((-value) // 2) if value < 0 else value // 2


class FixedBigInt:
    """Fixed-width bit set made of 64-bit words, with truncating left shift."""

    def __init__(self, n: int) -> None:
        self._n = n
        self._words = max((n + _WORD - 1) // _WORD, 1)
        rem = n % _WORD
        msb_mask = (1 << (_WORD - rem)) - 1 if rem else _MASK64
        low_width = _WORD * (self._words - 1)
        self._mask = (msb_mask << low_width) | ((1 << low_width) - 1)
        self._width = _WORD * self._words
        self._value = 0

    def lsh(self, n: int) -> None:
        """Shift left by ``n`` bits, dropping bits that fall off the top."""
        if n == 0:
            return
        if n >= self._width:
            self._value = 0
            return
        self._value = (self._value << n) & self._mask

    def bit(self, i: int) -> int:
        """Return bit ``i``; bits at or beyond the width read as 0."""
        if i >= self._n:
            return 0
        return (self._value >> i) & 1

    def set_bit(self, i: int) -> None:
        """Set bit ``i`` to 1; out-of-range positions are ignored."""
        if i >= self._n:
            return
        self._value |= 1 << i

    def __str__(self) -> str:
        return f"{self._value:0{16 * self._words}X}"


class SlidingWindowDetector:
    """Replay detector for monotonically increasing sequences without wrapping.

    Suitable for DTLS, where sequence numbers never wrap.
    """

    def __init__(self, window_size: int, max_seq: int) -> None:
        self._latest_seq = 0
        self._max_seq = max_seq
        self._window_size = window_size
        self._mask = FixedBigInt(window_size)

    def check(self, seq: int) -> Optional[Accept]:
        """Return a callable that accepts ``seq``, or None if it is a replay."""
        if seq > self._max_seq:
            return None
        if seq <= self._latest_seq:
            if self._latest_seq >= (self._window_size + seq) & _MASK64:
                return None
            if self._mask.bit(self._latest_seq - seq):
                return None

        def accept() -> None:
            if seq > self._latest_seq:
                self._mask.lsh(seq - self._latest_seq)
                self._latest_seq = seq
            diff = (self._latest_seq - seq) % self._max_seq
            self._mask.set_bit(diff)

        return accept


class WrappedSlidingWindowDetector:
    """Replay detector that allows the sequence number to wrap around.

    Suitable for short counters such as those of SRTP and SRTCP.
    """

    def __init__(self, window_size: int, max_seq: int) -> None:
        self._latest_seq = 0
        self._max_seq = max_seq
        self._window_size = window_size
        self._mask = FixedBigInt(window_size)
        self._initialised = False

    def check(self, seq: int) -> Optional[Accept]:
        """Return a callable that accepts ``seq``, or None if it is a replay."""
        if seq > self._max_seq:
            return None
        if not self._initialised:
            self._latest_seq = seq - 1 if seq != 0 else self._max_seq
            self._initialised = True

        diff = _int64(_int64(self._latest_seq) - _int64(seq))
        half = _half_toward_zero(_int64(self._max_seq))
        span = _int64(self._max_seq + 1)
        if diff > half:
            diff = _int64(diff - span)
        elif diff <= -half:
            diff = _int64(diff + span)

        if diff >= self._window_size:
            return None
        if diff >= 0 and self._mask.bit(diff):
            return None

        def accept() -> None:
            if diff < 0:
                self._mask.lsh(-diff)
                self._latest_seq = seq
            self._mask.set_bit((self._latest_seq - seq) & _MASK64)

        return accept


def new(window_size: int, max_seq: int) -> SlidingWindowDetector:
    """Create a detector that does not allow sequence wrapping."""
    return SlidingWindowDetector(window_size, max_seq)


def with_wrap(window_size: int, max_seq: int) -> WrappedSlidingWindowDetector:
    """Create a detector that allows sequence wrapping."""
    return WrappedSlidingWindowDetector(window_size, max_seq)