"""Bounded FIFO of chunks."""

from __future__ import annotations

import threading
from collections import deque
from typing import Optional

from vnetkit.vnet.chunk import Chunk

__all__ = ["ChunkQueue"]


class ChunkQueue:
    """Thread-safe FIFO of chunks; a max_size of 0 or less means unlimited."""

    def __init__(self, max_size: int = 0) -> None:
        self._chunks: deque[Chunk] = deque()
        self._max_size = max_size
        self._lock = threading.Lock()

    def push(self, chunk: Chunk) -> bool:
        """Append a chunk; return False if it was dropped because the queue is full."""
        with self._lock:
            if self._max_size > 0 and len(self._chunks) >= self._max_size:
                return False
            self._chunks.append(chunk)
            return True

    def pop(self) -> Optional[Chunk]:
        """Remove and return the oldest chunk, or None if the queue is empty."""
        with self._lock:
            return self._chunks.popleft() if self._chunks else None

    def peek(self) -> Optional[Chunk]:
        """Return the oldest chunk without removing it, or None."""
        with self._lock:
            return self._chunks[0] if self._chunks else None