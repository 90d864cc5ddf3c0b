"""Deadlines, packet buffers, replay detection, context-aware connections and virtual UDP network parts."""

__version__ = "0.1.0"
__all__ = ["deadline", "packetio", "replaydetector", "connctx", "vnet"]