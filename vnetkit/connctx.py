"""Connection wrapper whose reads and writes are bounded by a context."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

from vnetkit.deadline import DeadlineExceeded

__all__ = [
    "ConnClosingError",
    "ContextCancelled",
    "Context",
    "ConnCtx",
    "pipe",
]

# A deadline far in the past, used to interrupt a blocked operation.
_VERY_OLD = 1e-9
_CLOSED_PIPE = "io: read/write on closed pipe"


class ConnClosingError(Exception):
    """Write on a connection that has been closed."""

    def __init__(self, message: str = "use of closed network connection") -> None:
        super().__init__(message)


class ContextCancelled(Exception):
    """The context was cancelled."""

    def __init__(self, message: str = "context canceled") -> None:
        super().__init__(message)


class Context:
    """Cancellation signal with an optional timeout in seconds."""

    def __init__(self, timeout: Optional[float] = None) -> None:
        self._lock = threading.Lock()
        self._event = threading.Event()
        self._err: Optional[BaseException] = None
        self._callbacks: list[Callable[[], None]] = []
        self._timer: Optional[threading.Timer] = None
        if timeout is not None:
            if timeout <= 0:
                self._finish(DeadlineExceeded())
            else:
                timer = threading.Timer(timeout, self._finish, args=(DeadlineExceeded(),))
                timer.daemon = True
                self._timer = timer
                timer.start()

    def cancel(self) -> None:
        """Cancel the context; has no effect once it is already done."""
        self._finish(ContextCancelled())

    def done(self) -> threading.Event:
        """Return the event set once the context is cancelled or timed out."""
        return self._event

    def err(self) -> Optional[BaseException]:
        """Return why the context ended, or None while it is still live."""
        with self._lock:
            return self._err

    def _finish(self, err: BaseException) -> None:
        with self._lock:
            if self._event.is_set():
                return
            self._err = err
            self._event.set()
            callbacks, self._callbacks = self._callbacks, []
            timer, self._timer = self._timer, None
        if timer is not None:
            timer.cancel()
        for callback in callbacks:
            callback()

    def _add_done_callback(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Run ``callback`` when the context ends; return a function that unregisters it."""
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return lambda: self._remove_callback(callback)
        callback()
        return lambda: None

    def _remove_callback(self, callback: Callable[[], None]) -> None:
        with self._lock:
            try:
                self._callbacks.remove(callback)
            except ValueError:
                pass


class ConnCtx:
    """Wraps a connection so that each read or write obeys a Context.

    The wrapped connection must provide ``read(size)``, ``write(data)``,
    ``close()``, ``set_read_deadline(when)``, ``set_write_deadline(when)``,
    ``local_addr()`` and ``remote_addr()``.
    """

    def __init__(self, conn: Any) -> None:
        self._conn = conn
        self._closed = threading.Event()
        self._close_lock = threading.Lock()
        self._close_done = False
        self._read_lock = threading.Lock()
        self._write_lock = threading.Lock()

    def _run(
        self,
        ctx: Context,
        set_deadline: Callable[[Optional[float]], None],
        op: Callable[[], Any],
    ) -> Any:
        state_lock = threading.Lock()
        finished = False
        fired = False
        deadline_error: Optional[BaseException] = None

        def interrupt() -> None:
            nonlocal fired, deadline_error
            with state_lock:
                if finished:
                    return
                try:
                    set_deadline(_VERY_OLD)
                except Exception as exc:  # noqa: BLE001
                    deadline_error = exc
                    return
                fired = True

        unregister = ctx._add_done_callback(interrupt)
        result: Any = None
        error: Optional[BaseException] = None
        try:
            result = op()
        except Exception as exc:  # noqa: BLE001
            error = exc
        finally:
            unregister()
            with state_lock:
                finished = True
                restore = fired
            if restore:
                try:
                    set_deadline(None)
                except Exception as exc:  # noqa: BLE001
                    if deadline_error is None:
                        deadline_error = exc

        ctx_err = ctx.err()
        if ctx_err is not None and not result:
            raise ctx_err from error
        if error is not None:
            raise error
        if deadline_error is not None:
            raise deadline_error
        return result

    def read_context(self, ctx: Context, size: int) -> bytes:
        """Read up to ``size`` bytes; raise EOFError once closed."""
        with self._read_lock:
            if self._closed.is_set():
                raise EOFError("EOF")
            return self._run(ctx, self._conn.set_read_deadline, lambda: self._conn.read(size))

    def write_context(self, ctx: Context, data: bytes) -> int:
        """Write ``data`` and return the number of bytes written."""
        with self._write_lock:
            if self._closed.is_set():
                raise ConnClosingError()
            return self._run(ctx, self._conn.set_write_deadline, lambda: self._conn.write(data))

    def close(self) -> None:
        """Close the underlying connection; later reads hit EOF, writes fail."""
        error: Optional[BaseException] = None
        try:
            self._conn.close()
        except Exception as exc:  # noqa: BLE001
            error = exc
        with self._close_lock:
            if not self._close_done:
                self._close_done = True
                with self._write_lock, self._read_lock:
                    self._closed.set()
        if error is not None:
            raise error

    def local_addr(self) -> Any:
        """Local address of the wrapped connection."""
        return self._conn.local_addr()

    def remote_addr(self) -> Any:
        """Remote address of the wrapped connection."""
        return self._conn.remote_addr()

    def conn(self) -> Any:
        """The wrapped connection."""
        return self._conn


@dataclass(frozen=True)
class _PipeAddr:
    network: str = "pipe"

    def __str__(self) -> str:
        return "pipe"


class _Channel:
    __slots__ = ("data", "offset")

    def __init__(self) -> None:
        self.data: Optional[bytes] = None
        self.offset = 0


class _PipeEnd:
    """One end of a synchronous in-memory full-duplex connection."""

    def __init__(self, cond: threading.Condition, rx: _Channel, tx: _Channel) -> None:
        self._cond = cond
        self._rx = rx
        self._tx = tx
        self._peer: Optional[_PipeEnd] = None
        self._closed = False
        self._read_deadline: Optional[float] = None
        self._write_deadline: Optional[float] = None
        self._write_lock = threading.Lock()

    @staticmethod
    def _remaining(deadline: Optional[float]) -> Optional[float]:
        if deadline is None:
            return None
        remaining = deadline - time.time()
        if remaining <= 0:
            raise TimeoutError("i/o timeout")
        return remaining

    def _peer_closed(self) -> bool:
        return self._peer is not None and self._peer._closed

    def read(self, size: int) -> bytes:
        with self._cond:
            while True:
                if self._closed:
                    raise BrokenPipeError(_CLOSED_PIPE)
                if self._peer_closed():
                    raise EOFError("EOF")
                remaining = self._remaining(self._read_deadline)
                rx = self._rx
                if rx.data is not None:
                    chunk = rx.data[rx.offset : rx.offset + size]
                    rx.offset += len(chunk)
                    if rx.offset >= len(rx.data):
                        rx.data = None
                        rx.offset = 0
                    self._cond.notify_all()
                    return chunk
                self._cond.wait(remaining)

    def write(self, data: bytes) -> int:
        payload = bytes(data)
        with self._write_lock, self._cond:
            if self._closed or self._peer_closed():
                raise BrokenPipeError(_CLOSED_PIPE)
            self._remaining(self._write_deadline)
            tx = self._tx
            tx.data = payload
            tx.offset = 0
            self._cond.notify_all()
            while tx.data is not None:
                if self._closed or self._peer_closed():
                    tx.data = None
                    raise BrokenPipeError(_CLOSED_PIPE)
                try:
                    remaining = self._remaining(self._write_deadline)
                except TimeoutError:
                    tx.data = None
                    tx.offset = 0
                    raise
                self._cond.wait(remaining)
            return len(payload)

    def close(self) -> None:
        with self._cond:
            self._closed = True
            self._cond.notify_all()

    def set_read_deadline(self, when: Optional[float]) -> None:
        with self._cond:
            self._read_deadline = when
            self._cond.notify_all()

    def set_write_deadline(self, when: Optional[float]) -> None:
        with self._cond:
            self._write_deadline = when
            self._cond.notify_all()

    def set_deadline(self, when: Optional[float]) -> None:
        with self._cond:
            self._read_deadline = when
            self._write_deadline = when
            self._cond.notify_all()

    def local_addr(self) -> _PipeAddr:
        return _PipeAddr()

    def remote_addr(self) -> _PipeAddr:
        return _PipeAddr()


def pipe() -> tuple[ConnCtx, ConnCtx]:
    """Create a connected pair of ConnCtx over an in-memory synchronous pipe."""
    cond = threading.Condition()
    a_to_b = _Channel()
    b_to_a = _Channel()
    end_a = _PipeEnd(cond, rx=b_to_a, tx=a_to_b)
    end_b = _PipeEnd(cond, rx=a_to_b, tx=b_to_a)
    end_a._peer = end_b
    end_b._peer = end_a
    return ConnCtx(end_a), ConnCtx(end_b)