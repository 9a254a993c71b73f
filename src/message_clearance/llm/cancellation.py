"""
Cooperative cancellation for the request pipeline.

A CancelToken is a one-shot flag with callbacks. Work that should stop when
the token trips is awaited through token.run(), which wraps it in a task and
cancels that task the moment the token fires:

    token = CancelToken()
    response = await token.run(client.post(url, json=payload))
    await token.sleep(2.0)          # backoff that unwinds on cancel

Tokens compose:

    combined = any_token(caller_token, timeout_token(30.0))
    try:
        await combined.run(call())
    finally:
        combined.close()            # detach from every source

The reason of whichever source tripped first is carried through, so callers
can tell a timeout (TIMEOUT_REASON) from an explicit cancel.
"""

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

CANCEL_REASON = "cancelled"
TIMEOUT_REASON = "timeout"


class OperationCancelled(Exception):
    """Raised when work awaited through a CancelToken is interrupted by it."""

    def __init__(self, reason: str = CANCEL_REASON):
        super().__init__(f"Operation cancelled ({reason})")
        self.reason = reason


class CancelToken:
    """One-shot cancellation flag with listener callbacks."""

    def __init__(self):
        self._cancelled = False
        self._reason = ""
        self._callbacks: list[Callable[[str], None]] = []
        self._finalizers: list[Callable[[], None]] = []
        self._closed = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def reason(self) -> str:
        return self._reason

    def cancel(self, reason: str = CANCEL_REASON) -> None:
        """Trip the token. Later calls are no-ops."""
        if self._cancelled:
            return
        self._cancelled = True
        self._reason = reason
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            try:
                callback(reason)
            except Exception as e:
                logger.error(f"[Cancel] Listener failed: {e}", exc_info=True)

    def add_callback(self, callback: Callable[[str], None]) -> Callable[[], None]:
        """Register a listener. Returns a function that unregisters it.

        If the token has already tripped the listener runs immediately.
        """
        if self._cancelled:
            callback(self._reason)
            return lambda: None

        self._callbacks.append(callback)

        def remove() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return remove

    def add_finalizer(self, finalizer: Callable[[], None]) -> None:
        self._finalizers.append(finalizer)

    def close(self) -> None:
        """Release timers and source listeners held by this token."""
        if self._closed:
            return
        self._closed = True
        finalizers, self._finalizers = self._finalizers, []
        for finalizer in finalizers:
            finalizer()

    async def run(self, awaitable: Awaitable[T]) -> T:
        """Await `awaitable`, cancelling it if the token trips first."""
        if self._cancelled:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise OperationCancelled(self._reason)

        task = asyncio.ensure_future(awaitable)
        remove = self.add_callback(lambda _reason: task.cancel())
        try:
            return await task
        except asyncio.CancelledError:
            if self._cancelled:
                raise OperationCancelled(self._reason) from None
            raise
        finally:
            remove()

    async def sleep(self, seconds: float) -> None:
        """Sleep that raises OperationCancelled as soon as the token trips."""
        await self.run(asyncio.sleep(seconds))

    def __repr__(self) -> str:
        state = f"cancelled:{self._reason}" if self._cancelled else "live"
        return f"CancelToken({state})"


def any_token(*tokens: CancelToken | None) -> CancelToken:
    """Fan-in: a token that trips when any of `tokens` trips.

    None entries are ignored. Listeners on the sources are removed as soon as
    one of them fires, or when the combined token is closed.
    """
    combined = CancelToken()
    removers: list[Callable[[], None]] = []

    def detach() -> None:
        for remove in removers:
            remove()
        removers.clear()

    def trip(reason: str) -> None:
        detach()
        combined.cancel(reason)

    for token in tokens:
        if token is None:
            continue
        if token.cancelled:
            trip(token.reason)
            break
        removers.append(token.add_callback(trip))

    combined.add_finalizer(detach)
    return combined


def timeout_token(seconds: float) -> CancelToken:
    """A token that trips with TIMEOUT_REASON after `seconds`.

    Must be created inside a running event loop. close() cancels the timer.
    """
    token = CancelToken()
    loop = asyncio.get_running_loop()
    handle = loop.call_later(seconds, token.cancel, TIMEOUT_REASON)
    token.add_finalizer(handle.cancel)
    return token


async def cancellable_sleep(seconds: float, token: CancelToken | None) -> None:
    """Backoff sleep used by the retry layer."""
    if token is None:
        await asyncio.sleep(seconds)
        return
    await token.sleep(seconds)
