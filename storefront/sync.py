"""
Shared machinery for session-scoped stores that mirror a server-owned resource.
"""
import asyncio
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional

from storefront.api_client import ApiClient
from storefront.exceptions import ApiError, SessionClosedError

logger = logging.getLogger(__name__)


class SyncStatus(str, Enum):
    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    READY = "ready"


Listener = Callable[["SyncStore"], None]


class SyncStore:
    """
    Base class for sync stores.

    Operations are queued FIFO on a per-store lock, so overlapping intents
    apply in the order they were issued. An operation computes the next
    snapshot from the network and hands it to _commit(); if it fails, the
    current snapshot is left untouched and the error is both stored on
    self.error and re-raised to the caller.

    reset() bumps a generation counter. Results of operations issued before
    the reset are discarded and queued operations from the old generation
    never reach the network.
    """

    name = "store"

    def __init__(self, api: ApiClient):
        self.api = api
        self.status = SyncStatus.UNINITIALIZED
        self.error: Optional[ApiError] = None
        self._listeners: List[Listener] = []
        self._lock = asyncio.Lock()
        self._generation = 0
        self._closed = False

    @property
    def is_ready(self) -> bool:
        return self.status == SyncStatus.READY

    @property
    def is_loading(self) -> bool:
        return self.status == SyncStatus.LOADING

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register listener for state changes; returns the unsubscribe function"""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception:
                logger.exception(f"{self.name} listener failed")

    def dismiss_error(self) -> None:
        if self.error is not None:
            self.error = None
            self._notify()

    def reset(self) -> None:
        """Drop local state without touching the server (logout)"""
        self._generation += 1
        self._reset_state()
        self.status = SyncStatus.UNINITIALIZED
        self.error = None
        self._notify()

    def close(self) -> None:
        """Reset and refuse any further operation"""
        self.reset()
        self._closed = True
        self._listeners.clear()

    def _reset_state(self) -> None:
        raise NotImplementedError

    def _commit(self, snapshot: Any) -> None:
        raise NotImplementedError

    async def _run(self, operation: str, func: Callable[[], Awaitable[Any]]) -> bool:
        """
        Run one queued operation.

        func returns the next snapshot, or None when there is nothing to
        change. Returns True when a snapshot was committed.
        """
        if self._closed:
            raise SessionClosedError()
        generation = self._generation

        async with self._lock:
            if generation != self._generation:
                logger.info(
                    f"Skipping {self.name} {operation} queued before reset",
                    extra={"store": self.name, "operation": operation}
                )
                return False

            previous_status = self.status
            self.status = SyncStatus.LOADING
            self._notify()

            try:
                snapshot = await func()
            except ApiError as e:
                if generation != self._generation:
                    raise
                self.status = previous_status
                self.error = e
                self._notify()
                logger.warning(
                    f"{self.name} {operation} failed: {e.message}",
                    extra={"store": self.name, "operation": operation, "status_code": e.status}
                )
                raise
            except BaseException:
                # Cancellation or a programming error: leave the snapshot alone
                if generation == self._generation:
                    self.status = previous_status
                    self._notify()
                raise

            if generation != self._generation:
                logger.info(
                    f"Discarding {self.name} {operation} result after reset",
                    extra={"store": self.name, "operation": operation}
                )
                return False

            committed = snapshot is not None
            if committed:
                self._commit(snapshot)
                self.status = SyncStatus.READY
                self.error = None
            else:
                self.status = previous_status
            self._notify()
            return committed
