"""
Recovery slots for unsaved work.

A slot holds one ``{"identity": ..., "state": ...}`` envelope under a fixed
key. The identity says which piece of work the state belongs to; a reader
only gets the state back when its own identity matches. Read and write
failures are logged and behave like an empty slot so they never block the
edit or generation flow.
"""

import asyncio
import json
from collections.abc import Callable
from typing import Any, Generic, TypeVar

from pydantic import ValidationError

from .logging_utils import logs_handler
from .store import KeyValueStore

logger = logs_handler.get_logger("drafts")

T = TypeVar("T")

DEFAULT_DEBOUNCE_SECONDS = 1.0


class RecoverySlot(Generic[T]):
    def __init__(
        self,
        kv: KeyValueStore,
        key: str,
        dump: Callable[[T], Any],
        load: Callable[[Any], T],
    ):
        self.kv = kv
        self.key = key
        self._dump = dump
        self._load = load

    def read(self) -> tuple[Any, T] | None:
        try:
            text = self.kv.get(self.key)
            if not text:
                return None
            envelope = json.loads(text)
            return envelope["identity"], self._load(envelope["state"])
        except (OSError, ValueError, KeyError, TypeError, ValidationError) as e:
            logger.error("Could not read draft %s, discarding it: %s", self.key, e)
            self.discard()
            return None

    def find(self, identity: Any) -> T | None:
        found = self.read()
        if found is None:
            return None
        stored_identity, state = found
        if stored_identity != identity:
            logger.debug("Draft %s belongs to another context; ignoring", self.key)
            return None
        return state

    def save(self, identity: Any, state: T) -> None:
        try:
            envelope = {"identity": identity, "state": self._dump(state)}
            self.kv.set(self.key, json.dumps(envelope, ensure_ascii=False))
        except (OSError, RuntimeError, TypeError, ValueError) as e:
            logger.error("Failed to save draft %s: %s", self.key, e)

    def discard(self) -> None:
        try:
            self.kv.delete(self.key)
        except OSError as e:
            logger.error("Failed to delete draft %s: %s", self.key, e)


class DebouncedDraft(Generic[T]):
    """Auto-save for one edit context.

    ``schedule`` is called after every mutation; only the state given in the
    last call before the delay elapses gets written.
    """

    def __init__(self, slot: RecoverySlot[T], identity: Any, delay: float = DEFAULT_DEBOUNCE_SECONDS):
        self.slot = slot
        self.identity = identity
        self.delay = delay
        self._pending: T | None = None
        self._has_pending = False
        self._handle: asyncio.TimerHandle | None = None

    @property
    def has_pending(self) -> bool:
        return self._has_pending

    def offer_restore(self, confirm: Callable[[], bool]) -> T | None:
        state = self.slot.find(self.identity)
        if state is None or not confirm():
            return None
        logger.info("Restoring draft %s", self.slot.key)
        return state

    def schedule(self, state: T) -> None:
        self.cancel()
        self._pending = state
        self._has_pending = True
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # nothing to defer onto outside an event loop
            self.flush()
            return
        self._handle = loop.call_later(self.delay, self.flush)

    def flush(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        if not self._has_pending:
            return
        state = self._pending
        self._pending = None
        self._has_pending = False
        self.slot.save(self.identity, state)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self._pending = None
        self._has_pending = False

    def close(self) -> None:
        """End the session: nothing pending, nothing left in the slot."""
        self.cancel()
        self.slot.discard()
