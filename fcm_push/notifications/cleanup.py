from __future__ import annotations

import hashlib
import logging
import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Protocol

from fcm_push.storage.cache import TTLCache
from fcm_push.utils.validation import mask_token

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InvalidTokenEvent:
    token: str


Subscriber = Callable[[InvalidTokenEvent], None]


class TokenStore(Protocol):
    def delete_tokens(self, tokens: Iterable[str]) -> int:
        ...


def token_lock_key(token: str) -> str:
    return "fcm_cleanup:" + hashlib.sha256(token.encode("utf-8")).hexdigest()


class CleanupSignal:
    def __init__(self, lock_seconds: float = 10, lock_store: TTLCache | None = None) -> None:
        self.lock_seconds = lock_seconds
        self._locks = lock_store or TTLCache()
        self._subscribers: list[Subscriber] = []
        self._subscribers_lock = threading.Lock()

    def subscribe(self, subscriber: Subscriber) -> None:
        with self._subscribers_lock:
            if subscriber not in self._subscribers:
                self._subscribers.append(subscriber)

    def unsubscribe(self, subscriber: Subscriber) -> None:
        with self._subscribers_lock:
            if subscriber in self._subscribers:
                self._subscribers.remove(subscriber)

    def notify_invalid(self, token: str) -> bool:
        if not token:
            logger.warning("FCM: No token provided to cleanup signal")
            return False
        if not self._locks.add(token_lock_key(token), True, ttl_seconds=self.lock_seconds):
            logger.debug("FCM: Duplicate cleanup signal suppressed", extra={"token": mask_token(token)})
            return False

        logger.info(
            "FCM: Unregistered token detected",
            extra={"token": mask_token(token), "action": "should_remove_from_database"},
        )
        event = InvalidTokenEvent(token=token)
        with self._subscribers_lock:
            subscribers = list(self._subscribers)
        for subscriber in subscribers:
            try:
                subscriber(event)
            except Exception as exc:
                logger.exception(
                    "FCM: Cleanup subscriber failed",
                    extra={"token": mask_token(token), "error": str(exc)},
                )
        return True


class DatabaseTokenCleanup:
    def __init__(self, store: TokenStore) -> None:
        self.store = store

    def __call__(self, event: InvalidTokenEvent) -> None:
        deleted = self.store.delete_tokens([event.token])
        if deleted:
            logger.info(
                "FCM: Successfully cleaned up unregistered token",
                extra={"token": mask_token(event.token), "deleted_count": deleted},
            )
        else:
            logger.info("FCM: Unregistered token not found in database", extra={"token": mask_token(event.token)})
