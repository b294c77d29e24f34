from __future__ import annotations

import logging
from collections.abc import Iterable

from sqlalchemy import delete, select

from fcm_push.models import db as db_module
from fcm_push.models.tables import NotificationToken

logger = logging.getLogger(__name__)


class DeviceRepository:
    """Device registration tokens, one row per token."""

    def __init__(self, session_factory=None) -> None:
        self._session_factory = session_factory

    def _session(self):
        factory = self._session_factory or db_module.SessionLocal
        return factory()

    def register(self, user_id: str, platform: str, token: str) -> None:
        with self._session() as db:
            row = db.execute(select(NotificationToken).where(NotificationToken.token == token)).scalar_one_or_none()
            if row is None:
                db.add(NotificationToken(user_id=user_id, platform=platform, token=token))
            else:
                # A token moves with the device, so re-registration reassigns it.
                row.user_id = user_id
                row.platform = platform
            db.commit()

    def list_tokens(self, user_id: str, platform: str | None = None) -> list[str]:
        stmt = select(NotificationToken.token).where(NotificationToken.user_id == user_id)
        if platform:
            stmt = stmt.where(NotificationToken.platform == platform)
        with self._session() as db:
            return [token for token in db.execute(stmt.order_by(NotificationToken.id)).scalars().all() if token]

    def all_tokens(self, limit: int | None = None) -> list[str]:
        stmt = select(NotificationToken.token).order_by(NotificationToken.id)
        if limit:
            stmt = stmt.limit(limit)
        with self._session() as db:
            return list(db.execute(stmt).scalars().all())

    def delete_tokens(self, tokens: Iterable[str]) -> int:
        unique = sorted(set(tokens))
        if not unique:
            return 0
        with self._session() as db:
            result = db.execute(delete(NotificationToken).where(NotificationToken.token.in_(unique)))
            db.commit()
            deleted = result.rowcount or 0
        logger.info("Deleted device tokens", extra={"requested": len(unique), "deleted": deleted})
        return deleted
