"""Notification boundary.

Scheduling services call ``notify_many`` after their transaction committed.
Delivery is fire-and-forget: recipients are de-duplicated, failures are
logged and never propagate back into the scheduling operation.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from concurrent.futures import Executor
from typing import Any, Dict, Iterable, List, Optional

from crm_scheduler.domain.models import Notification, NotificationType
from crm_scheduler.domain.repositories import NotificationRepository

logger = logging.getLogger(__name__)


class Notifier(ABC):
    """Base notifier; subclasses implement ``deliver``."""

    def __init__(self, executor: Optional[Executor] = None):
        self.executor = executor

    def notify_many(
        self,
        user_ids: Iterable[Optional[str]],
        event_type: NotificationType,
        payload: Dict[str, Any],
    ) -> None:
        recipients = [user_id for user_id in dict.fromkeys(user_ids) if user_id]
        if not recipients:
            return

        if self.executor is not None:
            try:
                self.executor.submit(self._safe_deliver, recipients, event_type, dict(payload))
            except RuntimeError:
                logger.exception("Could not schedule %s notification", event_type.value)
            return

        self._safe_deliver(recipients, event_type, dict(payload))

    def _safe_deliver(self, recipients: List[str], event_type: NotificationType, payload: Dict[str, Any]) -> None:
        try:
            self.deliver(recipients, event_type, payload)
        except Exception:
            logger.exception(
                "Failed to deliver %s notification to %d recipient(s)", event_type.value, len(recipients)
            )

    @abstractmethod
    def deliver(self, recipients: List[str], event_type: NotificationType, payload: Dict[str, Any]) -> None:
        pass


class NullNotifier(Notifier):
    """Discards every notification."""

    def deliver(self, recipients, event_type, payload) -> None:
        logger.debug("Dropping %s notification for %s", event_type.value, recipients)


class DatabaseNotifier(Notifier):
    """Persists one Notification row per recipient in its own session."""

    def __init__(self, session_factory, executor: Optional[Executor] = None):
        super().__init__(executor)
        self.session_factory = session_factory

    def deliver(self, recipients, event_type, payload) -> None:
        session = self.session_factory()
        try:
            session.add_all(
                Notification(user_id=user_id, type=event_type, payload=payload)
                for user_id in recipients
            )
            session.commit()
            logger.info("Stored %s notification for %d recipient(s)", event_type.value, len(recipients))
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def notifications_for(self, user_id: str, take: int = 20) -> List[Notification]:
        """Newest notifications of one user."""
        session = self.session_factory()
        try:
            return NotificationRepository.get_for_user(session, user_id, take=take)
        finally:
            session.close()
