"""
============================================================================
Vault - Notification Bus
============================================================================

Reliability Level: L6 Critical (Sovereign Tier)
Traceability: Every event persisted with correlation_id

Receives VaultEvents only after the facade has committed the state
transition that produced them. For each event the bus:

    1. Appends it to the in-memory history
    2. Logs it in the standard [VAULT-EVENT] format
    3. Increments the Prometheus event counter
    4. Inserts a row into vault_audit_log (when a DB session is attached)
    5. Forwards it to registered subscribers

Steps 4 and 5 never raise: the transition is already committed, so a
failure there is logged and the remaining steps continue.

============================================================================
"""

from collections import deque
from typing import Any, Callable, Deque, List, Optional
import json
import logging

from sqlalchemy import text

from app.observability.metrics import record_quorum_approval, record_vault_event
from vault.vault_models import VaultEvent, VaultEventType, VaultJSONEncoder

logger = logging.getLogger(__name__)

Subscriber = Callable[[VaultEvent], None]

# In-memory history keeps the most recent events; the audit table keeps all
DEFAULT_HISTORY_LIMIT = 10_000

AUDIT_INSERT = text("""
    INSERT INTO vault_audit_log (
        id, event_type, actor_id, previous_state, new_state,
        payload, correlation_id, created_at
    ) VALUES (
        :id, :event_type, :actor_id, :previous_state, :new_state,
        :payload, :correlation_id, :created_at
    )
""")


def _dump(value: Any) -> Optional[str]:
    if value is None:
        return None
    return json.dumps(value, sort_keys=True, cls=VaultJSONEncoder)


class NotificationBus:
    """Post-commit event fan-out with optional audit persistence."""

    def __init__(self, db_session: Optional[Any] = None, history_limit: int = DEFAULT_HISTORY_LIMIT) -> None:
        self._db_session = db_session
        self._history: Deque[VaultEvent] = deque(maxlen=history_limit)
        self._subscribers: List[Subscriber] = []

    @property
    def history(self) -> List[VaultEvent]:
        return list(self._history)

    def events_of_type(self, event_type: VaultEventType) -> List[VaultEvent]:
        return [e for e in self._history if e.event_type is event_type]

    def subscribe(self, subscriber: Subscriber) -> None:
        self._subscribers.append(subscriber)

    def publish(self, events: List[VaultEvent]) -> None:
        for event in events:
            self._history.append(event)
            logger.info(
                f"[VAULT-EVENT] {event.event_type.value} | "
                f"actor={event.actor_id} | "
                f"payload={_dump(event.payload)} | "
                f"correlation_id={event.correlation_id}"
            )
            record_vault_event(event.event_type.value, event.correlation_id)
            if event.event_type is VaultEventType.QUORUM_APPROVAL:
                record_quorum_approval(event.payload["kind"], event.payload["executed"])
            self._persist(event)
            self._forward(event)

    def _persist(self, event: VaultEvent) -> None:
        if self._db_session is None:
            logger.debug(
                f"[VAULT-EVENT] No database session - audit log not persisted | "
                f"event_type={event.event_type.value} | "
                f"correlation_id={event.correlation_id}"
            )
            return

        try:
            self._db_session.execute(AUDIT_INSERT, {
                "id": event.event_id,
                "event_type": event.event_type.value,
                "actor_id": event.actor_id,
                "previous_state": _dump(event.previous_state),
                "new_state": _dump(event.new_state),
                "payload": _dump(event.payload),
                "correlation_id": event.correlation_id,
                "created_at": event.created_at.isoformat(),
            })
            self._db_session.commit()
        except Exception as e:
            self._db_session.rollback()
            logger.error(
                f"[VAULT-EVENT] Failed to create audit log | "
                f"event_type={event.event_type.value} | "
                f"error={str(e)} | "
                f"correlation_id={event.correlation_id}"
            )

    def _forward(self, event: VaultEvent) -> None:
        for subscriber in self._subscribers:
            try:
                subscriber(event)
            except Exception as e:
                logger.error(
                    f"[VAULT-EVENT] Subscriber failed | "
                    f"event_type={event.event_type.value} | "
                    f"error={str(e)} | "
                    f"correlation_id={event.correlation_id}"
                )


__all__ = ["NotificationBus", "Subscriber"]
