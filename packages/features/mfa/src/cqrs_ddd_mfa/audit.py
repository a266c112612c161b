"""Audit events for MFA operations.

Standardized events for tracking enrollment, verification and recovery.
Event naming follows the pattern ``mfa.<resource>.<action>``.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from .ports import IMfaAuditStore


class MfaEventType(Enum):
    """Types of MFA audit events."""

    ENROLLMENT_STARTED = "mfa.enrollment.started"
    FACTOR_VERIFIED = "mfa.factor.verified"
    FACTOR_VERIFY_FAILED = "mfa.factor.verify_failed"
    FACTOR_REMOVED = "mfa.factor.removed"
    VERIFICATION_LOCKED = "mfa.verification.locked"
    RECOVERY_ISSUED = "mfa.recovery.issued"
    RECOVERY_REDEEMED = "mfa.recovery.redeemed"
    RECOVERY_REJECTED = "mfa.recovery.rejected"


@dataclass(frozen=True)
class MfaAuditEvent:
    """MFA audit event.

    Attributes:
        event_type: The type of MFA event.
        account_id: The account the event concerns (None if unknown).
        timestamp: When the event occurred (UTC).
        success: Whether the operation was successful.
        error_code: Error code if operation failed.
        metadata: Additional event-specific data. Never secrets.
    """

    event_type: MfaEventType
    account_id: str | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    success: bool = True
    error_code: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.success and not self.error_code:
            object.__setattr__(self, "error_code", "UNKNOWN_ERROR")

    def to_dict(self) -> dict[str, Any]:
        """Convert event to a JSON-serializable dictionary."""
        return {
            "event_type": self.event_type.value,
            "account_id": self.account_id,
            "timestamp": self.timestamp.isoformat(),
            "success": self.success,
            "error_code": self.error_code,
            "metadata": self.metadata,
        }


class InMemoryMfaAuditStore(IMfaAuditStore):
    """In-memory audit store for testing and development.

    Note:
        Events are stored in memory and will be lost on restart.
        Not suitable for production use.
    """

    def __init__(self) -> None:
        self._events: list[MfaAuditEvent] = []
        self._by_account: dict[str, list[int]] = defaultdict(list)

    async def record(self, event: MfaAuditEvent) -> None:
        index = len(self._events)
        self._events.append(event)
        if event.account_id:
            self._by_account[event.account_id].append(index)

    async def get_events(
        self,
        account_id: str,
        *,
        event_types: list[MfaEventType] | None = None,
    ) -> list[MfaAuditEvent]:
        """Events of an account, most recent first."""
        results: list[MfaAuditEvent] = []
        for idx in reversed(self._by_account.get(account_id, [])):
            event = self._events[idx]
            if event_types and event.event_type not in event_types:
                continue
            results.append(event)
        return results

    @property
    def events(self) -> list[MfaAuditEvent]:
        return list(self._events)

    def clear(self) -> None:
        self._events.clear()
        self._by_account.clear()


__all__: list[str] = ["MfaEventType", "MfaAuditEvent", "InMemoryMfaAuditStore"]
