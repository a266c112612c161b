"""Client-side attempt limiter for TOTP verification.

Advisory UX throttling only: it slows down a user hammering the code field
but is not a security boundary. The authoritative rate limit belongs to the
factor store / auth provider.

The rules are pure functions of ``(state, outcome, now, policy)`` so they can
run anywhere; :class:`AttemptLimiter` wires them to an injected
:class:`~cqrs_ddd_mfa.ports.IAttemptStateStorage`.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import TYPE_CHECKING, Any

from .config import AttemptPolicy
from .domain import as_utc, utcnow

if TYPE_CHECKING:
    from .ports import IAttemptStateStorage

logger = logging.getLogger(__name__)


class AttemptOutcome(Enum):
    """Result of one verification attempt."""

    SUCCESS = "success"
    FAILURE = "failure"


@dataclass(frozen=True)
class AttemptState:
    """Consecutive failures and the end of the current lockout, if any."""

    count: int = 0
    blocked_until: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "count": self.count,
            "blocked_until": self.blocked_until.isoformat()
            if self.blocked_until
            else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AttemptState:
        raw = data.get("blocked_until")
        return cls(
            count=int(data.get("count", 0)),
            blocked_until=as_utc(datetime.fromisoformat(raw)) if raw else None,
        )


@dataclass(frozen=True)
class LimiterDecision:
    """New limiter state plus what to tell the user.

    Attributes:
        state: State to persist.
        allowed: Whether a verification attempt may be made now.
        wait_seconds: Remaining lockout in seconds (0 when allowed).
        remaining_attempts: Failures left before the next lockout.
        message: User-facing wait message when blocked.
    """

    state: AttemptState
    allowed: bool
    wait_seconds: int = 0
    remaining_attempts: int = 0
    message: str | None = None


def format_wait_message(wait_seconds: int) -> str:
    """Human readable lockout message."""
    if wait_seconds >= 60:
        minutes = math.ceil(wait_seconds / 60)
        unit = "minute" if minutes == 1 else "minutes"
        amount = f"{minutes} {unit}"
    else:
        unit = "second" if wait_seconds == 1 else "seconds"
        amount = f"{wait_seconds} {unit}"
    return f"Too many failed attempts. Please wait {amount} before trying again."


def _blocked(state: AttemptState, now: datetime) -> LimiterDecision:
    assert state.blocked_until is not None
    wait = max(1, math.ceil((as_utc(state.blocked_until) - now).total_seconds()))
    return LimiterDecision(
        state=state,
        allowed=False,
        wait_seconds=wait,
        message=format_wait_message(wait),
    )


def check_block(
    state: AttemptState,
    now: datetime,
    policy: AttemptPolicy,
) -> LimiterDecision:
    """Decide whether an attempt may be made at *now*.

    A lockout whose ``blocked_until`` has passed is dropped and counting
    starts again from zero.
    """
    if state.blocked_until is not None:
        if now < as_utc(state.blocked_until):
            return _blocked(state, now)
        state = AttemptState()
    return LimiterDecision(
        state=state,
        allowed=True,
        remaining_attempts=policy.max_attempts - state.count,
    )


def apply_outcome(
    state: AttemptState,
    outcome: AttemptOutcome,
    now: datetime,
    policy: AttemptPolicy,
) -> LimiterDecision:
    """Fold one attempt outcome into the limiter state.

    Success resets the counter. A failure increments it; reaching
    ``policy.max_attempts`` sets ``blocked_until`` and resets the counter.
    Outcomes reported while blocked leave the state unchanged.
    """
    current = check_block(state, now, policy)
    if not current.allowed:
        return current

    if outcome is AttemptOutcome.SUCCESS:
        return LimiterDecision(
            state=AttemptState(),
            allowed=True,
            remaining_attempts=policy.max_attempts,
        )

    count = current.state.count + 1
    if count >= policy.max_attempts:
        blocked_until = now + timedelta(seconds=policy.lockout_seconds)
        return _blocked(AttemptState(count=0, blocked_until=blocked_until), now)

    return LimiterDecision(
        state=AttemptState(count=count),
        allowed=True,
        remaining_attempts=policy.max_attempts - count,
    )


class AttemptLimiter:
    """Applies the limiter rules to state kept in an injected storage.

    Example:
        ```python
        limiter = AttemptLimiter(InMemoryAttemptStorage(), AttemptPolicy(3, 600))

        decision = await limiter.check("user-123")
        if not decision.allowed:
            return decision.message

        ok = await verify(...)
        await limiter.record(
            "user-123",
            AttemptOutcome.SUCCESS if ok else AttemptOutcome.FAILURE,
        )
        ```
    """

    def __init__(
        self,
        storage: IAttemptStateStorage,
        policy: AttemptPolicy | None = None,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        """Initialize the limiter.

        Args:
            storage: Where attempt state is kept.
            policy: Threshold and lockout duration (default 5 / 5 min).
            clock: Returns the current UTC time.
        """
        self.storage = storage
        self.policy = policy or AttemptPolicy()
        self._clock = clock

    async def _load(self, key: str) -> AttemptState:
        return await self.storage.load(key) or AttemptState()

    async def check(self, key: str) -> LimiterDecision:
        """Check whether *key* may attempt a verification now."""
        state = await self._load(key)
        decision = check_block(state, self._clock(), self.policy)
        if decision.state != state:
            # lockout elapsed
            await self.storage.clear(key)
        return decision

    async def record(self, key: str, outcome: AttemptOutcome) -> LimiterDecision:
        """Record an attempt outcome for *key* and persist the new state."""
        state = await self._load(key)
        decision = apply_outcome(state, outcome, self._clock(), self.policy)
        if decision.state == AttemptState():
            await self.storage.clear(key)
        elif decision.state != state:
            await self.storage.save(key, decision.state)
            if not decision.allowed:
                logger.warning(
                    "Verification locked for %s for %ss", key, decision.wait_seconds
                )
        return decision


__all__: list[str] = [
    "AttemptOutcome",
    "AttemptState",
    "LimiterDecision",
    "format_wait_message",
    "check_block",
    "apply_outcome",
    "AttemptLimiter",
]
