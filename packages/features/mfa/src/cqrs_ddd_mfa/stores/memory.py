"""In-memory collaborator implementations for TESTING ONLY.

⚠️ WARNING: State lives in local dictionaries. It is lost on restart and is
not shared between workers. Secrets are kept in plain text.
"""

from __future__ import annotations

import secrets
import uuid
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import datetime, timedelta

from ..domain import (
    AssuranceLevel,
    Challenge,
    Factor,
    FactorEnrollment,
    FactorStatus,
    RecoveryToken,
    SessionTokens,
    utcnow,
)
from ..exceptions import ChallengeNotFoundError, FactorNotFoundError, MfaInvalidError
from ..limiter import AttemptState
from ..ports import (
    IAttemptStateStorage,
    IFactorStore,
    IRecoveryTokenStore,
    ISessionGateway,
)
from ..totp import TotpParameters, generate_secret, provisioning_uri, verify_code


@dataclass
class _StoredFactor:
    factor: Factor
    secret: str


class InMemoryFactorStore(IFactorStore):
    """pyotp-backed factor store keeping factors and challenges in memory.

    Challenges are single use and expire after ``challenge_ttl_seconds``.
    """

    def __init__(
        self,
        params: TotpParameters | None = None,
        *,
        challenge_ttl_seconds: int = 300,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.params = params or TotpParameters()
        self.challenge_ttl_seconds = challenge_ttl_seconds
        self.clock = clock
        self._factors: dict[str, _StoredFactor] = {}
        self._challenges: dict[str, Challenge] = {}

    async def enroll(self, account_id: str) -> FactorEnrollment:
        secret = generate_secret()
        factor = Factor(
            id=str(uuid.uuid4()),
            account_id=account_id,
            status=FactorStatus.UNVERIFIED,
            created_at=self.clock(),
        )
        self._factors[factor.id] = _StoredFactor(factor, secret)
        return FactorEnrollment(
            factor=factor,
            provisioning_uri=provisioning_uri(secret, account_id, self.params),
            secret=secret,
        )

    async def list_factors(self, account_id: str) -> list[Factor]:
        factors = [s.factor for s in self._factors.values() if s.factor.account_id == account_id]
        return sorted(factors, key=lambda f: f.created_at)

    async def challenge(self, factor_id: str) -> Challenge:
        if factor_id not in self._factors:
            raise FactorNotFoundError(factor_id)
        challenge = Challenge(
            id=str(uuid.uuid4()),
            factor_id=factor_id,
            expires_at=self.clock() + timedelta(seconds=self.challenge_ttl_seconds),
        )
        self._challenges[challenge.id] = challenge
        return challenge

    async def verify(self, factor_id: str, challenge_id: str, code: str) -> SessionTokens:
        challenge = self._challenges.pop(challenge_id, None)
        if (
            challenge is None
            or challenge.factor_id != factor_id
            or challenge.is_expired(self.clock())
        ):
            raise ChallengeNotFoundError(challenge_id)

        stored = self._factors.get(factor_id)
        if stored is None:
            raise FactorNotFoundError(factor_id)
        if not verify_code(stored.secret, code, self.params):
            raise MfaInvalidError("Invalid TOTP code")

        if not stored.factor.is_verified:
            stored.factor = replace(stored.factor, status=FactorStatus.VERIFIED)
        return SessionTokens.issue()

    async def delete_factor(self, account_id: str, factor_id: str) -> None:
        stored = self._factors.get(factor_id)
        if stored is None or stored.factor.account_id != account_id:
            return
        del self._factors[factor_id]
        for cid in [c.id for c in self._challenges.values() if c.factor_id == factor_id]:
            del self._challenges[cid]

    def secret_for(self, factor_id: str) -> str:
        """Stored secret of a factor (tests only)."""
        return self._factors[factor_id].secret


class InMemoryRecoveryTokenStore(IRecoveryTokenStore):
    """Recovery tokens kept in a dictionary keyed by record id."""

    def __init__(self) -> None:
        self._tokens: dict[str, RecoveryToken] = {}

    async def insert(
        self,
        account_id: str,
        token: str,
        expires_at: datetime,
    ) -> RecoveryToken:
        record = RecoveryToken(
            id=str(uuid.uuid4()),
            account_id=account_id,
            token_value=token,
            expires_at=expires_at,
        )
        self._tokens[record.id] = record
        return record

    async def find_by_token(self, token: str) -> RecoveryToken | None:
        for record in self._tokens.values():
            if secrets.compare_digest(record.token_value, token):
                return record
        return None

    async def list_for_account(self, account_id: str) -> list[RecoveryToken]:
        return [t for t in self._tokens.values() if t.account_id == account_id]

    async def delete(self, token_id: str) -> bool:
        return self._tokens.pop(token_id, None) is not None

    def __len__(self) -> int:
        return len(self._tokens)


class InMemoryAttemptStorage(IAttemptStateStorage):
    """Attempt limiter state kept in a dictionary."""

    def __init__(self) -> None:
        self._states: dict[str, AttemptState] = {}

    async def load(self, key: str) -> AttemptState | None:
        return self._states.get(key)

    async def save(self, key: str, state: AttemptState) -> None:
        self._states[key] = state

    async def clear(self, key: str) -> None:
        self._states.pop(key, None)


class InMemorySessionGateway(ISessionGateway):
    """Tracks the assurance level and tokens of each account's session."""

    def __init__(self) -> None:
        self._levels: dict[str, AssuranceLevel] = {}
        self.tokens: dict[str, SessionTokens] = {}

    async def promote(self, account_id: str, tokens: SessionTokens) -> None:
        self._levels[account_id] = tokens.assurance_level
        self.tokens[account_id] = tokens

    async def demote(self, account_id: str) -> None:
        self._levels[account_id] = AssuranceLevel.AAL1
        self.tokens.pop(account_id, None)

    async def get_assurance_level(self, account_id: str) -> AssuranceLevel:
        return self._levels.get(account_id, AssuranceLevel.AAL1)


__all__: list[str] = [
    "InMemoryFactorStore",
    "InMemoryRecoveryTokenStore",
    "InMemoryAttemptStorage",
    "InMemorySessionGateway",
]
