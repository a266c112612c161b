"""SQLAlchemy 2.x async stores for factors and recovery tokens.

Tables:

- ``mfa_factors``: one row per factor, with its TOTP secret.
- ``mfa_challenges``: open single-use challenges.
- ``mfa_recovery_tokens``: recovery tokens, keyed by the SHA-256 digest of the
  token value. The raw value is never stored.

Driver errors are reported as :class:`~cqrs_ddd_mfa.exceptions.ProviderError`.
"""

from __future__ import annotations

import hashlib
import logging
import uuid
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from datetime import datetime, timedelta

from sqlalchemy import DateTime, ForeignKey, String, delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from ..domain import (
    Challenge,
    Factor,
    FactorEnrollment,
    FactorStatus,
    RecoveryToken,
    SessionTokens,
    as_utc,
    utcnow,
)
from ..exceptions import (
    ChallengeNotFoundError,
    FactorNotFoundError,
    MfaInvalidError,
    ProviderError,
)
from ..ports import IFactorStore, IRecoveryTokenStore
from ..totp import TotpParameters, generate_secret, provisioning_uri, verify_code

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Declarative base for the MFA tables."""


class FactorModel(Base):
    __tablename__ = "mfa_factors"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    account_id: Mapped[str] = mapped_column(String(255), index=True)
    secret: Mapped[str] = mapped_column(String(64))
    status: Mapped[str] = mapped_column(String(16), default=FactorStatus.UNVERIFIED.value)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    def to_domain(self) -> Factor:
        return Factor(
            id=self.id,
            account_id=self.account_id,
            status=FactorStatus(self.status),
            created_at=as_utc(self.created_at),
        )


class ChallengeModel(Base):
    __tablename__ = "mfa_challenges"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    factor_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("mfa_factors.id", ondelete="CASCADE"), index=True
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))


class RecoveryTokenModel(Base):
    __tablename__ = "mfa_recovery_tokens"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    account_id: Mapped[str] = mapped_column(String(255), index=True)
    token_hash: Mapped[str] = mapped_column(String(64), unique=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    def to_domain(self, token_value: str = "") -> RecoveryToken:
        return RecoveryToken(
            id=self.id,
            account_id=self.account_id,
            token_value=token_value,
            expires_at=as_utc(self.expires_at),
            created_at=as_utc(self.created_at),
        )


def hash_token(token: str) -> str:
    """SHA-256 hex digest under which a recovery token is stored."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


async def create_schema(engine: AsyncEngine) -> None:
    """Create the MFA tables if they do not exist."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


class _SQLAlchemyStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    @asynccontextmanager
    async def _transaction(self, operation: str) -> AsyncIterator[AsyncSession]:
        try:
            async with self._session_factory() as session, session.begin():
                yield session
        except SQLAlchemyError as e:
            logger.error("MFA store %s failed: %s", operation, e)
            raise ProviderError(
                f"Database error during {operation}", operation=operation
            ) from e


class SQLAlchemyFactorStore(_SQLAlchemyStore, IFactorStore):
    """Factor store backed by SQL tables and pyotp.

    Example:
        ```python
        engine = create_async_engine("sqlite+aiosqlite:///mfa.db")
        await create_schema(engine)
        store = SQLAlchemyFactorStore(async_sessionmaker(engine))
        ```
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        params: TotpParameters | None = None,
        *,
        challenge_ttl_seconds: int = 300,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        super().__init__(session_factory)
        self.params = params or TotpParameters()
        self.challenge_ttl_seconds = challenge_ttl_seconds
        self.clock = clock

    async def enroll(self, account_id: str) -> FactorEnrollment:
        secret = generate_secret()
        row = FactorModel(
            id=str(uuid.uuid4()),
            account_id=account_id,
            secret=secret,
            status=FactorStatus.UNVERIFIED.value,
            created_at=self.clock(),
        )
        factor = row.to_domain()
        async with self._transaction("enroll") as session:
            session.add(row)
        return FactorEnrollment(
            factor=factor,
            provisioning_uri=provisioning_uri(secret, account_id, self.params),
            secret=secret,
        )

    async def list_factors(self, account_id: str) -> list[Factor]:
        stmt = (
            select(FactorModel)
            .where(FactorModel.account_id == account_id)
            .order_by(FactorModel.created_at)
        )
        async with self._transaction("list_factors") as session:
            rows = (await session.scalars(stmt)).all()
            return [row.to_domain() for row in rows]

    async def challenge(self, factor_id: str) -> Challenge:
        challenge = Challenge(
            id=str(uuid.uuid4()),
            factor_id=factor_id,
            expires_at=self.clock() + timedelta(seconds=self.challenge_ttl_seconds),
        )
        async with self._transaction("challenge") as session:
            if await session.get(FactorModel, factor_id) is None:
                raise FactorNotFoundError(factor_id)
            session.add(
                ChallengeModel(
                    id=challenge.id,
                    factor_id=factor_id,
                    expires_at=challenge.expires_at,
                )
            )
        return challenge

    async def verify(self, factor_id: str, challenge_id: str, code: str) -> SessionTokens:
        now = self.clock()
        # consumed in its own transaction so a wrong code burns the challenge too
        async with self._transaction("verify") as session:
            row = await session.get(ChallengeModel, challenge_id)
            if row is None or row.factor_id != factor_id:
                raise ChallengeNotFoundError(challenge_id)
            expired = now > as_utc(row.expires_at)
            await session.delete(row)
            factor = await session.get(FactorModel, factor_id)
            secret = factor.secret if factor is not None else None

        if expired:
            raise ChallengeNotFoundError(challenge_id)
        if secret is None:
            raise FactorNotFoundError(factor_id)
        if not verify_code(secret, code, self.params):
            raise MfaInvalidError("Invalid TOTP code")

        async with self._transaction("verify") as session:
            factor = await session.get(FactorModel, factor_id)
            if factor is None:
                raise FactorNotFoundError(factor_id)
            factor.status = FactorStatus.VERIFIED.value
        return SessionTokens.issue()

    async def delete_factor(self, account_id: str, factor_id: str) -> None:
        async with self._transaction("delete_factor") as session:
            await session.execute(
                delete(ChallengeModel).where(ChallengeModel.factor_id == factor_id)
            )
            await session.execute(
                delete(FactorModel).where(
                    FactorModel.id == factor_id,
                    FactorModel.account_id == account_id,
                )
            )


class SQLAlchemyRecoveryTokenStore(_SQLAlchemyStore, IRecoveryTokenStore):
    """Recovery token table keyed by token digest.

    Records returned by :meth:`list_for_account` carry an empty
    ``token_value``; only the digest is stored.
    """

    async def insert(
        self,
        account_id: str,
        token: str,
        expires_at: datetime,
    ) -> RecoveryToken:
        row = RecoveryTokenModel(
            id=str(uuid.uuid4()),
            account_id=account_id,
            token_hash=hash_token(token),
            expires_at=expires_at,
            created_at=utcnow(),
        )
        record = row.to_domain(token)
        async with self._transaction("insert_token") as session:
            session.add(row)
        return record

    async def find_by_token(self, token: str) -> RecoveryToken | None:
        stmt = select(RecoveryTokenModel).where(
            RecoveryTokenModel.token_hash == hash_token(token)
        )
        async with self._transaction("find_token") as session:
            row = (await session.scalars(stmt)).first()
            return row.to_domain(token) if row is not None else None

    async def list_for_account(self, account_id: str) -> list[RecoveryToken]:
        stmt = select(RecoveryTokenModel).where(
            RecoveryTokenModel.account_id == account_id
        )
        async with self._transaction("list_tokens") as session:
            return [row.to_domain() for row in (await session.scalars(stmt)).all()]

    async def delete(self, token_id: str) -> bool:
        async with self._transaction("delete_token") as session:
            result = await session.execute(
                delete(RecoveryTokenModel).where(RecoveryTokenModel.id == token_id)
            )
            return bool(getattr(result, "rowcount", 0))


def create_engine_and_sessions(
    database_url: str,
) -> tuple[AsyncEngine, async_sessionmaker[AsyncSession]]:
    """Build an async engine and a session factory that keeps objects loaded."""
    engine = create_async_engine(database_url)
    return engine, async_sessionmaker(engine, expire_on_commit=False)


__all__: list[str] = [
    "Base",
    "FactorModel",
    "ChallengeModel",
    "RecoveryTokenModel",
    "hash_token",
    "create_schema",
    "create_engine_and_sessions",
    "SQLAlchemyFactorStore",
    "SQLAlchemyRecoveryTokenStore",
]
