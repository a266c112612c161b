"""Tests for the SQLAlchemy stores on aiosqlite."""

from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest
from sqlalchemy import select, text
from sqlalchemy.exc import OperationalError

from cqrs_ddd_mfa import (
    Enrolled,
    Failed,
    MfaErrorCode,
    MfaStateMachine,
    RecoveryTokenManager,
)
from cqrs_ddd_mfa.domain import FactorStatus
from cqrs_ddd_mfa.exceptions import (
    ChallengeNotFoundError,
    FactorNotFoundError,
    MfaInvalidError,
    ProviderError,
)
from cqrs_ddd_mfa.factory import create_sqlalchemy_stores
from cqrs_ddd_mfa.ports import IFactorStore, IRecoveryTokenStore
from cqrs_ddd_mfa.stores import InMemorySessionGateway
from cqrs_ddd_mfa.stores.sqlalchemy import RecoveryTokenModel, create_schema, hash_token
from cqrs_ddd_mfa.totp import TotpParameters, current_code, verify_code


@pytest.fixture
async def stores(tmp_path, clock):
    sql = create_sqlalchemy_stores(
        f"sqlite+aiosqlite:///{tmp_path / 'mfa.db'}",
        totp_params=TotpParameters(issuer="Acme"),
        clock=clock,
    )
    await create_schema(sql.engine)
    yield sql
    await sql.engine.dispose()


async def secret_of(stores, factor_id: str) -> str:
    async with stores.engine.connect() as conn:
        row = await conn.execute(
            text("SELECT secret FROM mfa_factors WHERE id = :id"), {"id": factor_id}
        )
        return row.scalar_one()


def wrong_code(secret: str) -> str:
    for candidate in range(1_000_000):
        code = f"{candidate:06d}"
        if not verify_code(secret, code, TotpParameters()):
            return code
    raise AssertionError("no invalid code found")


class TestSQLAlchemyFactorStore:
    @pytest.mark.asyncio
    async def test_satisfies_port(self, stores) -> None:
        assert isinstance(stores.factor_store, IFactorStore)
        assert isinstance(stores.recovery_store, IRecoveryTokenStore)

    @pytest.mark.asyncio
    async def test_enroll_and_list(self, stores) -> None:
        store = stores.factor_store
        enrollment = await store.enroll("user-1")

        [factor] = await store.list_factors("user-1")
        assert factor.id == enrollment.factor.id
        assert factor.status is FactorStatus.UNVERIFIED
        assert factor.created_at.tzinfo is not None
        assert "issuer=Acme" in enrollment.provisioning_uri
        assert await secret_of(stores, factor.id) == enrollment.secret

    @pytest.mark.asyncio
    async def test_verify_flow(self, stores) -> None:
        store = stores.factor_store
        enrollment = await store.enroll("user-1")
        factor_id = enrollment.factor.id

        challenge = await store.challenge(factor_id)
        with pytest.raises(MfaInvalidError):
            await store.verify(factor_id, challenge.id, wrong_code(enrollment.secret))
        with pytest.raises(ChallengeNotFoundError):
            await store.verify(factor_id, challenge.id, current_code(enrollment.secret))

        challenge = await store.challenge(factor_id)
        await store.verify(factor_id, challenge.id, current_code(enrollment.secret))

        [factor] = await store.list_factors("user-1")
        assert factor.is_verified

    @pytest.mark.asyncio
    async def test_expired_challenge(self, stores, clock) -> None:
        store = stores.factor_store
        enrollment = await store.enroll("user-1")
        challenge = await store.challenge(enrollment.factor.id)

        clock.advance(301)
        with pytest.raises(ChallengeNotFoundError):
            await store.verify(
                enrollment.factor.id, challenge.id, current_code(enrollment.secret)
            )

    @pytest.mark.asyncio
    async def test_challenge_unknown_factor(self, stores) -> None:
        with pytest.raises(FactorNotFoundError):
            await stores.factor_store.challenge("missing")

    @pytest.mark.asyncio
    async def test_delete_factor(self, stores) -> None:
        store = stores.factor_store
        enrollment = await store.enroll("user-1")
        challenge = await store.challenge(enrollment.factor.id)

        await store.delete_factor("other-account", enrollment.factor.id)
        assert len(await store.list_factors("user-1")) == 1

        await store.delete_factor("user-1", enrollment.factor.id)
        await store.delete_factor("user-1", enrollment.factor.id)
        assert await store.list_factors("user-1") == []
        with pytest.raises(ChallengeNotFoundError):
            await store.verify(
                enrollment.factor.id, challenge.id, current_code(enrollment.secret)
            )


class TestSQLAlchemyRecoveryTokenStore:
    @pytest.mark.asyncio
    async def test_token_stored_as_digest(self, stores, clock) -> None:
        store = stores.recovery_store
        expires_at = clock() + timedelta(minutes=15)
        record = await store.insert("user-1", "raw-token-value", expires_at)

        async with stores.engine.connect() as conn:
            stored = (
                await conn.execute(select(RecoveryTokenModel.token_hash))
            ).scalar_one()
        assert stored == hash_token("raw-token-value")
        assert "raw-token-value" not in stored

        found = await store.find_by_token("raw-token-value")
        assert found is not None
        assert found.id == record.id
        assert found.expires_at == expires_at
        assert found.token_value == "raw-token-value"

    @pytest.mark.asyncio
    async def test_list_and_delete(self, stores, clock) -> None:
        store = stores.recovery_store
        first = await store.insert("user-1", "a" * 43, clock())
        await store.insert("user-2", "b" * 43, clock())

        listed = await store.list_for_account("user-1")
        assert [t.id for t in listed] == [first.id]

        assert await store.delete(first.id) is True
        assert await store.delete(first.id) is False
        assert await store.find_by_token("a" * 43) is None
        assert await store.list_for_account("user-1") == []

    @pytest.mark.asyncio
    async def test_driver_errors_become_provider_errors(self, stores) -> None:
        async with stores.engine.begin() as conn:
            await conn.execute(text("DROP TABLE mfa_recovery_tokens"))

        with pytest.raises(ProviderError) as exc:
            await stores.recovery_store.find_by_token("x" * 43)

        assert exc.value.operation == "find_token"
        assert isinstance(exc.value.__cause__, OperationalError)


@pytest.fixture
def sql_state_machine(stores) -> MfaStateMachine:
    return MfaStateMachine(
        factor_store=stores.factor_store,
        session_gateway=InMemorySessionGateway(),
        render_qr_code=False,
    )


class TestConcurrentRequests:
    @pytest.mark.asyncio
    async def test_concurrent_enrollments_leave_one_pending_factor(
        self, stores, sql_state_machine, account
    ) -> None:
        results = await asyncio.gather(
            sql_state_machine.request_enrollment(account),
            sql_state_machine.request_enrollment(account),
        )

        assert all(isinstance(r, Enrolled) for r in results)
        [factor] = await stores.factor_store.list_factors(account.account_id)
        assert factor.status is FactorStatus.UNVERIFIED
        assert factor.id in {r.artifact.factor_id for r in results}

    @pytest.mark.asyncio
    async def test_concurrent_redemptions_consume_token_once(
        self, stores, sql_state_machine, mailer, settings, sender, account, clock
    ) -> None:
        manager = RecoveryTokenManager(
            token_store=stores.recovery_store,
            state_machine=sql_state_machine,
            mailer=mailer,
            link_builder=settings.recovery_link,
            clock=clock,
        )
        await manager.issue(account)
        link = sender.last.message.text.split("token=")[1].split()[0]

        results = await asyncio.gather(manager.redeem(link), manager.redeem(link))

        winners = [r for r in results if isinstance(r, Enrolled)]
        losers = [r for r in results if isinstance(r, Failed)]
        assert len(winners) == 1
        assert [r.error for r in losers] == [MfaErrorCode.TOKEN_INVALID]
        [factor] = await stores.factor_store.list_factors(account.account_id)
        assert factor.id == winners[0].artifact.factor_id
        assert await stores.recovery_store.list_for_account(account.account_id) == []

    @pytest.mark.asyncio
    async def test_claiming_a_token_twice(self, stores, clock) -> None:
        store = stores.recovery_store
        record = await store.insert("user-1", "c" * 43, clock() + timedelta(minutes=15))

        claims = await asyncio.gather(store.delete(record.id), store.delete(record.id))

        assert sorted(claims) == [False, True]
