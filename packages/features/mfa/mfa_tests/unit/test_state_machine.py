"""Tests for the enrollment state machine."""

from __future__ import annotations

import asyncio

import pytest

from cqrs_ddd_mfa import (
    AlreadyEnrolled,
    AssuranceLevel,
    Enrolled,
    Failed,
    MfaErrorCode,
    MfaEventType,
    MfaState,
    MfaStateMachine,
    MfaStatus,
    Unenrolled,
    Verified,
)
from cqrs_ddd_mfa.domain import Factor, FactorStatus
from cqrs_ddd_mfa.state_machine import pick_factor_to_verify
from cqrs_ddd_mfa.stores import InMemoryFactorStore
from cqrs_ddd_mfa.totp import TotpParameters


class InterleavingFactorStore(InMemoryFactorStore):
    """Suspends around every call, the way a networked store does."""

    async def list_factors(self, account_id: str):
        await asyncio.sleep(0)
        factors = await super().list_factors(account_id)
        await asyncio.sleep(0)
        return factors

    async def enroll(self, account_id: str):
        await asyncio.sleep(0)
        return await super().enroll(account_id)

    async def delete_factor(self, account_id: str, factor_id: str) -> None:
        await asyncio.sleep(0)
        await super().delete_factor(account_id, factor_id)


async def enroll(machine: MfaStateMachine, account) -> str:
    result = await machine.request_enrollment(account)
    assert isinstance(result, Enrolled)
    return result.artifact.factor_id


class TestRequestEnrollment:
    @pytest.mark.asyncio
    async def test_fresh_account_gets_artifact(self, state_machine, account) -> None:
        result = await state_machine.request_enrollment(account)

        assert isinstance(result, Enrolled)
        artifact = result.artifact
        assert artifact.provisioning_uri.startswith("otpauth://totp/")
        assert " " in artifact.manual_key
        assert artifact.qr_code is None

    @pytest.mark.asyncio
    async def test_requires_authentication(self, state_machine) -> None:
        result = await state_machine.request_enrollment(None)
        assert isinstance(result, Failed)
        assert result.error is MfaErrorCode.NOT_AUTHENTICATED

    @pytest.mark.asyncio
    async def test_replaces_unverified_factor(
        self, state_machine, factor_store, account
    ) -> None:
        first = await enroll(state_machine, account)
        second = await enroll(state_machine, account)

        factors = await factor_store.list_factors(account.account_id)
        assert [f.id for f in factors] == [second]
        assert first != second

    @pytest.mark.asyncio
    async def test_verified_account_is_already_enrolled(
        self, state_machine, factor_store, account, valid_code
    ) -> None:
        factor_id = await enroll(state_machine, account)
        await state_machine.submit_verification(account, valid_code(factor_id))

        result = await state_machine.request_enrollment(account)

        assert isinstance(result, AlreadyEnrolled)
        assert [f.id for f in await factor_store.list_factors(account.account_id)] == [
            factor_id
        ]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("requests", [2, 3, 5])
    async def test_concurrent_requests_leave_one_unverified_factor(
        self, session_gateway, account, clock, requests
    ) -> None:
        store = InterleavingFactorStore(TotpParameters(issuer="Acme"), clock=clock)
        machine = MfaStateMachine(
            factor_store=store, session_gateway=session_gateway, render_qr_code=False
        )

        results = await asyncio.gather(
            *(machine.request_enrollment(account) for _ in range(requests))
        )

        assert all(isinstance(r, Enrolled) for r in results)
        [factor] = await store.list_factors(account.account_id)
        assert not factor.is_verified
        assert factor.id in {r.artifact.factor_id for r in results}

    @pytest.mark.asyncio
    async def test_renders_qr_code_when_enabled(self, factor_store, session_gateway, account) -> None:
        machine = MfaStateMachine(
            factor_store=factor_store,
            session_gateway=session_gateway,
            render_qr_code=True,
        )
        result = await machine.request_enrollment(account)

        assert isinstance(result, Enrolled)
        assert result.artifact.qr_code.startswith("data:image/png;base64,")

    @pytest.mark.asyncio
    async def test_audits_enrollment(self, state_machine, audit_store, account) -> None:
        factor_id = await enroll(state_machine, account)

        [event] = await audit_store.get_events(account.account_id)
        assert event.event_type is MfaEventType.ENROLLMENT_STARTED
        assert event.metadata["factor_id"] == factor_id


class TestSubmitVerification:
    @pytest.mark.asyncio
    async def test_scenario_wrong_then_right_code(
        self,
        state_machine,
        factor_store,
        session_gateway,
        account,
        valid_code,
        invalid_code,
    ) -> None:
        factor_id = await enroll(state_machine, account)

        wrong = await state_machine.submit_verification(account, invalid_code(factor_id))
        assert isinstance(wrong, Failed)
        assert wrong.error is MfaErrorCode.INVALID_CODE
        [factor] = await factor_store.list_factors(account.account_id)
        assert factor.status is FactorStatus.UNVERIFIED
        assert await session_gateway.get_assurance_level(account.account_id) is (
            AssuranceLevel.AAL1
        )

        right = await state_machine.submit_verification(account, valid_code(factor_id))
        assert isinstance(right, Verified)
        assert right.factor_id == factor_id
        [factor] = await factor_store.list_factors(account.account_id)
        assert factor.status is FactorStatus.VERIFIED
        assert await session_gateway.get_assurance_level(account.account_id) is (
            AssuranceLevel.AAL2
        )

    @pytest.mark.asyncio
    async def test_no_factor(self, state_machine, account) -> None:
        result = await state_machine.submit_verification(account, "123456")
        assert isinstance(result, Failed)
        assert result.error is MfaErrorCode.NO_FACTOR_FOUND

    @pytest.mark.asyncio
    async def test_malformed_code_is_invalid_input(
        self, state_machine, factor_store, account
    ) -> None:
        await enroll(state_machine, account)

        result = await state_machine.submit_verification(account, "12ab")

        assert isinstance(result, Failed)
        assert result.error is MfaErrorCode.INVALID_INPUT
        assert result.message == "Verification code must be 6 digits"

    @pytest.mark.asyncio
    async def test_requires_authentication(self, state_machine) -> None:
        result = await state_machine.submit_verification(None, "123456")
        assert isinstance(result, Failed)
        assert result.error is MfaErrorCode.NOT_AUTHENTICATED

    @pytest.mark.asyncio
    async def test_verified_account_can_reverify(
        self, state_machine, account, valid_code, audit_store
    ) -> None:
        factor_id = await enroll(state_machine, account)
        await state_machine.submit_verification(account, valid_code(factor_id))

        again = await state_machine.submit_verification(account, valid_code(factor_id))

        assert isinstance(again, Verified)
        verified = await audit_store.get_events(
            account.account_id, event_types=[MfaEventType.FACTOR_VERIFIED]
        )
        assert [e.metadata["first"] for e in verified] == [False, True]

    @pytest.mark.asyncio
    async def test_failure_is_audited(
        self, state_machine, audit_store, account, invalid_code
    ) -> None:
        factor_id = await enroll(state_machine, account)
        await state_machine.submit_verification(account, invalid_code(factor_id))

        [event] = await audit_store.get_events(
            account.account_id, event_types=[MfaEventType.FACTOR_VERIFY_FAILED]
        )
        assert not event.success
        assert event.error_code == "invalid_code"


class TestUnenroll:
    @pytest.mark.asyncio
    async def test_scenario_unenroll_then_enroll_again(
        self, state_machine, factor_store, session_gateway, account, valid_code
    ) -> None:
        factor_id = await enroll(state_machine, account)
        await state_machine.submit_verification(account, valid_code(factor_id))

        result = await state_machine.unenroll(account)

        assert result == Unenrolled(removed=1)
        assert await factor_store.list_factors(account.account_id) == []
        assert await session_gateway.get_assurance_level(account.account_id) is (
            AssuranceLevel.AAL1
        )
        assert isinstance(await state_machine.request_enrollment(account), Enrolled)

    @pytest.mark.asyncio
    async def test_idempotent(self, state_machine, account) -> None:
        assert await state_machine.unenroll(account) == Unenrolled(removed=0)
        assert await state_machine.unenroll(account) == Unenrolled(removed=0)

    @pytest.mark.asyncio
    async def test_requires_authentication(self, state_machine) -> None:
        result = await state_machine.unenroll(None)
        assert isinstance(result, Failed)
        assert result.error is MfaErrorCode.NOT_AUTHENTICATED


class TestStatus:
    @pytest.mark.asyncio
    async def test_tracks_lifecycle(self, state_machine, account, valid_code) -> None:
        status = await state_machine.get_status(account)
        assert isinstance(status, MfaStatus)
        assert status.state is MfaState.NO_FACTOR
        assert not status.has_mfa

        factor_id = await enroll(state_machine, account)
        status = await state_machine.get_status(account)
        assert status.state is MfaState.PENDING_VERIFICATION

        await state_machine.submit_verification(account, valid_code(factor_id))
        status = await state_machine.get_status(account)
        assert status.state is MfaState.ENABLED
        assert status.assurance_level is AssuranceLevel.AAL2
        assert status.factor_count == 1

        status = await state_machine.get_status(account, recovery_pending=True)
        assert status.state is MfaState.RECOVERY_PENDING


class TestPickFactor:
    def test_prefers_unverified(self) -> None:
        verified = Factor("a", "u", FactorStatus.VERIFIED)
        pending = Factor("b", "u", FactorStatus.UNVERIFIED)
        assert pick_factor_to_verify([verified, pending]) is pending

    def test_falls_back_to_first(self) -> None:
        first = Factor("a", "u", FactorStatus.VERIFIED)
        second = Factor("b", "u", FactorStatus.VERIFIED)
        assert pick_factor_to_verify([first, second]) is first

    def test_empty(self) -> None:
        assert pick_factor_to_verify([]) is None
