"""Tests for verification code issuance, verification and housekeeping."""

import asyncio
from datetime import timedelta

import pytest

from orderflow.database.memory import MemoryCodeStore
from orderflow.errors import (
    AttemptsExhaustedError,
    DeliveryFailedError,
    IncorrectCodeError,
    InvalidInputError,
    NotFoundOrExpiredError,
    RateLimitedError,
    TooSoonError,
)
from orderflow.models.otp import Channel, DeliveryMethod, OTPPurpose, VerificationCode
from orderflow.services import otp_service as otp_service_module
from orderflow.services.otp_service import OTPService

pytestmark = pytest.mark.anyio

PHONE = "+15551234567"
EMAIL = "user@example.com"


def wrong(code: str) -> str:
    return "000000" if code != "000000" else "111111"


async def stored_code(code_store, result) -> str:
    return (await code_store.get(result.code_id)).code


class YieldingCodeStore(MemoryCodeStore):
    """Hands control to other tasks between storing a code and retiring older ones."""

    async def insert(self, code):
        await super().insert(code)
        await asyncio.sleep(0)

    async def supersede(self, phone, purpose):
        await asyncio.sleep(0)
        return await super().supersede(phone, purpose)


def code_record(code_id: str, created_at, purpose=OTPPurpose.VERIFICATION) -> VerificationCode:
    return VerificationCode(
        codeId=code_id,
        phone=PHONE,
        email=EMAIL,
        purpose=purpose,
        code="123456",
        expiresAt=created_at + timedelta(minutes=10),
        createdAt=created_at,
    )


class TestIssue:
    async def test_issue_delivers_code(self, otp_service, code_store, notifier, clock):
        result = await otp_service.issue(PHONE, EMAIL, metadata={"userId": "customer_1"})

        record = await code_store.get(result.code_id)
        assert len(record.code) == 6
        assert record.code.isdigit()
        assert record.attempts == 0
        assert result.expires_at == clock.now + timedelta(minutes=10)
        assert result.remaining_seconds == 600
        assert result.channels == [Channel.SMS]
        assert [entry[:2] for entry in notifier.sent] == [("sms", PHONE)]
        assert record.code in notifier.sent[0][2]

    async def test_new_code_invalidates_previous(self, otp_service, code_store, clock, monkeypatch):
        codes = iter(["111111", "222222"])
        monkeypatch.setattr(otp_service_module, "generate_numeric_code", lambda length: next(codes))
        first = await otp_service.issue(PHONE, EMAIL)
        clock.advance(seconds=5)
        second = await otp_service.issue(PHONE, EMAIL)

        assert (await code_store.get(first.code_id)).verified
        # The old code is checked against the live one and spends one of its attempts
        with pytest.raises(IncorrectCodeError) as exc_info:
            await otp_service.verify(PHONE, "111111")
        assert exc_info.value.remaining_attempts == 4

        result = await otp_service.verify(PHONE, "222222")
        assert result.code_id == second.code_id

    async def test_concurrent_issues_leave_one_live_code(self, notifier, settings, clock):
        service = OTPService(YieldingCodeStore(), notifier, settings=settings, clock=clock)

        first, second = await asyncio.gather(
            service.issue(PHONE, EMAIL), service.issue(PHONE, EMAIL)
        )

        records = [await service.codes.get(r.code_id) for r in (first, second)]
        assert sorted(r.verified for r in records) == [False, True]
        live = await service.codes.find_live(PHONE, OTPPurpose.VERIFICATION, clock.now)
        assert live.codeId == next(r.codeId for r in records if not r.verified)

    async def test_purposes_are_independent(self, otp_service, code_store):
        login = await otp_service.issue(PHONE, EMAIL, purpose=OTPPurpose.LOGIN)
        await otp_service.issue(PHONE, EMAIL, purpose=OTPPurpose.RECOVERY)

        result = await otp_service.verify(
            PHONE, await stored_code(code_store, login), OTPPurpose.LOGIN
        )
        assert result.code_id == login.code_id

    @pytest.mark.parametrize(
        "phone,email,field",
        [
            ("1", EMAIL, "phone"),
            ("+0123456", EMAIL, "phone"),
            ("not-a-phone", EMAIL, "phone"),
            (PHONE, "nobody", "email"),
            (PHONE, "", "email"),
        ],
    )
    async def test_invalid_subject(self, otp_service, phone, email, field):
        with pytest.raises(InvalidInputError) as exc_info:
            await otp_service.issue(phone, email)
        assert exc_info.value.field == field


class TestSupersede:
    async def test_late_insert_of_older_code_is_retired(self, code_store, clock):
        newer = code_record("b", clock.now + timedelta(seconds=1))
        older = code_record("a", clock.now)

        await code_store.insert(newer)
        assert await code_store.supersede(PHONE, OTPPurpose.VERIFICATION) == 0
        await code_store.insert(older)
        assert await code_store.supersede(PHONE, OTPPurpose.VERIFICATION) == 1

        assert (await code_store.get("a")).verified
        assert not (await code_store.get("b")).verified

    async def test_same_instant_ordered_by_code_id(self, code_store, clock):
        for code_id in ("b", "a", "c"):
            await code_store.insert(code_record(code_id, clock.now))

        assert await code_store.supersede(PHONE, OTPPurpose.VERIFICATION) == 2
        live = await code_store.find_live(PHONE, OTPPurpose.VERIFICATION, clock.now)
        assert live.codeId == "c"

    async def test_other_purposes_untouched(self, code_store, clock):
        await code_store.insert(code_record("a", clock.now, OTPPurpose.LOGIN))
        await code_store.insert(code_record("b", clock.now + timedelta(seconds=1)))

        assert await code_store.supersede(PHONE, OTPPurpose.VERIFICATION) == 0
        assert not (await code_store.get("a")).verified


class TestDelivery:
    async def test_all_channels_failed_rolls_back(self, otp_service, code_store, notifier, clock):
        notifier.outcomes = {"sms": False}
        with pytest.raises(DeliveryFailedError) as exc_info:
            await otp_service.issue(PHONE, EMAIL)

        assert exc_info.value.channels == ["sms"]
        assert await code_store.find_live(PHONE, OTPPurpose.VERIFICATION, clock.now) is None
        assert await code_store.latest_issuance(PHONE, OTPPurpose.VERIFICATION) is None

    async def test_failed_delivery_does_not_count_towards_limit(self, otp_service, notifier):
        notifier.outcomes = {"sms": False}
        for _ in range(6):
            with pytest.raises(DeliveryFailedError):
                await otp_service.issue(PHONE, EMAIL)

        notifier.outcomes = {}
        result = await otp_service.issue(PHONE, EMAIL)
        assert result.channels == [Channel.SMS]

    async def test_partial_success(self, otp_service, notifier):
        notifier.outcomes = {"sms": False}
        result = await otp_service.issue(PHONE, EMAIL, method=DeliveryMethod.BOTH)

        assert result.channels == [Channel.EMAIL]
        assert result.results == {"sms": False, "email": True}
        assert [entry[:2] for entry in notifier.sent] == [("email", EMAIL)]


class TestRateLimit:
    async def test_sixth_issue_in_window_rejected(self, otp_service, clock):
        for _ in range(5):
            await otp_service.issue(PHONE, EMAIL)
            clock.advance(minutes=1)

        with pytest.raises(RateLimitedError) as exc_info:
            await otp_service.issue(PHONE, EMAIL)
        # The first issuance leaves the window 60 minutes after it happened
        assert exc_info.value.retry_after == 55 * 60

    async def test_window_slides(self, otp_service, clock):
        for _ in range(5):
            await otp_service.issue(PHONE, EMAIL)
        clock.advance(minutes=61)

        result = await otp_service.issue(PHONE, EMAIL)
        assert result.code_id

    async def test_limit_is_per_phone_and_purpose(self, otp_service):
        for _ in range(5):
            await otp_service.issue(PHONE, EMAIL)

        await otp_service.issue(PHONE, EMAIL, purpose=OTPPurpose.LOGIN)
        await otp_service.issue("+15550000000", EMAIL)

    async def test_cleanup_does_not_reset_window(self, otp_service, code_store, clock):
        for _ in range(5):
            result = await otp_service.issue(PHONE, EMAIL)
            await otp_service.verify(PHONE, await stored_code(code_store, result))

        assert await otp_service.cleanup() == 5
        with pytest.raises(RateLimitedError):
            await otp_service.issue(PHONE, EMAIL)


class TestResend:
    async def test_too_soon(self, otp_service, clock):
        await otp_service.issue(PHONE, EMAIL)
        clock.advance(seconds=20)

        with pytest.raises(TooSoonError) as exc_info:
            await otp_service.resend(PHONE, EMAIL)
        assert exc_info.value.retry_after == 40

    async def test_after_interval(self, otp_service, code_store, clock):
        first = await otp_service.issue(PHONE, EMAIL)
        clock.advance(seconds=61)

        second = await otp_service.resend(PHONE, EMAIL)
        assert second.code_id != first.code_id
        assert (await code_store.get(first.code_id)).verified

    async def test_resend_without_prior_code(self, otp_service):
        result = await otp_service.resend(PHONE, EMAIL)
        assert result.code_id


class TestVerify:
    async def test_correct_code(self, otp_service, code_store):
        issued = await otp_service.issue(PHONE, EMAIL, metadata={"userId": "customer_1"})
        result = await otp_service.verify(PHONE, await stored_code(code_store, issued))

        assert result.code_id == issued.code_id
        assert result.metadata == {"userId": "customer_1"}

    async def test_surrounding_whitespace_ignored(self, otp_service, code_store):
        issued = await otp_service.issue(PHONE, EMAIL)
        code = await stored_code(code_store, issued)
        await otp_service.verify(PHONE, f" {code}\n")

    async def test_single_use(self, otp_service, code_store):
        issued = await otp_service.issue(PHONE, EMAIL)
        code = await stored_code(code_store, issued)
        await otp_service.verify(PHONE, code)

        with pytest.raises(NotFoundOrExpiredError):
            await otp_service.verify(PHONE, code)

    async def test_incorrect_code_counts_down(self, otp_service, code_store):
        issued = await otp_service.issue(PHONE, EMAIL)
        code = await stored_code(code_store, issued)

        for remaining in (4, 3, 2, 1, 0):
            with pytest.raises(IncorrectCodeError) as exc_info:
                await otp_service.verify(PHONE, wrong(code))
            assert exc_info.value.remaining_attempts == remaining

    async def test_correct_code_after_exhaustion_rejected(self, otp_service, code_store):
        issued = await otp_service.issue(PHONE, EMAIL)
        code = await stored_code(code_store, issued)
        for _ in range(5):
            with pytest.raises(IncorrectCodeError):
                await otp_service.verify(PHONE, wrong(code))

        with pytest.raises(AttemptsExhaustedError):
            await otp_service.verify(PHONE, code)
        assert (await code_store.get(issued.code_id)).attempts == 5

    async def test_expired(self, otp_service, code_store, clock):
        issued = await otp_service.issue(PHONE, EMAIL)
        code = await stored_code(code_store, issued)
        clock.advance(minutes=11)

        with pytest.raises(NotFoundOrExpiredError):
            await otp_service.verify(PHONE, code)

    async def test_no_code_issued(self, otp_service):
        with pytest.raises(NotFoundOrExpiredError):
            await otp_service.verify(PHONE, "123456")

    async def test_concurrent_guesses_each_spend_an_attempt(self, otp_service, code_store):
        issued = await otp_service.issue(PHONE, EMAIL)
        code = await stored_code(code_store, issued)

        results = await asyncio.gather(
            otp_service.verify(PHONE, wrong(code)),
            otp_service.verify(PHONE, wrong(code)),
            return_exceptions=True,
        )
        assert all(isinstance(r, IncorrectCodeError) for r in results)
        assert (await code_store.get(issued.code_id)).attempts == 2

    async def test_concurrent_correct_codes_verify_once(self, otp_service, code_store):
        issued = await otp_service.issue(PHONE, EMAIL)
        code = await stored_code(code_store, issued)

        results = await asyncio.gather(
            otp_service.verify(PHONE, code),
            otp_service.verify(PHONE, code),
            return_exceptions=True,
        )
        successes = [r for r in results if not isinstance(r, Exception)]
        assert len(successes) == 1
        assert isinstance(
            next(r for r in results if isinstance(r, Exception)), NotFoundOrExpiredError
        )


class TestHousekeeping:
    async def test_cleanup(self, otp_service, code_store, clock):
        verified = await otp_service.issue("+15550000001", EMAIL)
        await otp_service.verify("+15550000001", await stored_code(code_store, verified))

        exhausted = await otp_service.issue("+15550000002", EMAIL)
        code = await stored_code(code_store, exhausted)
        for _ in range(5):
            with pytest.raises(IncorrectCodeError):
                await otp_service.verify("+15550000002", wrong(code))

        expired = await otp_service.issue("+15550000003", EMAIL)
        clock.advance(minutes=11)
        live = await otp_service.issue("+15550000004", EMAIL)

        assert await otp_service.cleanup() == 3
        assert await code_store.get(expired.code_id) is None
        assert await code_store.get(live.code_id) is not None

    async def test_stats(self, otp_service, code_store, clock):
        login = await otp_service.issue(PHONE, EMAIL, purpose=OTPPurpose.LOGIN)
        await otp_service.verify(PHONE, await stored_code(code_store, login), OTPPurpose.LOGIN)
        await otp_service.issue(PHONE, EMAIL, purpose=OTPPurpose.REGISTRATION)
        clock.advance(minutes=11)

        stats = await otp_service.stats()
        by_purpose = {s.purpose: s for s in stats.by_purpose}

        assert stats.total == 2
        assert by_purpose[OTPPurpose.LOGIN].verified == 1
        assert by_purpose[OTPPurpose.LOGIN].avg_attempts == 1
        assert by_purpose[OTPPurpose.REGISTRATION].verified == 0
        assert by_purpose[OTPPurpose.REGISTRATION].expired == 1

    async def test_stats_filtered_by_purpose(self, otp_service):
        await otp_service.issue(PHONE, EMAIL, purpose=OTPPurpose.LOGIN)
        await otp_service.issue(PHONE, EMAIL, purpose=OTPPurpose.REGISTRATION)

        stats = await otp_service.stats(purpose=OTPPurpose.LOGIN)
        assert stats.total == 1
        assert [s.purpose for s in stats.by_purpose] == [OTPPurpose.LOGIN]

    async def test_stats_filtered_by_creation_range(self, otp_service, clock):
        start = clock.now
        await otp_service.issue(PHONE, EMAIL, purpose=OTPPurpose.LOGIN)
        clock.advance(hours=2)
        await otp_service.issue(PHONE, EMAIL, purpose=OTPPurpose.LOGIN)
        await otp_service.issue("+15550000000", EMAIL, purpose=OTPPurpose.RECOVERY)

        early = await otp_service.stats(created_to=start + timedelta(hours=1))
        assert early.total == 1
        late = await otp_service.stats(created_from=start + timedelta(hours=1))
        assert late.total == 2
        late_login = await otp_service.stats(
            created_from=start + timedelta(hours=1), purpose=OTPPurpose.LOGIN
        )
        assert late_login.total == 1

    async def test_stats_inverted_range(self, otp_service, clock):
        with pytest.raises(InvalidInputError) as exc_info:
            await otp_service.stats(created_from=clock.now, created_to=clock.now - timedelta(days=1))
        assert exc_info.value.field == "created_from"
