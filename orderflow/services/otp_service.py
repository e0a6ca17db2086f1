"""One-time verification codes: issuance, rate limiting, verification and cleanup."""

import logging
import re
from datetime import datetime, timedelta
from typing import Any, Optional

from orderflow.config import Settings, get_settings
from orderflow.database.base import CodeStore
from orderflow.errors import (
    AttemptsExhaustedError,
    DeliveryFailedError,
    IncorrectCodeError,
    InvalidInputError,
    NotFoundOrExpiredError,
    RateLimitedError,
    TooSoonError,
)
from orderflow.models.otp import (
    Channel,
    DeliveryMethod,
    IssuanceRecord,
    IssueResult,
    OTPPurpose,
    OTPStats,
    VerificationCode,
    VerifyResult,
)
from orderflow.services.notifier import Notifier, code_message
from orderflow.utils.helpers import (
    Clock,
    codes_match,
    generate_numeric_code,
    generate_uuid,
    seconds_until,
    utcnow,
)

logger = logging.getLogger(__name__)

PHONE_PATTERN = re.compile(r"^\+?[1-9]\d{1,14}$")
EMAIL_PATTERN = re.compile(r"^\S+@\S+\.\S+$")


class OTPService:
    """Issues and verifies short-lived numeric codes.

    Every limit is evaluated against stored records, so it holds across
    restarts and across instances sharing the same store.
    """

    def __init__(
        self,
        codes: CodeStore,
        notifier: Notifier,
        settings: Optional[Settings] = None,
        clock: Clock = utcnow,
    ) -> None:
        self.codes = codes
        self.notifier = notifier
        self.settings = settings or get_settings()
        self.clock = clock

    @property
    def window(self) -> timedelta:
        return timedelta(minutes=self.settings.otp_rate_window_minutes)

    async def issue(
        self,
        phone: str,
        email: str,
        purpose: OTPPurpose = OTPPurpose.VERIFICATION,
        method: DeliveryMethod = DeliveryMethod.SMS,
        metadata: Optional[dict[str, Any]] = None,
        ip: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> IssueResult:
        """Generate a code, store it and deliver it on the requested channels.

        The new record is stored first and then every earlier unconsumed code
        for the same phone and purpose is retired, so concurrent issuers leave
        exactly one live code. If no channel accepts the code, the new record is
        removed and DeliveryFailedError is raised.
        """
        self._validate_subject(phone, email)
        now = self.clock()

        await self._enforce_rate_limit(phone, purpose, now)

        record = VerificationCode(
            codeId=generate_uuid(),
            phone=phone,
            email=email,
            purpose=purpose,
            code=generate_numeric_code(self.settings.otp_length),
            expiresAt=now + timedelta(minutes=self.settings.otp_ttl_minutes),
            ipAddress=ip,
            userAgent=user_agent,
            metadata=metadata or {},
            createdAt=now,
        )
        await self.codes.insert(record)
        await self.codes.log_issuance(
            IssuanceRecord(codeId=record.codeId, phone=phone, purpose=purpose, issuedAt=now)
        )

        superseded = await self.codes.supersede(phone, purpose)
        if superseded:
            logger.info("Superseded %d earlier %s codes for %s", superseded, purpose.value, phone)

        message = code_message(
            self.settings.app_name, record.code, purpose, self.settings.otp_ttl_minutes
        )
        addresses = {Channel.SMS: phone, Channel.EMAIL: email}
        results: dict[str, bool] = {}
        for channel in method.channels:
            results[channel.value] = await self.notifier.send(
                channel, addresses[channel], message
            )

        sent = [Channel(name) for name, ok in results.items() if ok]
        if not sent:
            await self.codes.delete(record.codeId)
            logger.warning(
                "Code for %s (%s) not delivered on any channel, issuance rolled back",
                phone,
                purpose.value,
            )
            raise DeliveryFailedError(list(results))

        logger.info(
            "Issued %s code %s for %s via %s",
            purpose.value,
            record.codeId,
            phone,
            ", ".join(c.value for c in sent),
        )
        return IssueResult(
            code_id=record.codeId,
            expires_at=record.expiresAt,
            remaining_seconds=record.remaining_seconds(now),
            channels=sent,
            results=results,
        )

    async def _enforce_rate_limit(self, phone: str, purpose: OTPPurpose, now: datetime) -> None:
        limit = self.settings.otp_hourly_limit
        issued = await self.codes.issuances_since(phone, purpose, now - self.window)
        if len(issued) < limit:
            return
        # The window frees up once enough of the oldest issuances age out
        oldest = issued[len(issued) - limit]
        retry_after = seconds_until(oldest + self.window, now)
        logger.info("Rate limit hit for %s (%s), retry in %ds", phone, purpose.value, retry_after)
        raise RateLimitedError(retry_after)

    @staticmethod
    def _validate_subject(phone: str, email: str) -> None:
        if not phone or not PHONE_PATTERN.match(phone):
            raise InvalidInputError("Invalid phone number format", field="phone")
        if not email or not EMAIL_PATTERN.match(email):
            raise InvalidInputError("Invalid email format", field="email")

    async def verify(
        self, phone: str, code: str, purpose: OTPPurpose = OTPPurpose.VERIFICATION
    ) -> VerifyResult:
        """Check ``code`` against the live code for the phone and purpose.

        Each check after the expiry and exhaustion guards spends one attempt,
        whether or not the code matches. A superseded code is compared against
        the live one, so it fails as IncorrectCodeError.
        """
        max_attempts = self.settings.otp_max_attempts
        now = self.clock()

        record = await self.codes.find_live(phone, purpose, now)
        if record is None or record.is_expired(now):
            raise NotFoundOrExpiredError()
        if record.attempts >= max_attempts:
            logger.info("Code %s has no attempts left", record.codeId)
            raise AttemptsExhaustedError()

        spent = await self.codes.increment_attempts(record.codeId, max_attempts, now)
        if spent is None:
            # Another request exhausted, consumed or replaced the code meanwhile
            current = await self.codes.find_live(phone, purpose, now)
            if (
                current is not None
                and current.codeId == record.codeId
                and current.attempts >= max_attempts
            ):
                raise AttemptsExhaustedError()
            raise NotFoundOrExpiredError()

        if not codes_match(spent.code, code.strip()):
            remaining = max(0, max_attempts - spent.attempts)
            logger.info("Incorrect code for %s (%s), %d attempts left", phone, purpose.value, remaining)
            raise IncorrectCodeError(remaining)

        if not await self.codes.mark_verified(spent.codeId):
            raise NotFoundOrExpiredError()

        logger.info("Code %s verified for %s (%s)", spent.codeId, phone, purpose.value)
        return VerifyResult(code_id=spent.codeId, metadata=spent.metadata)

    async def resend(
        self,
        phone: str,
        email: str,
        purpose: OTPPurpose = OTPPurpose.VERIFICATION,
        method: DeliveryMethod = DeliveryMethod.SMS,
        metadata: Optional[dict[str, Any]] = None,
        ip: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> IssueResult:
        """Issue a fresh code, no sooner than the resend interval after the last one."""
        now = self.clock()
        last = await self.codes.latest_issuance(phone, purpose)
        if last is not None:
            ready_at = last + timedelta(seconds=self.settings.otp_resend_interval_seconds)
            if now < ready_at:
                retry_after = seconds_until(ready_at, now)
                logger.info("Resend for %s (%s) too soon, %ds left", phone, purpose.value, retry_after)
                raise TooSoonError(retry_after)

        return await self.issue(
            phone,
            email,
            purpose=purpose,
            method=method,
            metadata=metadata,
            ip=ip,
            user_agent=user_agent,
        )

    async def cleanup(self) -> int:
        """Delete expired, consumed and exhausted codes. Returns how many went."""
        now = self.clock()
        purged = await self.codes.purge(
            now, self.settings.otp_max_attempts, log_cutoff=now - self.window
        )
        logger.info("Purged %d verification codes", purged)
        return purged

    async def stats(
        self,
        created_from: Optional[datetime] = None,
        created_to: Optional[datetime] = None,
        purpose: Optional[OTPPurpose] = None,
    ) -> OTPStats:
        """Counters per purpose over stored codes, optionally by creation range and purpose."""
        if created_from and created_to and created_from > created_to:
            raise InvalidInputError("created_from must not be after created_to", field="created_from")
        by_purpose = await self.codes.stats(
            self.clock(), created_from=created_from, created_to=created_to, purpose=purpose
        )
        return OTPStats(by_purpose=by_purpose, total=sum(p.total for p in by_purpose))
