"""Outbound notifications over email and SMS.

Each ``send`` is a single attempt: it reports success or failure and never
retries or raises.
"""

import asyncio
import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from html import escape
from typing import Optional

import httpx
from pydantic import BaseModel

from orderflow.config import Settings, get_settings
from orderflow.models.otp import Channel, OTPPurpose

logger = logging.getLogger(__name__)

PURPOSE_LABELS = {
    OTPPurpose.REGISTRATION: "complete your registration",
    OTPPurpose.LOGIN: "sign in",
    OTPPurpose.RECOVERY: "recover your account",
    OTPPurpose.VERIFICATION: "verify your account",
}


class Message(BaseModel):
    """Channel independent notification content."""

    subject: str
    text: str
    html: Optional[str] = None


def code_message(app_name: str, code: str, purpose: OTPPurpose, ttl_minutes: int) -> Message:
    """Build the message carrying a verification code."""
    action = PURPOSE_LABELS[purpose]
    text = (
        f"{app_name}: your code to {action} is {code}. "
        f"It expires in {ttl_minutes} minutes. Do not share it with anyone."
    )
    html = f"""
    <!DOCTYPE html>
    <html>
    <body style="font-family: Arial, sans-serif; color: #333;">
        <div style="max-width: 480px; margin: 0 auto; padding: 20px;">
            <h2>{escape(app_name)}</h2>
            <p>Use this code to {escape(action)}:</p>
            <p style="font-size: 32px; font-weight: bold; letter-spacing: 6px;">{escape(code)}</p>
            <p>The code expires in {ttl_minutes} minutes.</p>
            <p style="color: #888; font-size: 12px;">
                If you did not request this code you can ignore this email.
            </p>
        </div>
    </body>
    </html>
    """
    return Message(subject=f"{app_name} verification code", text=text, html=html)


class EmailChannel:
    """SMTP email delivery."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    @property
    def configured(self) -> bool:
        return bool(self.settings.smtp_host and self.settings.smtp_from_email)

    def _deliver(self, address: str, message: Message) -> None:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = message.subject
        msg["From"] = self.settings.smtp_from_email
        msg["To"] = address
        msg.attach(MIMEText(message.text, "plain"))
        if message.html:
            msg.attach(MIMEText(message.html, "html"))

        with smtplib.SMTP(self.settings.smtp_host, self.settings.smtp_port, timeout=30) as server:
            server.starttls()
            if self.settings.smtp_username and self.settings.smtp_password:
                server.login(self.settings.smtp_username, self.settings.smtp_password)
            server.send_message(msg)

    async def send(self, address: str, message: Message) -> bool:
        try:
            await asyncio.to_thread(self._deliver, address, message)
            logger.info("Email sent successfully to %s", address)
            return True
        except smtplib.SMTPAuthenticationError as e:
            logger.error("SMTP authentication failed. Check credentials: %s", e)
            return False
        except (smtplib.SMTPException, OSError) as e:
            logger.error("SMTP error sending email to %s: %s", address, e)
            return False


class SmsChannel:
    """SMS delivery through a Twilio-compatible REST API."""

    def __init__(self, settings: Settings, client: Optional[httpx.AsyncClient] = None) -> None:
        self.settings = settings
        self.client = client

    @property
    def configured(self) -> bool:
        s = self.settings
        return bool(s.sms_account_sid and s.sms_auth_token and s.sms_from_number)

    async def send(self, address: str, message: Message) -> bool:
        s = self.settings
        url = f"{s.sms_base_url}/Accounts/{s.sms_account_sid}/Messages.json"
        data = {"From": s.sms_from_number, "To": address, "Body": message.text}
        try:
            if self.client is not None:
                response = await self.client.post(
                    url, data=data, auth=(s.sms_account_sid, s.sms_auth_token)
                )
            else:
                async with httpx.AsyncClient(timeout=s.sms_timeout) as client:
                    response = await client.post(
                        url, data=data, auth=(s.sms_account_sid, s.sms_auth_token)
                    )
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("SMS gateway error sending to %s: %s", address, e)
            return False

        logger.info("SMS sent successfully to %s", address)
        return True


class Notifier:
    """Routes a message to the channel it was requested on."""

    def __init__(
        self,
        email: Optional[EmailChannel] = None,
        sms: Optional[SmsChannel] = None,
        simulate: bool = False,
    ) -> None:
        self.channels = {Channel.EMAIL: email, Channel.SMS: sms}
        self.simulate = simulate

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "Notifier":
        settings = settings or get_settings()
        return cls(
            email=EmailChannel(settings),
            sms=SmsChannel(settings),
            simulate=settings.simulate_delivery,
        )

    async def send(self, channel: Channel, address: str, message: Message) -> bool:
        """Deliver ``message`` to ``address`` once. Returns success."""
        sender = self.channels.get(channel)
        if sender is None or not sender.configured:
            if self.simulate:
                logger.info(
                    "Simulated %s delivery to %s: %s", channel.value, address, message.text
                )
                return True
            logger.warning("No %s channel configured, cannot reach %s", channel.value, address)
            return False
        return await sender.send(address, message)
