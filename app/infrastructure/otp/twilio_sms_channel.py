import logging
from typing import Optional

from starlette.concurrency import run_in_threadpool
from twilio.http.http_client import TwilioHttpClient
from twilio.rest import Client

from ...core.config import settings
from ...application.ports.dispatch_channel import DispatchChannel

logger = logging.getLogger(__name__)


class TwilioSmsChannel(DispatchChannel):
    def __init__(
        self,
        client: Optional[Client] = None,
        from_number: Optional[str] = None,
        expiry_minutes: Optional[int] = None,
        timeout: Optional[float] = None,
    ):
        self._client = client
        self.from_number = from_number or settings.TWILIO_PHONE_NUMBER
        self.expiry_minutes = expiry_minutes or settings.OTP_EXPIRY_MINUTES
        self.timeout = timeout or settings.EXTERNAL_CALL_TIMEOUT_SECONDS

    @property
    def client(self) -> Client:
        if self._client is None:
            if not settings.TWILIO_ACCOUNT_SID or not settings.TWILIO_AUTH_TOKEN:
                raise RuntimeError("Twilio credentials not configured")
            # single attempt within the caller's deadline
            self._client = Client(
                settings.TWILIO_ACCOUNT_SID,
                settings.TWILIO_AUTH_TOKEN,
                http_client=TwilioHttpClient(timeout=self.timeout, max_retries=0),
            )
        return self._client

    def _body(self, code: str) -> str:
        return f"Your {settings.BRAND_NAME} verification code is: {code}. Valid for {self.expiry_minutes} minutes."

    async def send(self, identifier: str, code: str) -> None:
        if not self.from_number:
            raise RuntimeError("Twilio sender number not configured")
        message = await run_in_threadpool(
            self.client.messages.create, to=identifier, from_=self.from_number, body=self._body(code)
        )
        logger.info(f"OTP SMS queued, SID: {message.sid}")
