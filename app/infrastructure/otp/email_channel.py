import html
import logging
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

import aiosmtplib

from ...core.config import settings
from ...application.ports.dispatch_channel import DispatchChannel

logger = logging.getLogger(__name__)


def render_otp_email(code: str, expiry_minutes: int) -> str:
    """HTML body for the email verification code."""
    brand = html.escape(settings.BRAND_NAME)
    return f"""
    <html>
        <body style="font-family: Arial, sans-serif; color: #333;">
            <h2>Email Verification</h2>
            <p>Please use the verification code below to continue with your application:</p>
            <p style="font-size: 32px; font-weight: bold; letter-spacing: 8px;">{html.escape(code)}</p>
            <p>This code will expire in {expiry_minutes} minutes. If you didn't request this code, please ignore this email.</p>
            <hr>
            <p><small>This is an automated message from {brand}</small></p>
        </body>
    </html>
    """


class EmailChannel(DispatchChannel):
    def __init__(
        self,
        hostname: str = "",
        port: int = 587,
        username: str = "",
        password: str = "",
        sender: str = "",
        use_tls: bool = True,
        expiry_minutes: int = 10,
    ):
        self.hostname = hostname or settings.SMTP_HOST
        self.port = port
        self.username = username or settings.SMTP_USERNAME
        self.password = password or settings.SMTP_PASSWORD
        self.sender = sender or settings.SMTP_SENDER
        self.use_tls = use_tls
        self.expiry_minutes = expiry_minutes

    def build_message(self, recipient: str, code: str) -> MIMEMultipart:
        message = MIMEMultipart()
        message["From"] = self.sender
        message["To"] = recipient
        message["Subject"] = f"Your {settings.BRAND_NAME} Verification Code"
        message.attach(MIMEText(render_otp_email(code, self.expiry_minutes), "html"))
        return message

    async def send(self, identifier: str, code: str) -> None:
        if not all([self.hostname, self.sender]):
            raise RuntimeError("Email service not configured")

        message = self.build_message(identifier, code)
        async with aiosmtplib.SMTP(hostname=self.hostname, port=self.port) as smtp:
            if self.use_tls:
                await smtp.starttls()
            if self.username:
                await smtp.login(self.username, self.password)
            await smtp.send_message(message)
        logger.info("Verification email sent")
