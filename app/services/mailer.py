"""Plain-text transactional emails over SMTP."""

from __future__ import annotations

import asyncio
import logging
from email.message import EmailMessage

import aiosmtplib

from app.core.config import settings

logger = logging.getLogger(__name__)

_SIGNATURE = "Best regards,\nCASPIAN Restaurant Team"


class Mailer:
    """Send email via SMTP. Every method reports success as a bool and never raises."""

    async def send(self, to: str, subject: str, body: str) -> bool:
        if not settings.SMTP_HOST:
            logger.info("SMTP not configured, skipping email to %s: %s", to, subject)
            return True

        msg = EmailMessage()
        msg["From"] = f"{settings.SMTP_FROM_NAME} <{settings.SMTP_FROM_EMAIL}>"
        msg["To"] = to
        msg["Subject"] = subject
        msg.set_content(body)

        try:
            await aiosmtplib.send(
                msg,
                hostname=settings.SMTP_HOST,
                port=settings.SMTP_PORT,
                username=settings.SMTP_USERNAME or None,
                password=settings.SMTP_PASSWORD or None,
                start_tls=settings.SMTP_USE_TLS,
                timeout=settings.SMTP_TIMEOUT_SECONDS,
            )
        except (aiosmtplib.SMTPException, OSError, asyncio.TimeoutError) as e:
            logger.error("Failed to send email to %s (%s): %s", to, subject, e)
            return False
        logger.info("Email sent to %s: %s", to, subject)
        return True

    async def send_signup_code(self, to: str, name: str, code: str) -> bool:
        body = (
            f"Hello {name},\n\n"
            "Welcome to CASPIAN Restaurant!\n\n"
            f"Your email verification code is: {code}\n\n"
            f"This code will expire in {settings.SIGNUP_CODE_TTL_MINUTES} minutes. "
            "Please enter this code to complete your account registration.\n\n"
            "If you didn't request this verification, please ignore this email.\n\n"
            f"{_SIGNATURE}\n"
        )
        return await self.send(to, "Verify Your Email - CASPIAN Restaurant", body)

    async def send_password_reset_link(self, to: str, name: str, reset_url: str) -> bool:
        body = (
            f"Hello {name},\n\n"
            "You requested to reset your password for your CASPIAN Restaurant account.\n\n"
            f"Click the link below to reset your password:\n{reset_url}\n\n"
            f"This link will expire in {settings.RESET_TOKEN_TTL_MINUTES} minutes.\n\n"
            "If you didn't request this password reset, please ignore this email "
            "or contact our support team.\n\n"
            f"{_SIGNATURE}\n"
        )
        return await self.send(to, "Password Reset Link - CASPIAN Restaurant", body)

    async def send_welcome(self, to: str, name: str) -> bool:
        body = (
            f"Hello {name},\n\n"
            "Welcome to CASPIAN Restaurant! 🎉\n\n"
            "Your account has been successfully created and verified.\n\n"
            "Features you can explore:\n"
            "- Spin the wheel to get amazing offers\n"
            "- View and redeem your coupons\n"
            "- Enjoy our special discounts and deals\n\n"
            f"{_SIGNATURE}\n"
        )
        return await self.send(to, "Welcome to CASPIAN Restaurant!", body)
