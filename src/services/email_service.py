"""Email service for rendering and sending auth emails over SMTP."""

from email.message import EmailMessage
from typing import Any, Optional

import aiosmtplib
import structlog

from src.config import Settings, get_settings
from src.models.email import EmailTemplate
from src.services.auth_errors import EmailDeliveryFailed

logger = structlog.get_logger(__name__)

SUBJECTS = {
    EmailTemplate.WELCOME: "Welcome to {app_name}!",
    EmailTemplate.VERIFY_EMAIL: "Verify Your Email Address",
    EmailTemplate.FORGOT_PASSWORD: "Reset Your Password",
    EmailTemplate.RESET_PASSWORD: "Your Password Has Been Reset",
}

BODIES = {
    EmailTemplate.WELCOME: (
        "Hi {name},\n\n"
        "Your email address is verified and your {app_name} account is ready.\n"
    ),
    EmailTemplate.VERIFY_EMAIL: (
        "Hi {name},\n\n"
        "Please confirm your email address by opening the link below:\n\n"
        "{verification_url}\n\n"
        "If you did not create an account, "
        "you can ignore this email.\n"
    ),
    EmailTemplate.FORGOT_PASSWORD: (
        "Hi {name},\n\n"
        "We received a request to reset your {app_name} password. "
        "Open the link below to choose a new one:\n\n"
        "{reset_url}\n\n"
        "If you did not ask for a reset, "
        "you can ignore this email.\n"
    ),
    EmailTemplate.RESET_PASSWORD: (
        "Hi {name},\n\n"
        "Your {app_name} password was changed and all sessions were signed out.\n"
        "Log in again at {login_url}\n\n"
        "If this wasn't you, contact support immediately.\n"
    ),
}


class EmailService:
    """Renders auth email templates and delivers them via SMTP."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    def render(
        self, template: EmailTemplate, variables: dict[str, Any]
    ) -> tuple[str, str]:
        """Render subject and plain-text body for a template.

        Raises:
            KeyError: If a variable the template needs is missing
        """
        context = {"app_name": self.settings.app_name, **variables}
        subject = SUBJECTS[template].format(**context)
        body = BODIES[template].format(**context)
        return subject, body

    def build_message(self, to: str, subject: str, body: str) -> EmailMessage:
        """Assemble a plain-text message; headers and body are UTF-8 safe."""
        message = EmailMessage()
        message["From"] = self.settings.email_from
        message["To"] = to
        message["Subject"] = subject
        message.set_content(body)
        return message

    async def send_email(
        self,
        to: str,
        template: EmailTemplate,
        variables: dict[str, Any],
    ) -> None:
        """Render and send one email.

        Args:
            to: Recipient address
            template: Which auth email to send
            variables: Template values (name, links)

        Raises:
            EmailDeliveryFailed: If rendering or SMTP delivery fails
        """
        try:
            subject, body = self.render(template, variables)
        except KeyError as e:
            logger.error("email_render_failed", template=template.value, missing=str(e))
            raise EmailDeliveryFailed() from e

        if not self.settings.email_enabled:
            logger.info(
                "email_delivery_skipped",
                to=to,
                template=template.value,
                reason="email disabled",
            )
            return

        message = self.build_message(to, subject, body)

        try:
            await aiosmtplib.send(
                message,
                sender=self.settings.email_from,
                recipients=[to],
                hostname=self.settings.smtp_host,
                port=self.settings.smtp_port,
                username=self.settings.smtp_username or None,
                password=self.settings.smtp_password or None,
                use_tls=self.settings.smtp_use_tls,
            )
        except Exception as e:
            logger.error(
                "email_send_failed",
                to=to,
                template=template.value,
                error=str(e),
            )
            raise EmailDeliveryFailed() from e

        logger.info("email_sent", to=to, template=template.value)
