"""SMTP email collaborator.

One coroutine per template. Transport failures surface as
ExternalUnavailableError; retrying is the dispatcher's job.
"""

from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr
from html import escape

import aiosmtplib

from ...config import settings
from ...core.exceptions import ExternalUnavailableError
from ...core.logging import get_logger

logger = get_logger("notifications.email")

BUTTON_STYLE = (
    "background-color: {color}; color: white; padding: 10px 20px; "
    "text-decoration: none; border-radius: 5px; display: inline-block;"
)


def _button(url: str, label: str, color: str = "#667eea") -> str:
    return (
        f"<p><a href='{escape(url)}' style='{BUTTON_STYLE.format(color=color)}'>"
        f"{escape(label)}</a></p>"
    )


def _page(title: str, greeting_name: str, body: str) -> str:
    return f"""
    <html>
    <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
        <h2>{escape(title)}</h2>
        <p>Hi {escape(greeting_name)},</p>
        {body}
        <p>Best regards,<br/>The TenantTrack Team</p>
    </body>
    </html>
    """


class EmailClient:
    """Renders TenantTrack templates and sends them through SMTP."""

    def __init__(
        self,
        hostname: str | None = None,
        port: int | None = None,
        username: str | None = None,
        password: str | None = None,
        use_tls: bool | None = None,
        sender_address: str | None = None,
        sender_name: str | None = None,
        frontend_url: str | None = None,
    ):
        self.hostname = hostname or settings.smtp_host
        self.port = port or settings.smtp_port
        self.username = username if username is not None else settings.smtp_username
        self.password = password if password is not None else settings.smtp_password
        self.use_tls = settings.smtp_use_tls if use_tls is None else use_tls
        self.sender_address = sender_address or settings.email_sender_address
        self.sender_name = sender_name or settings.email_sender_name
        self.frontend_url = (frontend_url or settings.frontend_url).rstrip("/")

    async def send(self, to_email: str, to_name: str, subject: str, html: str) -> None:
        message = MIMEMultipart("alternative")
        message["Subject"] = subject
        message["From"] = formataddr((self.sender_name, self.sender_address))
        message["To"] = formataddr((to_name, to_email))
        message.attach(MIMEText(html, "html"))

        try:
            await aiosmtplib.send(
                message,
                hostname=self.hostname,
                port=self.port,
                username=self.username,
                password=self.password,
                start_tls=self.use_tls,
                timeout=settings.email_timeout_seconds,
            )
        except (aiosmtplib.SMTPException, OSError) as exc:
            raise ExternalUnavailableError(
                "smtp", "send", details={"error": str(exc), "subject": subject}
            ) from exc

        logger.info("Email sent", extra={"to": to_email, "subject": subject})

    # ----- Templates -----

    async def send_verification(
        self, to_email: str, to_name: str, verification_link: str
    ) -> None:
        body = f"""
        <p>Thank you for registering with TenantTrack. Please verify your email address:</p>
        {_button(verification_link, "Verify Email")}
        <p>Or copy and paste this link into your browser:</p>
        <p>{escape(verification_link)}</p>
        <p>This link will expire in 24 hours.</p>
        """
        await self.send(
            to_email,
            to_name,
            "Verify your TenantTrack email",
            _page("Welcome to TenantTrack!", to_name, body),
        )

    async def send_application_submitted(
        self,
        to_email: str,
        to_name: str,
        tenant_name: str,
        property_name: str,
        unit_number: str,
        start_date: str,
        end_date: str,
        rent: str,
    ) -> None:
        body = f"""
        <p>You have received a new rental application:</p>
        <ul>
            <li><strong>Applicant:</strong> {escape(tenant_name)}</li>
            <li><strong>Property:</strong> {escape(property_name)}</li>
            <li><strong>Unit:</strong> {escape(unit_number)}</li>
            <li><strong>Term:</strong> {escape(start_date)} to {escape(end_date)}</li>
            <li><strong>Monthly rent:</strong> ${escape(rent)}</li>
        </ul>
        <p>Please review and approve or deny this application.</p>
        {_button(f"{self.frontend_url}/applications", "Review Application")}
        """
        await self.send(
            to_email,
            to_name,
            f"New rental application for unit {unit_number}",
            _page("New Rental Application", to_name, body),
        )

    async def send_application_approved(
        self,
        to_email: str,
        to_name: str,
        property_name: str,
        unit_number: str,
        start_date: str,
        end_date: str,
    ) -> None:
        body = f"""
        <p>Great news! Your rental application has been approved:</p>
        <ul>
            <li><strong>Property:</strong> {escape(property_name)}</li>
            <li><strong>Unit:</strong> {escape(unit_number)}</li>
            <li><strong>Term:</strong> {escape(start_date)} to {escape(end_date)}</li>
        </ul>
        {_button(f"{self.frontend_url}/leases", "View Lease", color="#22c55e")}
        <p>Welcome to your new home!</p>
        """
        await self.send(
            to_email,
            to_name,
            "Your rental application was approved",
            _page("Congratulations!", to_name, body),
        )

    async def send_application_denied(
        self,
        to_email: str,
        to_name: str,
        property_name: str,
        unit_number: str,
        reason: str | None = None,
    ) -> None:
        reason_html = (
            f"<p><strong>Reason:</strong> {escape(reason)}</p>" if reason else ""
        )
        body = f"""
        <p>Thank you for your interest in unit {escape(unit_number)} at
        {escape(property_name)}.</p>
        <p>Unfortunately, we are unable to approve your application at this time.</p>
        {reason_html}
        {_button(f"{self.frontend_url}/properties", "View Available Properties")}
        """
        await self.send(
            to_email,
            to_name,
            "Update on your rental application",
            _page("Application Status Update", to_name, body),
        )

    async def send_lease_confirmation(
        self,
        to_email: str,
        to_name: str,
        property_name: str,
        unit_number: str,
        landlord_name: str,
        start_date: str,
        end_date: str,
        rent: str,
    ) -> None:
        body = f"""
        <p>Your lease agreement has been finalized with the following details:</p>
        <ul>
            <li><strong>Property:</strong> {escape(property_name)}</li>
            <li><strong>Unit:</strong> {escape(unit_number)}</li>
            <li><strong>Landlord:</strong> {escape(landlord_name)}</li>
            <li><strong>Start date:</strong> {escape(start_date)}</li>
            <li><strong>End date:</strong> {escape(end_date)}</li>
            <li><strong>Monthly rent:</strong> ${escape(rent)}</li>
        </ul>
        {_button(f"{self.frontend_url}/leases", "View Lease Details")}
        """
        await self.send(
            to_email,
            to_name,
            "Lease agreement confirmed",
            _page("Lease Agreement Confirmed", to_name, body),
        )

    async def send_payment_receipt(
        self,
        to_email: str,
        to_name: str,
        amount: str,
        currency: str,
        gateway_reference: str,
        balance: str,
    ) -> None:
        body = f"""
        <p>We received your payment. Thank you!</p>
        <ul>
            <li><strong>Amount:</strong> {escape(amount)} {escape(currency.upper())}</li>
            <li><strong>Reference:</strong> {escape(gateway_reference)}</li>
            <li><strong>Remaining balance:</strong> {escape(balance)}</li>
        </ul>
        {_button(f"{self.frontend_url}/payments", "View Payments")}
        """
        await self.send(
            to_email,
            to_name,
            "Payment received",
            _page("Payment Receipt", to_name, body),
        )

    async def send_maintenance_status(
        self,
        to_email: str,
        to_name: str,
        request_id: int,
        status: str,
        unit_number: str,
        description: str,
        note: str | None = None,
    ) -> None:
        note_html = f"<p>{escape(note)}</p>" if note else ""
        body = f"""
        <p>Maintenance request #{request_id} for unit {escape(unit_number)} is now
        <strong>{escape(status.replace("_", " "))}</strong>.</p>
        <p><em>{escape(description)}</em></p>
        {note_html}
        {_button(f"{self.frontend_url}/maintenance-requests", "View Request")}
        """
        await self.send(
            to_email,
            to_name,
            f"Maintenance request #{request_id}: {status.replace('_', ' ')}",
            _page("Maintenance Update", to_name, body),
        )
