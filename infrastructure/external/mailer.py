import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional

logger = logging.getLogger(__name__)

_TEMPLATE = """<!doctype html>
<html>
    <head>
        <meta http-equiv="Content-Type" content="text/html; charset=UTF-8">
    </head>
    <body>
        <div style="display: block; margin: auto; max-width: 600px;">
            <h1>{heading}</h1>
            <p>{body}</p>
            <a href="{link}">{label}</a>
        </div>
    </body>
</html>
"""


class SmtpNotificationSender:
    """Sends account emails over SMTP.

    Calls block on the network and are meant to run from the background
    runner, never from a request's own path of control.
    """

    def __init__(
        self,
        host: str,
        port: int = 587,
        username: Optional[str] = None,
        password: Optional[str] = None,
        use_tls: bool = True,
        from_email: str = "no-reply@vitrine.local",
        base_url: str = "http://localhost:8000",
        timeout: float = 30.0,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.from_email = from_email
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings) -> "SmtpNotificationSender":
        return cls(
            host=settings.SMTP_HOST,
            port=settings.SMTP_PORT,
            username=settings.SMTP_USERNAME,
            password=settings.SMTP_PASSWORD,
            use_tls=settings.SMTP_USE_TLS,
            from_email=settings.MAIL_FROM,
            base_url=settings.PUBLIC_BASE_URL,
        )

    def send_verification(self, address: str, token: str) -> None:
        link = f"{self.base_url}/v1/auth/verify/{token}"
        html_body = _TEMPLATE.format(
            heading="Verify your email address",
            body="Click the link below to verify your email:",
            link=link,
            label="Verify Email",
        )
        self._send(address, "Email Verification", f"Verify your email: {link}", html_body)

    def send_password_reset(self, address: str, token: str) -> None:
        if not address or not token:
            raise ValueError("email and token cannot be empty")
        link = f"{self.base_url}/v1/auth/reset-password/{token}"
        html_body = _TEMPLATE.format(
            heading="Reset your password",
            body="Click the link below to reset your password:",
            link=link,
            label="Reset Password",
        )
        self._send(address, "Password Reset Request", f"Reset your password: {link}", html_body)

    def _send(self, to_email: str, subject: str, text_body: str, html_body: str) -> None:
        message = MIMEMultipart("alternative")
        message["Subject"] = subject
        message["From"] = self.from_email
        message["To"] = to_email
        message.attach(MIMEText(text_body, "plain", "utf-8"))
        message.attach(MIMEText(html_body, "html", "utf-8"))

        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
            if self.use_tls:
                server.starttls()
            if self.username and self.password:
                server.login(self.username, self.password)
            server.send_message(message)
        logger.info(f"Sent '{subject}' email to {to_email}")
