"""Environment-driven configuration for external integrations.

Values are read from the process environment (optionally populated from a
``.env`` file).  Zoho Creator settings are all required for CRM calls to
work; missing ones are reported by :meth:`ZohoSettings.missing` so the
health endpoint and the client can say what is wrong instead of failing
with a bare ``KeyError``.
"""

import logging
import os
from dataclasses import dataclass, fields

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_ZOHO_API_BASE_URL = "https://creator.zoho.com/api/v2"
DEFAULT_ZOHO_TIMEOUT_SECONDS = 30.0


@dataclass(frozen=True)
class ZohoSettings:
    """Zoho Creator OAuth + form coordinates."""

    token_url: str = ""
    client_id: str = ""
    client_secret: str = ""
    redirect_uri: str = ""
    refresh_token: str = ""
    org_id: str = ""
    app_id: str = ""
    proposal_form_name: str = ""
    concept_form_name: str = ""
    concept_report_name: str = ""
    api_base_url: str = DEFAULT_ZOHO_API_BASE_URL
    timeout_seconds: float = DEFAULT_ZOHO_TIMEOUT_SECONDS

    @classmethod
    def from_env(cls) -> "ZohoSettings":
        timeout_raw = os.getenv("ZOHO_TIMEOUT_SECONDS", "")
        try:
            timeout = float(timeout_raw) if timeout_raw else DEFAULT_ZOHO_TIMEOUT_SECONDS
        except ValueError:
            logger.warning(
                "Invalid ZOHO_TIMEOUT_SECONDS=%r, using %.0fs",
                timeout_raw,
                DEFAULT_ZOHO_TIMEOUT_SECONDS,
            )
            timeout = DEFAULT_ZOHO_TIMEOUT_SECONDS

        return cls(
            token_url=os.getenv("ZOHO_TOKEN_URL", ""),
            client_id=os.getenv("ZOHO_CLIENT_ID", ""),
            client_secret=os.getenv("ZOHO_CLIENT_SECRET", ""),
            redirect_uri=os.getenv("ZOHO_REDIRECT_URI", ""),
            refresh_token=os.getenv("ZOHO_REFRESH_TOKEN", ""),
            org_id=os.getenv("ZOHO_CREATOR_ORG_ID", ""),
            app_id=os.getenv("ZOHO_CREATOR_APP_ID", ""),
            proposal_form_name=os.getenv("ZOHO_CREATOR_FORM_NAME", ""),
            concept_form_name=os.getenv("ZOHO_CREATOR_FORM2_NAME", ""),
            concept_report_name=os.getenv("ZOHO_CREATOR_CONCEPT_REPORT_NAME", ""),
            api_base_url=os.getenv("ZOHO_API_BASE_URL", DEFAULT_ZOHO_API_BASE_URL),
            timeout_seconds=timeout,
        )

    def missing(self) -> list[str]:
        """Names of unset settings (api_base_url/timeout always have defaults)."""
        return [
            f.name
            for f in fields(self)
            if f.name not in ("api_base_url", "timeout_seconds")
            and not getattr(self, f.name)
        ]


@dataclass(frozen=True)
class SmtpSettings:
    """SMTP transport for notification emails."""

    host: str = ""
    port: int = 587
    user: str = ""
    password: str = ""
    from_email: str = "noreply@gap-portal.org"

    @classmethod
    def from_env(cls) -> "SmtpSettings":
        return cls(
            host=os.getenv("SMTP_HOST", ""),
            port=int(os.getenv("SMTP_PORT", "587")),
            user=os.getenv("SMTP_USER", ""),
            password=os.getenv("SMTP_PASSWORD", ""),
            from_email=os.getenv("SMTP_FROM_EMAIL", "noreply@gap-portal.org"),
        )

    @property
    def configured(self) -> bool:
        return bool(self.host and self.user and self.password)
