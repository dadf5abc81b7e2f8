"""Environment-driven settings for the email-markdown pipeline."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field

from email_markdown.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_ROOT_FOLDER = "/EmailToMarkdown"


def _env(*names: str, default: str = "") -> str:
    for name in names:
        value = os.environ.get(name)
        if value:
            return value
    return default


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from e


@dataclass
class Settings:
    """Runtime configuration.

    Every field has a usable default except the secrets; components that
    need a missing secret raise ConfigurationError when they are built.
    """

    db_path: str = "email_markdown.db"
    encryption_keys: list[str] = field(default_factory=list)
    microsoft_client_id: str = ""
    microsoft_client_secret: str = ""
    google_client_id: str = ""
    google_client_secret: str = ""
    sendgrid_api_key: str = ""
    sender_email: str = ""
    sender_name: str = "Email to Markdown"
    pandoc_path: str = "pandoc"
    pandoc_timeout: float = 30.0
    default_root_folder: str = DEFAULT_ROOT_FOLDER
    oauth_timeout: float = 15.0
    provider_timeout: float = 30.0
    max_parallel_saves: int = 4
    dominance_ratio: float = 0.6
    content_loss_ratio: float = 0.1

    @classmethod
    def from_env(cls) -> Settings:
        """Build settings from environment variables."""
        keys = [
            k.strip()
            for k in _env("TOKEN_ENCRYPTION_KEYS", "TOKEN_ENCRYPTION_KEY").split(",")
            if k.strip()
        ]
        return cls(
            db_path=_env("EMAIL_MARKDOWN_DB_PATH", default="email_markdown.db"),
            encryption_keys=keys,
            microsoft_client_id=_env("MICROSOFT_CLIENT_ID", "AZURE_CLIENT_ID"),
            microsoft_client_secret=_env("MICROSOFT_CLIENT_SECRET", "AZURE_CLIENT_SECRET"),
            google_client_id=_env("GOOGLE_CLIENT_ID"),
            google_client_secret=_env("GOOGLE_CLIENT_SECRET"),
            sendgrid_api_key=_env("SENDGRID_API_KEY"),
            sender_email=_env("SENDER_EMAIL"),
            sender_name=_env("SENDER_NAME", default="Email to Markdown"),
            pandoc_path=_env("PANDOC_PATH", default="pandoc"),
            pandoc_timeout=_env_float("PANDOC_TIMEOUT", 30.0),
            default_root_folder=_env("DEFAULT_ROOT_FOLDER", default=DEFAULT_ROOT_FOLDER),
            dominance_ratio=_env_float("HEADER_DOMINANCE_RATIO", 0.6),
            content_loss_ratio=_env_float("CONTENT_LOSS_RATIO", 0.1),
        )

    def client_credentials(self) -> dict[str, tuple[str, str]]:
        """Client id/secret pairs keyed by OAuth provider name."""
        return {
            "microsoft": (self.microsoft_client_id, self.microsoft_client_secret),
            "google": (self.google_client_id, self.google_client_secret),
        }


def configure_logging(level: int | str = logging.INFO) -> None:
    """Install a basic console handler for scripts and local runs."""
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
