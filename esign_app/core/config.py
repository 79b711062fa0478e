## esign_app/core/config.py

from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from esign_app.esign.exceptions import ConfigurationException


class Settings(BaseSettings):
    """
    Settings for the application
    """

    model_config = SettingsConfigDict(
        env_file=".env", extra="ignore", case_sensitive=False
    )

    environment: str = "development"
    allowed_cors_urls: str = "*"

    log_level: str = "INFO"
    log_json: bool = False
    log_file: Optional[str] = None

    # Docusign integration
    docusign_client_id: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("docusign_client_id", "client_id")
    )
    docusign_account_id: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("docusign_account_id", "account_id")
    )
    docusign_user_id: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("docusign_user_id", "user_id")
    )
    docusign_private_key: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("docusign_private_key", "private_key")
    )
    docusign_pem_path: Optional[str] = None
    docusign_auth_server: str = "account-d.docusign.com"
    docusign_auth_scheme: str = "https"
    docusign_consent_redirect_uri: str = "http://localhost:3000/ds/callback"
    docusign_email_subject: str = "Please sign this agreement"

    @property
    def auth_base_url(self) -> str:
        """
        Base URL of the OAuth host
        """
        return f"{self.docusign_auth_scheme}://{self.docusign_auth_server}"


@dataclass(frozen=True)
class Credentials:
    """Process-wide DocuSign identity used for the JWT grant."""

    client_id: str
    account_id: str
    user_id: str
    private_key: str

    def __post_init__(self):
        missing = [
            name
            for name in ("client_id", "account_id", "user_id", "private_key")
            if not getattr(self, name)
        ]
        if missing:
            raise ConfigurationException(
                "DocuSign credentials are incomplete", {"missing": missing}
            )
        try:
            key = serialization.load_pem_private_key(
                self.private_key.encode("utf-8"), password=None
            )
        except (ValueError, TypeError) as e:
            raise ConfigurationException(
                "DocuSign private key is not a valid PEM key"
            ) from e
        if not isinstance(key, rsa.RSAPrivateKey):
            raise ConfigurationException("DocuSign private key must be an RSA key")


def load_private_key(settings: Settings) -> Optional[str]:
    """Load the private key from the environment or from the PEM path"""
    if settings.docusign_private_key:
        return settings.docusign_private_key.replace("\\n", "\n")
    if settings.docusign_pem_path:
        key_path = Path(settings.docusign_pem_path)
        if not key_path.exists():
            raise ConfigurationException(
                "DocuSign PEM file not found", {"path": str(key_path)}
            )
        return key_path.read_text(encoding="utf-8")
    return None


def build_credentials(settings: Settings) -> Credentials:
    return Credentials(
        client_id=settings.docusign_client_id or "",
        account_id=settings.docusign_account_id or "",
        user_id=settings.docusign_user_id or "",
        private_key=load_private_key(settings) or "",
    )


@lru_cache
def get_settings() -> Settings:
    """Cached settings instance."""
    return Settings()


@lru_cache
def get_credentials() -> Credentials:
    """Credentials built once per process from the cached settings."""
    return build_credentials(get_settings())
