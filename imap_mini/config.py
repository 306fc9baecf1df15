"""IMAP connection configuration loaded from environment variables.

The configuration is built once at process start (:func:`load_config`) and
handed to the :class:`~imap_mini.connection.ConnectionManager`; nothing
below this module reads the environment.
"""

from __future__ import annotations

import logging
import ssl
from dataclasses import dataclass
from enum import Enum

from pydantic import Field, SecretStr, ValidationError, field_validator
from pydantic_settings import BaseSettings

from .errors import StartupConfigError


class SecurityMode(str, Enum):
    """How the transport is protected."""

    TLS = "tls"  # implicit TLS from the first byte
    STARTTLS = "starttls"  # plain connect, upgrade when the server offers it
    PLAIN = "plain"


@dataclass(frozen=True)
class TransportSecurity:
    """Fixed transport security policy derived from :class:`ImapConfig`."""

    mode: SecurityMode
    verify_certificates: bool = True

    def ssl_context(self) -> ssl.SSLContext:
        context = ssl.create_default_context()
        if not self.verify_certificates:
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
        return context


class ImapConfig(BaseSettings):
    """IMAP server connection settings."""

    model_config = {"env_prefix": "IMAP_"}

    host: str = Field(description="IMAP server hostname")
    port: int = Field(default=993, ge=1, le=65535, description="IMAP server port")
    secure: bool = Field(default=True, description="Use implicit TLS (IMAPS)")
    starttls: bool = Field(
        default=True,
        description="Upgrade plain connections with STARTTLS when the server offers it",
    )
    tls_verify: bool = Field(default=True, description="Validate the server certificate")
    username: str = Field(description="IMAP login username")
    password: SecretStr = Field(description="IMAP login password")
    timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Socket timeout for connect and commands",
    )
    mailbox: str = Field(default="INBOX", description="Default mailbox for listings")
    log_level: str = Field(default="INFO", description="Root log level (stderr)")
    log_json: bool = Field(default=True, description="JSON log lines; console rendering when false")

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        if value.upper() not in logging.getLevelNamesMapping():
            raise ValueError(f"unknown log level {value!r}")
        return value.upper()

    @field_validator("host", "username")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be empty")
        return value.strip()

    @field_validator("password")
    @classmethod
    def _password_not_blank(cls, value: SecretStr) -> SecretStr:
        if not value.get_secret_value():
            raise ValueError("must not be empty")
        return value

    @property
    def security(self) -> TransportSecurity:
        if self.secure:
            mode = SecurityMode.TLS
        elif self.starttls:
            mode = SecurityMode.STARTTLS
        else:
            mode = SecurityMode.PLAIN
        return TransportSecurity(mode=mode, verify_certificates=self.tls_verify)


def load_config(**overrides: object) -> ImapConfig:
    """Build the process configuration, failing with a named-variable message.

    Keyword overrides take precedence over the environment (handy in tests
    and for embedding).
    """
    try:
        return ImapConfig(**overrides)
    except ValidationError as exc:
        first = exc.errors()[0]
        field = str(first["loc"][0]) if first["loc"] else "configuration"
        variable = f"IMAP_{field.upper()}"
        if first["type"] == "missing" or "empty" in first["msg"]:
            raise StartupConfigError(f"{variable} environment variable is required") from exc
        raise StartupConfigError(f"{variable} is invalid: {first['msg']}") from exc
