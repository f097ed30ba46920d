"""Client configuration loading and validation."""

from __future__ import annotations

import json
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, ClassVar, Dict, Iterable, Literal

import yaml
from pydantic import Field, PositiveFloat, PositiveInt
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_CONFIG_LOCATIONS: tuple[Path, ...] = (
    Path("/etc/wired/client.yaml"),
    Path("/etc/wired/client.yml"),
    Path("./config/client.yaml"),
    Path("./config/client.yml"),
)

# SHA-1 of the empty string; the guest account has no password.
GUEST_PASSWORD_DIGEST = "da39a3ee5e6b4b0d3255bfef95601890afd80709"

DEFAULT_ICON = (
    "iVBORw0KGgoAAAANSUhEUgAAAEAAAABACAQAAAAAYLlVAAABHElEQVR4A"
    "e3XsY1EIRCD4WmCUiiElqYgeqISjmCDFdnbT4Lgnh3/AciGmXj1ClWWr2osX1SNuVxvn"
    "n8uX7uDFvPjFlc0v3xBGfPLeb5+c/PhOvaYm/v5+O1up+u3e9yJn0eR48dRhPhBFPX8f"
    "gd+fr8Drx/W0etHdfT6QR01fhhFjx9EEYavZ64H4gdR1PqdruP8zQfqB3WE+B2OYsYAp"
    "5+/YXyrxm9wfbl+zXnf/Zyn+qXz+vsV5+3368r781Odt99vKO+vfzqvw1dx3oav7rz+f"
    "tV5G76G8zp8Nedt+BzO6/CVyvvuU5TX3ac7r8NnVV53n6G87z5Ned59lPfdJ5V/Xp/dR"
    "fmn9dndlf9cH7gtC58RGR2czL/69/oD52cjZjGw8cIAAAAASUVORK5CYII="
)


class WiredSettings(BaseSettings):
    """Validated settings for the Wired client runtime."""

    model_config: ClassVar[SettingsConfigDict] = SettingsConfigDict(
        env_prefix="WIRED_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Connection target
    host: str = Field(
        default="chat.embercode.com",
        description="Wired server host name or address.",
    )
    port: int = Field(
        default=2359,
        ge=1,
        le=65535,
        description="Wired server TCP port.",
    )
    transport: Literal["tcp", "memory"] = Field(
        default="tcp",
        description="Transport implementation to use.",
    )
    connect_timeout_seconds: PositiveFloat = Field(
        default=15.0,
        description="Upper bound on a single transport connect attempt.",
    )
    read_limit_bytes: PositiveInt = Field(
        default=4 * 1024 * 1024,
        description="Largest inbound frame the transport will buffer.",
    )

    # Reconnect & keepalive
    reconnect_delay_seconds: PositiveFloat = Field(
        default=15.0,
        description="Fixed delay between reconnect attempts.",
    )
    reconnect_max_attempts: PositiveInt = Field(
        default=20,
        description="Consecutive failed attempts tolerated before the session is abandoned.",
    )
    keepalive_check_interval_seconds: PositiveFloat = Field(
        default=90.0,
        description="How often the keepalive watchdog wakes up.",
    )
    keepalive_stale_after_seconds: PositiveFloat = Field(
        default=60.0,
        description="Age of the last server ping after which a proactive reply is sent.",
    )

    # Handshake
    handshake_version: str = Field(default="1.0", description="P7 handshake version.")
    protocol_name: str = Field(default="Wired", description="Protocol name announced in the handshake.")
    protocol_version: str = Field(default="2.0", description="Protocol version announced in the handshake.")

    # Identity
    login_user: str = Field(default="guest", description="Account used to log in.")
    login_password_digest: str = Field(
        default=GUEST_PASSWORD_DIGEST,
        description="SHA-1 hex digest of the account password.",
        repr=False,
    )
    nick: str = Field(default="Triforce", description="Nickname set after login.")
    status_text: str = Field(default="The APNs of Wired", description="Status line set after login.")
    icon: str = Field(default=DEFAULT_ICON, description="Base64 PNG avatar set after login.", repr=False)
    channel_id: str = Field(default="1", description="Chat channel joined after login.")
    mark_idle: bool = Field(default=True, description="Mark the user idle once the session is set up.")

    # Client information reported to the server
    application_name: str = Field(default="Wired Client")
    application_version: str = Field(default="2.1")
    application_build: str = Field(default="306")
    os_name: str = Field(default="Mac OS X")
    os_version: str = Field(default="10.9.2")
    arch: str = Field(default="x86_64")
    supports_rsrc: bool = Field(default=False)

    # Specification catalog
    specification_dir: Path = Field(
        default=Path("./specs"),
        description="Directory holding WiredSpec_<version>.xml documents.",
    )
    supported_versions: list[str] = Field(
        default_factory=lambda: ["2.0b51", "2.0b53", "2.0b55"],
        description="Protocol versions whose specification must be loaded at startup.",
    )
    strip_spec_documentation: bool = Field(
        default=True,
        description="Remove p7:documentation elements before transmitting the specification.",
    )

    # Push notifications
    push_enabled: bool = Field(default=False, description="Deliver chat events to the push gateway.")
    push_gateway_url: str | None = Field(default=None, description="HTTP push gateway endpoint.")
    push_auth_token: str | None = Field(default=None, description="Bearer token for the push gateway.", repr=False)
    push_device_token: str | None = Field(default=None, description="Device token notifications are sent to.")
    push_sandbox: bool = Field(default=True, description="Route notifications through the sandbox environment.")
    push_expiry_seconds: PositiveInt = Field(default=24 * 60 * 60, description="Notification expiry.")
    push_server_label: str = Field(default="Cunning Giraffe", description="Server name used in alert text.")
    push_timeout_seconds: PositiveFloat = Field(default=10.0, description="HTTP timeout for gateway calls.")

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Minimum log level for the client process.",
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        if isinstance(value, str):
            return value.upper()
        return value

    config_path: Path | None = Field(
        default=None,
        description="Resolved path to the on-disk config that seeded the settings.",
        exclude=True,
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[WiredSettings],
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            cls._yaml_settings_source,
            env_settings,
            dotenv_settings,
            file_secret_settings,
        )

    @staticmethod
    def _yaml_settings_source(settings_cls: type[WiredSettings] | None = None) -> Dict[str, Any]:
        candidates: Iterable[Path] = WiredSettings._resolve_candidate_paths()

        for path in candidates:
            data = WiredSettings._load_file(path)
            if data is not None:
                data.setdefault("config_path", path)
                return data
        return {}

    @staticmethod
    def _resolve_candidate_paths() -> Iterable[Path]:
        explicit = os.getenv("WIRED_CONFIG_FILE")
        if explicit:
            yield Path(explicit).expanduser()
        yield from DEFAULT_CONFIG_LOCATIONS

    @staticmethod
    def _load_file(path: Path) -> Dict[str, Any] | None:
        if not path.is_file():
            return None
        suffix = path.suffix.lower()
        try:
            with path.open("r", encoding="utf-8") as handle:
                if suffix in {".yaml", ".yml"}:
                    raw = yaml.safe_load(handle)
                elif suffix == ".json":
                    raw = json.load(handle)
                else:
                    return None
        except OSError as exc:
            raise RuntimeError(f"Failed to read client config file {path}") from exc
        except (yaml.YAMLError, json.JSONDecodeError) as exc:
            raise ValueError(f"Invalid client config file {path}") from exc

        if raw is None:
            return {}
        if not isinstance(raw, dict):
            raise ValueError(f"Client config file {path} must contain a mapping at top level.")
        return raw


@lru_cache()
def get_settings() -> WiredSettings:
    """Return memoized client settings."""

    settings = WiredSettings()
    settings.specification_dir = settings.specification_dir.expanduser().resolve()
    return settings
