"""Settings for a single operator registration run."""

from __future__ import annotations

import os
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml
from dotenv import dotenv_values, find_dotenv
from pydantic import BaseModel, ConfigDict, Field, SecretStr, ValidationError, field_validator

from .errors import ConfigError

DEFAULT_RPC_URL = "http://ethereum:8545"
DEFAULT_CORE_DEPLOYMENT = "contracts/deployments/core/17000.json"
DEFAULT_MIDDLEWARE_DEPLOYMENT = "contracts/deployments/layer-middleware/17000.json"
SETTINGS_ENV = "LAYER_OPERATOR_SETTINGS"

# First match wins for fields with several accepted variable names.
ENV_FIELDS: Dict[str, tuple[str, ...]] = {
    "private_key": ("PRIVATE_KEY",),
    "rpc_url": ("TESTNET_RPC_URL", "RPC_URL"),
    "core_deployment_path": ("CORE_DEPLOYMENT_PATH",),
    "middleware_deployment_path": ("MIDDLEWARE_DEPLOYMENT_PATH",),
    "expiry_window_seconds": ("EXPIRY_WINDOW_SECONDS",),
    "gas_limit": ("REGISTRATION_GAS_LIMIT",),
    "receipt_timeout_seconds": ("RECEIPT_TIMEOUT_SECONDS",),
    "receipt_poll_interval_seconds": ("RECEIPT_POLL_INTERVAL_SECONDS",),
    "request_timeout_seconds": ("RPC_REQUEST_TIMEOUT_SECONDS",),
    "registration_policy": ("REGISTRATION_POLICY",),
    "verify_digest_on_chain": ("VERIFY_DIGEST_ON_CHAIN",),
    "log_level": ("LOG_LEVEL",),
    "log_file": ("LOG_FILE",),
}


class RegistrationPolicy(str, Enum):
    """How the registration-state pre-check affects submission."""

    ALWAYS_SUBMIT = "always-submit"
    SKIP_IF_REGISTERED = "skip-if-registered"


class OperatorSettings(BaseModel):
    """Explicit configuration handed to every component of the workflow."""

    # Validation errors must not echo the rejected key.
    model_config = ConfigDict(hide_input_in_errors=True)

    private_key: SecretStr = Field(..., description="Hex-encoded secp256k1 operator key")
    rpc_url: str = Field(DEFAULT_RPC_URL, description="JSON-RPC endpoint of the chain node")
    core_deployment_path: Path = Field(Path(DEFAULT_CORE_DEPLOYMENT))
    middleware_deployment_path: Path = Field(Path(DEFAULT_MIDDLEWARE_DEPLOYMENT))
    expiry_window_seconds: int = Field(3600, gt=0, description="Lifetime of a signed attestation")
    gas_limit: int = Field(500_000, ge=21_000, description="Gas ceiling for the registration call")
    receipt_timeout_seconds: float = Field(120.0, gt=0)
    receipt_poll_interval_seconds: float = Field(2.0, gt=0)
    request_timeout_seconds: float = Field(30.0, gt=0)
    registration_policy: RegistrationPolicy = RegistrationPolicy.ALWAYS_SUBMIT
    verify_digest_on_chain: bool = True
    log_level: str = "INFO"
    log_file: Optional[Path] = None

    @field_validator("private_key", mode="before")
    @classmethod
    def coerce_yaml_integer_key(cls, value: Any) -> Any:
        # YAML reads an unquoted 0x... key as an integer.
        if isinstance(value, int) and not isinstance(value, bool):
            return f"0x{value:064x}"
        return value

    @field_validator("private_key")
    @classmethod
    def validate_private_key(cls, value: SecretStr) -> SecretStr:
        if not value.get_secret_value().strip():
            raise ValueError("private_key must not be empty")
        return value

    @field_validator("rpc_url")
    @classmethod
    def validate_rpc_url(cls, value: str) -> str:
        if not value.startswith(("http://", "https://")):
            raise ValueError("rpc_url must be an http(s) URL")
        return value

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level {value!r}")
        return level

    @classmethod
    def load(
        cls,
        settings_path: Optional[str | Path] = None,
        *,
        environ: Optional[Mapping[str, str]] = None,
        env_file: Optional[str | Path] = None,
        **overrides: Any,
    ) -> "OperatorSettings":
        """Build settings from defaults, an optional YAML file, the environment and overrides.

        Later sources win. Overrides that are ``None`` are ignored so CLI options
        can be passed through unconditionally.

        Variables from a dotenv file sit just below the real environment. The
        file is ``env_file`` when given; otherwise a ``.env`` found from the
        working directory upwards is used, but only when ``environ`` is not
        supplied.
        """

        real_env = os.environ if environ is None else environ
        env: Dict[str, str] = {**_read_dotenv(env_file, discover=environ is None), **real_env}
        path = settings_path or env.get(SETTINGS_ENV)
        data: Dict[str, Any] = {}
        if path:
            data.update(_load_yaml(Path(path)))
        for field_name, names in ENV_FIELDS.items():
            for name in names:
                value = env.get(name)
                if value not in (None, ""):
                    data[field_name] = value
                    break
        data.update({key: value for key, value in overrides.items() if value is not None})

        if not data.get("private_key"):
            raise ConfigError("PRIVATE_KEY is not set; the operator key is required")
        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            raise ConfigError(f"Invalid operator settings: {exc}") from exc


def _read_dotenv(env_file: Optional[str | Path], *, discover: bool) -> Dict[str, str]:
    if env_file is not None:
        path = Path(env_file)
        if not path.is_file():
            raise ConfigError(f"Environment file {path} does not exist")
    elif discover:
        found = find_dotenv(usecwd=True)
        if not found:
            return {}
        path = Path(found)
    else:
        return {}
    values = dotenv_values(path)
    return {name: value for name, value in values.items() if value is not None}


def _load_yaml(path: Path) -> Dict[str, Any]:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Unable to read settings file {path}: {exc}") from exc
    try:
        data = yaml.safe_load(text) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Settings file {path} is not valid YAML: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Settings file {path} must contain a mapping")
    return data


__all__ = ["OperatorSettings", "RegistrationPolicy", "ENV_FIELDS", "DEFAULT_RPC_URL"]
