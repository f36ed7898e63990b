"""Configuration management for the Argus onboarding toolkit."""

from __future__ import annotations

import logging
import os
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator

_config_logger = logging.getLogger(__name__)

DEFAULT_BACKEND_URL = "https://api.argus-dspm.com"


class LoggingSettings(BaseModel):
    level: str = Field(default="INFO", description="Python logging level name")
    file: str | None = Field(default=None, description="Optional log file path")


class AWSSettings(BaseModel):
    default_region: str | None = Field(default=None)
    default_profile: str | None = Field(default=None)
    sdk_timeout_seconds: int = Field(default=30, ge=1, le=300)
    max_retries: int = Field(default=2, ge=0, le=10)


class TerraformSettings(BaseModel):
    binary: str = Field(default="terraform")
    timeout_seconds: int = Field(
        default=1800,
        ge=1,
        description="Upper bound for a single terraform invocation.",
    )


class OnboardingSettings(BaseModel):
    deployments_root: str = Field(default="./deployments")
    module_source: str = Field(default="../../terraform/modules/argus-agent-ec2")
    backend_url: str = Field(default=DEFAULT_BACKEND_URL)

    @field_validator("backend_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")


class ValidationSettings(BaseModel):
    required_tools: tuple[str, ...] = Field(default=("terraform",))
    vpc_warn_threshold: int = Field(default=5, ge=1)
    instance_warn_threshold: int = Field(default=15, ge=1)
    registry_url: str = Field(default="https://registry-1.docker.io")
    minimum_terraform_version: str = Field(default="1.5.0")

    @field_validator("required_tools")
    @classmethod
    def _require_at_least_one_tool(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        if not value:
            raise ValueError("at least one required tool must be configured")
        return value


class Settings(BaseModel):
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    aws: AWSSettings = Field(default_factory=AWSSettings)
    terraform: TerraformSettings = Field(default_factory=TerraformSettings)
    onboarding: OnboardingSettings = Field(default_factory=OnboardingSettings)
    validation: ValidationSettings = Field(default_factory=ValidationSettings)


ENV_KEYS = {
    "log_level": "LOG_LEVEL",
    "log_file": "LOG_FILE",
    "aws_region": "AWS_DEFAULT_REGION",
    "aws_profile": "AWS_PROFILE",
    "sdk_timeout": "AWS_SDK_TIMEOUT_SECONDS",
    "max_retries": "AWS_MAX_RETRIES",
    "terraform_binary": "TERRAFORM_BINARY",
    "terraform_timeout": "TERRAFORM_TIMEOUT_SECONDS",
    "deployments_root": "ARGUS_DEPLOYMENTS_ROOT",
    "module_source": "ARGUS_MODULE_SOURCE",
    "backend_url": "ARGUS_BACKEND_URL",
    "required_tools": "ARGUS_REQUIRED_TOOLS",
    "vpc_threshold": "ARGUS_VPC_WARN_THRESHOLD",
    "instance_threshold": "ARGUS_INSTANCE_WARN_THRESHOLD",
    "registry_url": "ARGUS_REGISTRY_URL",
}


def _split_csv(value: str | None) -> list[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def _project_root() -> Path:
    return Path(__file__).resolve().parents[2]


def _env_int(key: str, default: int) -> int:
    value = os.getenv(key)
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError:
        _config_logger.warning(
            "Invalid integer value for %s: %r, using default %d", key, value, default
        )
        return default


def load_settings() -> Settings:
    """Load configuration and cache the result."""

    return _load_settings_cached()


@lru_cache(maxsize=1)
def _load_settings_cached() -> Settings:
    load_dotenv(dotenv_path=_project_root() / ".env")
    log_file_env = os.getenv(ENV_KEYS["log_file"])
    required_tools_env = os.getenv(ENV_KEYS["required_tools"])
    if required_tools_env is None:
        required_tools = ValidationSettings().required_tools
    else:
        required_tools = tuple(_split_csv(required_tools_env))

    settings_data: dict[str, object] = {
        "logging": {
            "level": os.getenv(ENV_KEYS["log_level"], LoggingSettings().level),
            "file": str(Path(log_file_env).expanduser()) if log_file_env else None,
        },
        "aws": {
            "default_region": os.getenv("AWS_REGION") or os.getenv(ENV_KEYS["aws_region"]),
            "default_profile": os.getenv(ENV_KEYS["aws_profile"]),
            "sdk_timeout_seconds": _env_int(
                ENV_KEYS["sdk_timeout"], AWSSettings().sdk_timeout_seconds
            ),
            "max_retries": _env_int(ENV_KEYS["max_retries"], AWSSettings().max_retries),
        },
        "terraform": {
            "binary": os.getenv(ENV_KEYS["terraform_binary"], TerraformSettings().binary),
            "timeout_seconds": _env_int(
                ENV_KEYS["terraform_timeout"], TerraformSettings().timeout_seconds
            ),
        },
        "onboarding": {
            "deployments_root": os.getenv(
                ENV_KEYS["deployments_root"], OnboardingSettings().deployments_root
            ),
            "module_source": os.getenv(
                ENV_KEYS["module_source"], OnboardingSettings().module_source
            ),
            "backend_url": os.getenv(ENV_KEYS["backend_url"], OnboardingSettings().backend_url),
        },
        "validation": {
            "required_tools": required_tools,
            "vpc_warn_threshold": _env_int(
                ENV_KEYS["vpc_threshold"], ValidationSettings().vpc_warn_threshold
            ),
            "instance_warn_threshold": _env_int(
                ENV_KEYS["instance_threshold"], ValidationSettings().instance_warn_threshold
            ),
            "registry_url": os.getenv(
                ENV_KEYS["registry_url"], ValidationSettings().registry_url
            ),
        },
    }

    try:
        return Settings.model_validate(settings_data)
    except ValidationError as exc:
        raise RuntimeError(f"Invalid configuration: {exc}") from exc
