"""Domain models for validation runs and customer deployments."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from argus_onboarding.config import DEFAULT_BACKEND_URL

CUSTOMER_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9-]+$")

Environment = Literal["dev", "staging", "prod"]


class RunConfig(BaseModel):
    """Parsed, immutable parameters for one onboarding invocation."""

    model_config = ConfigDict(frozen=True)

    customer_name: str
    region: str = Field(default="us-east-1", min_length=1)
    instance_type: str = Field(default="t3.medium", min_length=1)
    environment: Environment = Field(default="prod")
    backend_url: str = Field(default=DEFAULT_BACKEND_URL, min_length=1)
    state_bucket: str | None = Field(default=None)
    enable_ssh: bool = Field(default=False)
    enable_autoscaling: bool = Field(default=False)
    enable_monitoring: bool = Field(default=True)
    dry_run: bool = Field(default=False)
    verbose: bool = Field(default=False)

    @field_validator("customer_name")
    @classmethod
    def _validate_customer_name(cls, value: str) -> str:
        if not CUSTOMER_NAME_PATTERN.match(value):
            raise ValueError(
                "Customer name must contain only alphanumeric characters and hyphens"
            )
        return value

    @field_validator("state_bucket", mode="before")
    @classmethod
    def _blank_bucket_is_none(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @property
    def deployment_name(self) -> str:
        return f"{self.customer_name}-{self.region}"

    @property
    def state_key(self) -> str:
        return f"argus-agent/{self.deployment_name}/terraform.tfstate"

    @property
    def state_location(self) -> str:
        if self.state_bucket:
            return f"s3://{self.state_bucket}/{self.state_key}"
        return "local"


class CheckStatus(str, Enum):
    PASS = "pass"
    WARN = "warn"
    FAIL = "fail"


@dataclass
class CheckResult:
    """Outcome of a single named readiness check."""

    name: str
    description: str
    status: CheckStatus
    messages: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return self.status is not CheckStatus.FAIL


@dataclass
class ValidationReport:
    """Accumulates check results for one validator run."""

    region: str
    version: str
    results: list[CheckResult] = field(default_factory=list)

    def record(self, result: CheckResult) -> CheckResult:
        self.results.append(result)
        return result

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def passed(self) -> int:
        return sum(1 for r in self.results if r.status is not CheckStatus.FAIL)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if r.status is CheckStatus.FAIL)

    @property
    def warned(self) -> int:
        return sum(len(r.warnings) for r in self.results)

    @property
    def ready(self) -> bool:
        return self.failed == 0

    @property
    def status_line(self) -> str:
        if self.ready:
            return "READY FOR DEPLOYMENT"
        return "ISSUES FOUND - REVIEW REQUIRED"

    def render(self, generated_at: str) -> str:
        lines = [
            "Argus Agent Deployment Validation Report",
            "========================================",
            "",
            f"Generated: {generated_at}",
            f"AWS Region: {self.region}",
            f"Script Version: {self.version}",
            "",
            "Summary:",
            f"- Total Checks: {self.total}",
            f"- Passed: {self.passed}",
            f"- Warnings: {self.warned}",
            f"- Failed: {self.failed}",
            "",
            f"Status: {self.status_line}",
        ]
        problems = [r for r in self.results if r.status is CheckStatus.FAIL or r.warnings]
        if problems:
            lines.extend(["", "Details:"])
            for result in problems:
                lines.append(f"- [{result.status.value.upper()}] {result.description}")
                lines.extend(f"    {message}" for message in result.messages)
                lines.extend(f"    warning: {warning}" for warning in result.warnings)
        return "\n".join(lines) + "\n"


@dataclass(frozen=True)
class DeploymentArtifact:
    """Rendered configuration files for one customer deployment."""

    directory: Path
    main_file: Path
    variables_file: Path
    secrets_file: Path
    api_key: str

    @property
    def plan_file(self) -> Path:
        return self.directory / "tfplan"

    @property
    def summary_file(self) -> Path:
        return self.directory / "deployment-summary.txt"

    def __repr__(self) -> str:
        return f"DeploymentArtifact(directory={self.directory}, api_key={self.api_key[:8]}***)"


@dataclass(frozen=True)
class DeploymentOutputs:
    """Values read back from Terraform after a successful apply."""

    instance_id: str
    role_arn: str | None = None
    private_ip: str | None = None
    raw: dict[str, object] = field(default_factory=dict)

    @classmethod
    def from_terraform(cls, outputs: dict[str, dict[str, object]]) -> DeploymentOutputs | None:
        """Build from ``terraform output -json``; ``None`` without an instance id."""
        visible = {
            name: entry.get("value")
            for name, entry in outputs.items()
            if isinstance(entry, dict) and not entry.get("sensitive")
        }
        instance_id = visible.get("agent_instance_id")
        if not instance_id:
            return None
        role_arn = visible.get("agent_role_arn")
        return cls(
            instance_id=str(instance_id),
            role_arn=str(role_arn) if role_arn else None,
            raw=visible,
        )
