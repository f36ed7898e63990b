"""Abbreviated interactive pre-flight check."""

from __future__ import annotations

import json
import logging
import re
import shutil
from pathlib import Path

from argus_onboarding.config import Settings, load_settings
from argus_onboarding.console import Console
from argus_onboarding.execution.aws_client import AwsProbe, AwsProbeError
from argus_onboarding.execution.terraform import TerraformError, TerraformRunner, version_at_least

logger = logging.getLogger(__name__)

REQUIRED_CONFIG_KEYS = ("customer_name", "agent_api_key")
FALLBACK_REGION = "us-east-1"


class QuickValidationFailed(Exception):
    """A hard pre-flight failure; the run stops here."""


def read_config_keys(path: Path) -> set[str]:
    """Top-level keys assigned in a ``.tfvars`` or ``.tfvars.json`` file."""
    text = path.read_text(encoding="utf-8")
    if path.suffix == ".json":
        payload = json.loads(text)
        return set(payload) if isinstance(payload, dict) else set()
    return set(re.findall(r"^\s*([A-Za-z_][A-Za-z0-9_-]*)\s*=", text, flags=re.MULTILINE))


def find_config_file(directory: Path) -> Path | None:
    for name in ("terraform.tfvars.json", "terraform.tfvars"):
        candidate = directory / name
        if candidate.is_file():
            return candidate
    return None


class QuickValidator:
    def __init__(
        self,
        probe: AwsProbe,
        terraform: TerraformRunner,
        console: Console,
        *,
        settings: Settings | None = None,
    ) -> None:
        self.probe = probe
        self.terraform = terraform
        self.console = console
        self.settings = settings or load_settings()
        self.warnings = 0

    def _warn(self, message: str) -> None:
        self.warnings += 1
        self.console.warning(message)

    def run(self, config_dir: Path) -> None:
        """Raise :class:`QuickValidationFailed` at the first hard failure."""
        self.console.line("🚀 Argus Agent Deployment - Quick Validation")
        self.console.line("==============================================")

        self._check_credentials()
        self._check_terraform()
        self._check_config_file(config_dir)
        self._check_permissions()

        self.console.line()
        self.console.success("✨ Environment validation completed successfully!")
        self.console.line()
        self.console.info("Next steps:")
        self.console.line("1. Configure terraform.tfvars.json with your values")
        self.console.line("2. Run: terraform init")
        self.console.line("3. Run: terraform plan")
        self.console.line("4. Run: terraform apply")

    def _check_credentials(self) -> None:
        try:
            identity = self.probe.caller_identity()
        except AwsProbeError as exc:
            self.console.error("AWS credentials not configured. Run: aws configure")
            raise QuickValidationFailed(str(exc)) from exc
        self.console.success(f"AWS credentials configured (Account: {identity['account']})")

    def _check_terraform(self) -> None:
        if shutil.which(self.terraform.binary) is None:
            self.console.error(
                "Terraform not found. Install from: https://www.terraform.io/downloads"
            )
            raise QuickValidationFailed("terraform not installed")
        try:
            version = self.terraform.version()
        except TerraformError as exc:
            logger.debug("terraform version failed: %s", exc)
            version = "unknown"
        self.console.success(f"Terraform is installed (Version: {version})")
        minimum = self.settings.validation.minimum_terraform_version
        if version_at_least(version, minimum):
            self.console.success("Terraform version is compatible")
        else:
            self._warn(f"Terraform version {version} may be incompatible (required: >= {minimum})")

    def _check_config_file(self, config_dir: Path) -> None:
        path = find_config_file(config_dir)
        if path is None:
            self._warn("terraform.tfvars not found")
            self.console.info("Copy terraform.tfvars.example to terraform.tfvars and configure")
            return
        self.console.success(f"{path.name} configuration file found")
        try:
            keys = read_config_keys(path)
        except (OSError, ValueError) as exc:
            self._warn(f"Could not read {path.name}: {exc}")
            return
        missing = [key for key in REQUIRED_CONFIG_KEYS if key not in keys]
        if missing:
            self._warn(f"Missing required variables in {path.name}")
            self.console.info(f"Required: {', '.join(REQUIRED_CONFIG_KEYS)}")
        else:
            self.console.success("Required configuration variables present")

    def _check_permissions(self) -> None:
        self.console.info("Checking AWS permissions...")
        region = self.probe.configured_region() or FALLBACK_REGION
        try:
            self.probe.call("ec2", "describe_regions", region)
        except AwsProbeError as exc:
            self.console.error("Missing EC2 permissions")
            raise QuickValidationFailed(str(exc)) from exc
        self.console.success("EC2 permissions OK")
        try:
            self.probe.call("iam", "list_roles", MaxItems=1)
        except AwsProbeError as exc:
            logger.debug("iam:ListRoles failed: %s", exc)
            self._warn("Limited IAM permissions - deployment may require additional privileges")
        else:
            self.console.success("IAM permissions OK")
