"""AWS account readiness checks for an Argus agent deployment.

Every check is read-only. A check passes, warns (it completed but raised
warnings) or fails; only failures affect the readiness verdict. IAM
visibility, resource limits and network reachability can only ever warn.
"""

from __future__ import annotations

import logging
import shutil
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

from argus_onboarding import __version__
from argus_onboarding.config import Settings, load_settings
from argus_onboarding.console import Console, validator_console
from argus_onboarding.execution.aws_client import AwsProbe, AwsProbeError
from argus_onboarding.execution.network import NetworkProbe
from argus_onboarding.execution.terraform import TerraformError, TerraformRunner, version_at_least
from argus_onboarding.models import CheckResult, CheckStatus, ValidationReport

logger = logging.getLogger(__name__)

EC2_PERMISSION_PROBES: tuple[tuple[str, dict[str, object]], ...] = (
    ("describe_regions", {}),
    ("describe_availability_zones", {}),
    ("describe_vpcs", {"MaxResults": 5}),
    ("describe_subnets", {"MaxResults": 5}),
    ("describe_security_groups", {"MaxResults": 5}),
    ("describe_instances", {"MaxResults": 5}),
)

IAM_PERMISSION_PROBES: tuple[tuple[str, dict[str, object]], ...] = (
    ("get_user", {}),
    ("list_roles", {"MaxItems": 1}),
    ("list_policies", {"MaxItems": 1}),
)

AWS_ENDPOINT_SERVICES = ("ec2", "iam", "secretsmanager", "logs")

ARGUS_RESOURCE_FRAGMENT = "argus"


def find_missing_tools(tools: Sequence[str]) -> list[str]:
    return [tool for tool in tools if shutil.which(tool) is None]


class CheckFailed(Exception):
    """Raised inside a check body to mark the check as failed."""


@dataclass
class CheckScope:
    """Collects the warnings and details a check body emits."""

    console: Console
    verbose: bool = False
    messages: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def warn(self, message: str) -> None:
        self.warnings.append(message)
        self.console.warning(message)

    def detail(self, message: str) -> None:
        self.messages.append(message)
        if self.verbose:
            self.console.info(message)


@dataclass
class _RunState:
    region: str
    identity: dict[str, str] | None = None


class DeploymentValidator:
    """Runs the readiness checks and accumulates a :class:`ValidationReport`."""

    def __init__(
        self,
        probe: AwsProbe,
        terraform: TerraformRunner,
        network: NetworkProbe,
        *,
        settings: Settings | None = None,
        console: Console | None = None,
        verbose: bool = False,
    ) -> None:
        self.probe = probe
        self.terraform = terraform
        self.network = network
        self.settings = settings or load_settings()
        self.console = console or validator_console()
        self.verbose = verbose

    def run(
        self,
        region: str,
        *,
        check_permissions: bool = True,
        check_resources: bool = True,
        check_network: bool = True,
    ) -> ValidationReport:
        report = ValidationReport(region=region, version=__version__)
        state = _RunState(region=region)

        self._run_check(report, "tools", "Required tools installation", self._check_tools)
        credentials = self._run_check(
            report,
            "aws_credentials",
            "AWS CLI configuration",
            lambda scope: self._check_credentials(scope, state),
        )
        if credentials.passed:
            self._run_check(
                report,
                "aws_account",
                "AWS account access",
                lambda scope: self._check_account(scope, state),
            )
        self._run_check(
            report,
            "terraform_version",
            "Terraform version compatibility",
            self._check_terraform_version,
        )

        aws_checks: list[tuple[str, str, Callable[[CheckScope], None]]] = []
        if check_permissions:
            aws_checks.extend(
                [
                    ("ec2_permissions", "EC2 service permissions",
                     lambda scope: self._check_ec2_permissions(scope, region)),
                    ("iam_permissions", "IAM service permissions", self._check_iam_permissions),
                    ("secrets_permissions", "Secrets Manager permissions",
                     lambda scope: self._check_secrets_permissions(scope, region)),
                    ("logs_permissions", "CloudWatch Logs permissions",
                     lambda scope: self._check_logs_permissions(scope, region)),
                ]
            )
        if check_resources:
            aws_checks.extend(
                [
                    ("vpc_resources", "VPC resources and limits",
                     lambda scope: self._check_vpc_resources(scope, region)),
                    ("ec2_limits", "EC2 instance limits",
                     lambda scope: self._check_ec2_limits(scope, region)),
                    ("existing_resources", "Existing Argus resources",
                     lambda scope: self._check_existing_resources(scope, region)),
                ]
            )
        if aws_checks and not credentials.passed:
            self.console.info(
                f"Skipping {len(aws_checks)} AWS checks until credentials are valid"
            )
        elif aws_checks:
            for name, description, check in aws_checks:
                self._run_check(report, name, description, check)

        if check_network:
            self._run_check(
                report,
                "backend_connectivity",
                "Argus backend connectivity",
                self._check_backend_connectivity,
            )
            self._run_check(
                report,
                "registry_connectivity",
                "Container registry connectivity",
                self._check_registry_connectivity,
            )
            self._run_check(
                report,
                "aws_endpoints",
                "AWS service endpoints",
                lambda scope: self._check_aws_endpoints(scope, region),
            )

        return report

    def _run_check(
        self,
        report: ValidationReport,
        name: str,
        description: str,
        check: Callable[[CheckScope], None],
    ) -> CheckResult:
        self.console.info(f"Checking: {description}")
        if self.verbose:
            self.console.info(f"Running: {name}")
        scope = CheckScope(console=self.console, verbose=self.verbose)
        status = CheckStatus.PASS
        try:
            check(scope)
        except CheckFailed as exc:
            scope.messages.append(str(exc))
            status = CheckStatus.FAIL
        except (AwsProbeError, TerraformError) as exc:
            scope.messages.append(str(exc))
            status = CheckStatus.FAIL
        except Exception as exc:
            logger.exception("Check %s raised unexpectedly", name)
            scope.messages.append(f"{type(exc).__name__}: {exc}")
            status = CheckStatus.FAIL
        else:
            if scope.warnings:
                status = CheckStatus.WARN

        if status is CheckStatus.FAIL:
            reason = scope.messages[-1] if scope.messages else ""
            self.console.error(f"{description}: {reason}" if reason else description)
            logger.info("%s failed: %s", name, "; ".join(scope.messages))
        elif status is CheckStatus.WARN:
            self.console.warning(f"{description} (with warnings)")
        else:
            self.console.success(description)
        return report.record(
            CheckResult(
                name=name,
                description=description,
                status=status,
                messages=scope.messages,
                warnings=scope.warnings,
            )
        )

    # -- core checks -------------------------------------------------------

    def _check_tools(self, scope: CheckScope) -> None:
        missing = find_missing_tools(self.settings.validation.required_tools)
        if missing:
            raise CheckFailed(f"Missing tools: {', '.join(missing)}")

    def _check_credentials(self, scope: CheckScope, state: _RunState) -> None:
        try:
            state.identity = self.probe.caller_identity()
        except AwsProbeError as exc:
            raise CheckFailed(f"AWS credentials not configured or invalid: {exc}") from exc
        if not self.probe.configured_region():
            scope.warn("No default region configured")

    def _check_account(self, scope: CheckScope, state: _RunState) -> None:
        identity = state.identity or self.probe.caller_identity()
        scope.detail(f"Account ID: {identity['account']}")
        scope.detail(f"User/Role ARN: {identity['arn']}")
        if identity["arn"].endswith(":root"):
            scope.warn("Using root account - not recommended for deployment")

    def _check_terraform_version(self, scope: CheckScope) -> None:
        minimum = self.settings.validation.minimum_terraform_version
        version = self.terraform.version()
        if not version_at_least(version, minimum):
            raise CheckFailed(f"Terraform version {version} < {minimum} (required)")
        scope.detail(f"Terraform version: {version}")

    # -- permission checks -------------------------------------------------

    def _check_ec2_permissions(self, scope: CheckScope, region: str) -> None:
        for operation, params in EC2_PERMISSION_PROBES:
            self.probe.call("ec2", operation, region, **params)

    def _check_iam_permissions(self, scope: CheckScope) -> None:
        failures = 0
        for operation, params in IAM_PERMISSION_PROBES:
            try:
                self.probe.call("iam", operation, **params)
            except AwsProbeError as exc:
                logger.debug("IAM probe %s failed: %s", operation, exc)
                failures += 1
        if failures >= len(IAM_PERMISSION_PROBES):
            scope.warn("Limited IAM permissions - deployment may require additional privileges")

    def _check_secrets_permissions(self, scope: CheckScope, region: str) -> None:
        self.probe.call("secretsmanager", "list_secrets", region, MaxResults=1)

    def _check_logs_permissions(self, scope: CheckScope, region: str) -> None:
        self.probe.call("logs", "describe_log_groups", region, limit=1)

    # -- resource checks ---------------------------------------------------

    def _check_vpc_resources(self, scope: CheckScope, region: str) -> None:
        vpc_count = self.probe.vpc_count(region)
        if vpc_count >= self.settings.validation.vpc_warn_threshold:
            scope.warn(f"High VPC count ({vpc_count}) - approaching default limit")
        default_vpc = self.probe.default_vpc_id(region)
        if default_vpc:
            scope.detail(f"Default VPC: {default_vpc}")
        else:
            scope.warn("No default VPC found - will create new VPC")

    def _check_ec2_limits(self, scope: CheckScope, region: str) -> None:
        running = self.probe.running_instance_count(region)
        if running > self.settings.validation.instance_warn_threshold:
            scope.warn(f"High number of running instances ({running}) - check service limits")

    def _check_existing_resources(self, scope: CheckScope, region: str) -> None:
        try:
            roles = self.probe.role_names_containing(ARGUS_RESOURCE_FRAGMENT)
        except AwsProbeError as exc:
            logger.debug("Role lookup failed: %s", exc)
            roles = []
        if roles:
            scope.warn(f"Existing Argus-related IAM roles found: {' '.join(roles)}")
        try:
            groups = self.probe.security_group_names_containing(ARGUS_RESOURCE_FRAGMENT, region)
        except AwsProbeError as exc:
            logger.debug("Security group lookup failed: %s", exc)
            groups = []
        if groups:
            scope.warn(f"Existing Argus-related security groups found: {' '.join(groups)}")

    # -- network checks ----------------------------------------------------

    def _check_backend_connectivity(self, scope: CheckScope) -> None:
        backend = self.settings.onboarding.backend_url
        if self.network.reachable(f"{backend}/health", method="GET", timeout=10.0):
            return
        if not self.network.reachable(backend, method="HEAD", timeout=10.0):
            scope.warn("Cannot reach Argus backend - network connectivity issue")

    def _check_registry_connectivity(self, scope: CheckScope) -> None:
        if not self.network.reachable(self.settings.validation.registry_url, timeout=10.0):
            scope.warn("Cannot reach Docker Hub - container image pulls may fail")

    def _check_aws_endpoints(self, scope: CheckScope, region: str) -> None:
        for service in AWS_ENDPOINT_SERVICES:
            endpoint = f"https://{service}.{region}.amazonaws.com"
            if not self.network.reachable(endpoint, timeout=5.0):
                scope.warn(f"Cannot reach {service} endpoint in {region}")
