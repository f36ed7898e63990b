"""Customer onboarding as an explicit stage machine.

Stages run strictly in order. Each stage handler either returns the next
stage or raises :class:`OnboardingError`, which moves the run into the
terminal failed state for that stage. Nothing is rolled back on failure;
``terraform destroy`` stays a manual operator step.
"""

from __future__ import annotations

import dataclasses
import logging
import secrets
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from argus_onboarding import __version__
from argus_onboarding.config import Settings, load_settings
from argus_onboarding.console import Console
from argus_onboarding.execution.aws_client import AwsProbe, AwsProbeError
from argus_onboarding.execution.terraform import TerraformError, TerraformRunner
from argus_onboarding.models import DeploymentArtifact, DeploymentOutputs, RunConfig
from argus_onboarding.render import render_deployment
from argus_onboarding.validator import find_missing_tools

logger = logging.getLogger(__name__)

API_KEY_BYTES = 32


class Stage(str, Enum):
    VALIDATE_PREREQUISITES = "validate_prerequisites"
    VALIDATE_PERMISSIONS = "validate_permissions"
    GENERATE_SECRET = "generate_secret"
    RENDER = "render"
    PROVISION = "provision"
    POST_VALIDATE = "post_validate"
    SUMMARIZE = "summarize"
    DONE = "done"
    FAILED = "failed"


class OnboardingError(RuntimeError):
    """Fatal condition that aborts the run in ``stage``."""

    def __init__(self, stage: Stage, message: str) -> None:
        super().__init__(message)
        self.stage = stage


@dataclass
class OnboardingRun:
    """Mutable record of how far one onboarding run got."""

    config: RunConfig
    stage: Stage = Stage.VALIDATE_PREREQUISITES
    completed: list[Stage] = field(default_factory=list)
    identity: dict[str, str] | None = None
    api_key: str | None = None
    artifact: DeploymentArtifact | None = None
    outputs: DeploymentOutputs | None = None
    instance_state: str | None = None
    failed_stage: Stage | None = None
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.stage is Stage.DONE


def generate_api_key(nbytes: int = API_KEY_BYTES) -> str:
    return secrets.token_hex(nbytes)


class OnboardingOrchestrator:
    def __init__(
        self,
        config: RunConfig,
        *,
        probe: AwsProbe,
        terraform: TerraformRunner,
        console: Console,
        settings: Settings | None = None,
        key_generator: Callable[[], str] = generate_api_key,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.config = config
        self.probe = probe
        self.terraform = terraform
        self.console = console
        self.settings = settings or load_settings()
        self.key_generator = key_generator
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self._handlers: dict[Stage, Callable[[OnboardingRun], Stage]] = {
            Stage.VALIDATE_PREREQUISITES: self._validate_prerequisites,
            Stage.VALIDATE_PERMISSIONS: self._validate_permissions,
            Stage.GENERATE_SECRET: self._generate_secret,
            Stage.RENDER: self._render,
            Stage.PROVISION: self._provision,
            Stage.POST_VALIDATE: self._post_validate,
            Stage.SUMMARIZE: self._summarize,
        }

    def run(self) -> OnboardingRun:
        run = OnboardingRun(config=self.config)
        while run.stage not in (Stage.DONE, Stage.FAILED):
            current = run.stage
            logger.debug("Entering stage %s", current.value)
            try:
                next_stage = self._handlers[current](run)
            except OnboardingError as exc:
                run.failed_stage = exc.stage
                run.error = str(exc)
                run.stage = Stage.FAILED
                self.console.error(str(exc))
                break
            run.completed.append(current)
            run.stage = next_stage
        return run

    # -- stages ------------------------------------------------------------

    def _validate_prerequisites(self, run: OnboardingRun) -> Stage:
        stage = Stage.VALIDATE_PREREQUISITES
        self.console.info("Validating prerequisites...")
        missing = find_missing_tools(self.settings.validation.required_tools)
        if missing:
            self.console.info("Please install the missing tools and try again")
            raise OnboardingError(stage, f"Missing required tools: {' '.join(missing)}")
        try:
            run.identity = self.probe.caller_identity()
        except AwsProbeError as exc:
            self.console.info("Please run 'aws configure' or set AWS environment variables")
            raise OnboardingError(stage, "AWS credentials not configured or invalid") from exc
        self.console.success("Prerequisites validated")
        self.console.info(f"AWS Account ID: {run.identity['account']}")
        self.console.info(f"AWS User/Role: {run.identity['arn']}")
        return Stage.VALIDATE_PERMISSIONS

    def _validate_permissions(self, run: OnboardingRun) -> Stage:
        stage = Stage.VALIDATE_PERMISSIONS
        region = self.config.region
        self.console.info("Validating AWS permissions...")
        try:
            self.probe.call("ec2", "describe_regions", region)
        except AwsProbeError as exc:
            raise OnboardingError(
                stage, f"Insufficient EC2 permissions for region {region}"
            ) from exc
        if not self._has_iam_visibility(run):
            self.console.warning("Limited IAM permissions detected - deployment may fail")
        self.console.success("AWS permissions validated")
        return Stage.GENERATE_SECRET

    def _has_iam_visibility(self, run: OnboardingRun) -> bool:
        try:
            self.probe.call("iam", "get_user")
            return True
        except AwsProbeError as exc:
            logger.debug("iam:GetUser failed: %s", exc)
        arn = (run.identity or {}).get("arn", "")
        role_name = arn.rsplit("/", 1)[-1] if arn else ""
        if not role_name:
            return False
        try:
            self.probe.call("iam", "get_role", RoleName=role_name)
            return True
        except AwsProbeError as exc:
            logger.debug("iam:GetRole %s failed: %s", role_name, exc)
            return False

    def _generate_secret(self, run: OnboardingRun) -> Stage:
        self.console.info("Generating Argus agent API key...")
        api_key = self.key_generator()
        if not api_key:
            raise OnboardingError(Stage.GENERATE_SECRET, "Failed to generate API key")
        run.api_key = api_key
        self.console.success("API key generated successfully")
        if self.config.verbose:
            self.console.info(f"API Key: {api_key[:8]}...")
        return Stage.RENDER

    def _render(self, run: OnboardingRun) -> Stage:
        self.console.info("Preparing Terraform configuration...")
        try:
            run.artifact = render_deployment(
                self.config,
                run.api_key or "",
                deployments_root=self.settings.onboarding.deployments_root,
                module_source=self.settings.onboarding.module_source,
            )
        except OSError as exc:
            raise OnboardingError(
                Stage.RENDER, f"Failed to write Terraform configuration: {exc}"
            ) from exc
        self.console.success(f"Terraform configuration prepared in: {run.artifact.directory}")
        return Stage.PROVISION

    def _provision(self, run: OnboardingRun) -> Stage:
        stage = Stage.PROVISION
        artifact = self._artifact(run, stage)
        terraform = self.terraform.in_directory(artifact.directory)
        self.console.info("Running Terraform deployment...")
        try:
            self.console.info("Initializing Terraform...")
            result = terraform.init()
            if self.config.verbose:
                self.console.line(result.stdout.rstrip())

            self.console.info("Planning deployment...")
            result = terraform.plan(artifact.plan_file.name)
            self.console.line(result.stdout.rstrip())
        except TerraformError as exc:
            raise OnboardingError(stage, str(exc)) from exc

        if self.config.dry_run:
            self.console.warning("DRY RUN MODE - Deployment not executed")
            self.console.info(f"Terraform plan saved to: {artifact.plan_file.resolve()}")
            return Stage.DONE

        self.console.info("Applying deployment...")
        try:
            result = terraform.apply(artifact.plan_file.name)
        except TerraformError as exc:
            raise OnboardingError(stage, f"Terraform deployment failed: {exc}") from exc
        if self.config.verbose:
            self.console.line(result.stdout.rstrip())
        self.console.success("Terraform deployment completed successfully")
        return Stage.POST_VALIDATE

    def _post_validate(self, run: OnboardingRun) -> Stage:
        stage = Stage.POST_VALIDATE
        artifact = self._artifact(run, stage)
        region = self.config.region
        self.console.info("Validating deployment...")
        try:
            raw_outputs = self.terraform.in_directory(artifact.directory).output_json()
        except TerraformError as exc:
            raise OnboardingError(
                stage, f"Failed to retrieve instance ID from Terraform output: {exc}"
            ) from exc
        outputs = DeploymentOutputs.from_terraform(raw_outputs)
        if outputs is None:
            raise OnboardingError(stage, "Failed to retrieve instance ID from Terraform output")
        self.console.info(f"Instance ID: {outputs.instance_id}")
        self.console.info(f"Role ARN: {outputs.role_arn or ''}")

        self.console.info("Checking instance status...")
        try:
            state = self.probe.instance_state(outputs.instance_id, region)
            if state != "running":
                self.console.warning(f"Instance is not in running state: {state}")
                self.console.info("Waiting for instance to start...")
                self.probe.wait_instance_running(outputs.instance_id, region)
                state = "running"
            private_ip = self.probe.instance_private_ip(outputs.instance_id, region)
        except AwsProbeError as exc:
            raise OnboardingError(stage, f"Instance did not reach running state: {exc}") from exc
        self.console.success("Instance is running")

        run.instance_state = state
        run.outputs = dataclasses.replace(outputs, private_ip=private_ip)
        self.console.info("Agent health check would require VPC access - skipping for now")
        self.console.info(f"Instance Private IP: {private_ip or 'unknown'}")
        self.console.success("Deployment validation completed")
        return Stage.SUMMARIZE

    def _summarize(self, run: OnboardingRun) -> Stage:
        artifact = self._artifact(run, Stage.SUMMARIZE)
        self.console.info("Generating deployment summary...")
        try:
            artifact.summary_file.write_text(self.render_summary(run), encoding="utf-8")
        except OSError as exc:
            raise OnboardingError(
                Stage.SUMMARIZE, f"Failed to write deployment summary: {exc}"
            ) from exc
        self.console.success(f"Deployment summary saved to: {artifact.summary_file}")
        return Stage.DONE

    # -- helpers -----------------------------------------------------------

    @staticmethod
    def _artifact(run: OnboardingRun, stage: Stage) -> DeploymentArtifact:
        if run.artifact is None:
            raise OnboardingError(stage, "Terraform configuration has not been rendered")
        return run.artifact

    def render_summary(self, run: OnboardingRun) -> str:
        config = self.config
        artifact = self._artifact(run, Stage.SUMMARIZE)
        outputs = run.outputs
        if outputs is not None and outputs.raw:
            output_lines = [f"{name} = {value}" for name, value in sorted(outputs.raw.items())]
        else:
            output_lines = ["Run 'terraform output' to see deployment outputs"]
        lines = [
            "Argus Agent Deployment Summary",
            "==============================",
            "",
            f"Customer: {config.customer_name}",
            f"Region: {config.region}",
            f"Environment: {config.environment}",
            f"Deployed: {self.clock().strftime('%Y-%m-%d %H:%M:%S %Z')}",
            f"Script Version: {__version__}",
            "",
            "Instance Configuration:",
            f"- Type: {config.instance_type}",
            f"- Auto Scaling: {str(config.enable_autoscaling).lower()}",
            f"- SSH Access: {str(config.enable_ssh).lower()}",
            f"- Detailed Monitoring: {str(config.enable_monitoring).lower()}",
            f"- State: {run.instance_state or 'unknown'}",
            f"- Private IP: {(outputs.private_ip if outputs else None) or 'unknown'}",
            "",
            "Terraform Outputs:",
            *output_lines,
            "",
            "Next Steps:",
            "1. Verify agent connectivity from Argus backend",
            "2. Configure monitoring alerts if needed",
            "3. Test scan job execution",
            "4. Review security configuration",
            "",
            "Support:",
            f"- Deployment directory: {artifact.directory.resolve()}",
            f"- Terraform state: {config.state_location}",
        ]
        return "\n".join(lines) + "\n"
