"""Command-line entry points."""

from __future__ import annotations

import argparse
import logging
import sys
from collections.abc import Sequence
from datetime import datetime, timezone
from pathlib import Path

from pydantic import ValidationError

from argus_onboarding import __version__
from argus_onboarding.config import load_settings
from argus_onboarding.console import Console, quick_console, validator_console
from argus_onboarding.execution.aws_client import AwsProbe
from argus_onboarding.execution.network import NetworkProbe
from argus_onboarding.execution.terraform import TerraformRunner
from argus_onboarding.logging_utils import configure_logging
from argus_onboarding.models import RunConfig
from argus_onboarding.orchestrator import OnboardingOrchestrator
from argus_onboarding.quick import QuickValidationFailed, QuickValidator
from argus_onboarding.validator import DeploymentValidator

logger = logging.getLogger(__name__)

ONBOARD_NAME = "Argus Customer Onboarding"
VALIDATE_NAME = "Argus Deployment Validator"

ONBOARD_EPILOG = """\
Examples:
    # Basic deployment
    argus-onboard --customer-name acme-corp --region us-west-2

    # Production deployment on a larger instance
    argus-onboard --customer-name acme-corp --instance-type t3.large --environment prod

    # Development deployment with SSH access
    argus-onboard --customer-name acme-dev --environment dev --enable-ssh --dry-run
"""

VALIDATE_EPILOG = """\
Examples:
    # Basic validation
    argus-validate --region us-west-2

    # Verbose validation with report
    argus-validate --region us-east-1 --verbose --output validation-report.txt

    # Quick validation (skip network checks)
    argus-validate --skip-network --skip-resources
"""


class _UsageExitParser(argparse.ArgumentParser):
    """argparse exits 2 on bad usage; these tools exit 1."""

    def error(self, message: str) -> None:  # type: ignore[override]
        self.print_usage(sys.stderr)
        self.exit(1, f"[ERROR] {message}\n")


def _terraform_runner() -> TerraformRunner:
    settings = load_settings()
    return TerraformRunner(
        binary=settings.terraform.binary,
        timeout=settings.terraform.timeout_seconds,
    )


def build_onboard_parser() -> argparse.ArgumentParser:
    settings = load_settings()
    parser = _UsageExitParser(
        prog="argus-onboard",
        description=f"{ONBOARD_NAME} v{__version__}",
        epilog=ONBOARD_EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--customer-name",
        required=True,
        help="Customer name (alphanumeric and hyphens only)",
    )
    parser.add_argument("--region", default="us-east-1", help="AWS region (default: us-east-1)")
    parser.add_argument(
        "--instance-type", default="t3.medium", help="EC2 instance type (default: t3.medium)"
    )
    parser.add_argument(
        "--environment",
        choices=("dev", "staging", "prod"),
        default="prod",
        help="Environment (default: prod)",
    )
    parser.add_argument(
        "--backend-url",
        default=settings.onboarding.backend_url,
        help=f"Argus backend URL (default: {settings.onboarding.backend_url})",
    )
    parser.add_argument("--state-bucket", default=None, help="S3 bucket for Terraform state")
    parser.add_argument("--enable-ssh", action="store_true", help="Enable SSH access for debugging")
    parser.add_argument(
        "--enable-autoscaling", action="store_true", help="Enable auto-scaling group"
    )
    parser.add_argument(
        "--dry-run", action="store_true", help="Plan the deployment without applying it"
    )
    parser.add_argument("--verbose", action="store_true", help="Enable verbose logging")
    return parser


def onboard_main(argv: Sequence[str] | None = None) -> int:
    args = build_onboard_parser().parse_args(argv)
    console = Console()
    try:
        config = RunConfig(
            customer_name=args.customer_name,
            region=args.region,
            instance_type=args.instance_type,
            environment=args.environment,
            backend_url=args.backend_url,
            state_bucket=args.state_bucket,
            enable_ssh=args.enable_ssh,
            enable_autoscaling=args.enable_autoscaling,
            dry_run=args.dry_run,
            verbose=args.verbose,
        )
    except ValidationError as exc:
        for error in exc.errors():
            console.error(str(error.get("msg", error)).removeprefix("Value error, "))
        return 1

    configure_logging(verbose=config.verbose)
    console.info(f"Starting {ONBOARD_NAME} v{__version__}")
    console.info(f"Customer: {config.customer_name}")
    console.info(f"Region: {config.region}")
    console.info(f"Environment: {config.environment}")
    if config.dry_run:
        console.warning("DRY RUN MODE - No resources will be created")

    orchestrator = OnboardingOrchestrator(
        config,
        probe=AwsProbe(),
        terraform=_terraform_runner(),
        console=console,
    )
    run = orchestrator.run()
    if not run.succeeded:
        stage = run.failed_stage.value if run.failed_stage else "unknown"
        logger.info("Onboarding failed in stage %s: %s", stage, run.error)
        return 1

    directory = run.artifact.directory if run.artifact else None
    if config.dry_run:
        console.info(f"DRY RUN completed - review generated configuration in: {directory}")
    else:
        console.success("Argus Agent deployment completed successfully!")
        console.info(f"Deployment directory: {directory}")
        console.info("Review deployment-summary.txt for next steps")
    return 0


def build_validate_parser() -> argparse.ArgumentParser:
    parser = _UsageExitParser(
        prog="argus-validate",
        description=f"{VALIDATE_NAME} v{__version__}",
        epilog=VALIDATE_EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--region", default="us-east-1", help="AWS region to validate (default: us-east-1)"
    )
    parser.add_argument("--output", default=None, help="Save validation report to file")
    parser.add_argument("--verbose", action="store_true", help="Enable verbose output")
    parser.add_argument(
        "--skip-permissions", action="store_true", help="Skip IAM permission checks"
    )
    parser.add_argument(
        "--skip-resources", action="store_true", help="Skip resource limit checks"
    )
    parser.add_argument(
        "--skip-network", action="store_true", help="Skip network connectivity checks"
    )
    return parser


def validate_main(argv: Sequence[str] | None = None) -> int:
    args = build_validate_parser().parse_args(argv)
    configure_logging(verbose=args.verbose)
    console = validator_console()

    console.info(f"Starting {VALIDATE_NAME} v{__version__}")
    console.info(f"Validating AWS region: {args.region}")
    console.line()

    with NetworkProbe() as network:
        validator = DeploymentValidator(
            AwsProbe(),
            _terraform_runner(),
            network,
            console=console,
            verbose=args.verbose,
        )
        report = validator.run(
            args.region,
            check_permissions=not args.skip_permissions,
            check_resources=not args.skip_resources,
            check_network=not args.skip_network,
        )

    console.line()
    content = report.render(datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S %Z"))
    if args.output:
        Path(args.output).write_text(content, encoding="utf-8")
        console.info(f"Validation report saved to: {args.output}")
    else:
        console.line(content.rstrip())

    if report.ready:
        console.success("Validation completed successfully - ready for deployment")
        return 0
    console.error(
        f"Validation failed with {report.failed} issues - review and resolve before deployment"
    )
    return 1


def build_quick_parser() -> argparse.ArgumentParser:
    parser = _UsageExitParser(
        prog="argus-quick-validate",
        description="Quick pre-flight validation for an Argus agent deployment",
    )
    parser.add_argument(
        "--config-dir",
        type=Path,
        default=Path.cwd(),
        help="Directory holding terraform.tfvars(.json) (default: current directory)",
    )
    return parser


def quick_main(argv: Sequence[str] | None = None) -> int:
    args = build_quick_parser().parse_args(argv)
    configure_logging()
    validator = QuickValidator(AwsProbe(), _terraform_runner(), quick_console())
    try:
        validator.run(args.config_dir)
    except QuickValidationFailed as exc:
        logger.info("Quick validation stopped: %s", exc)
        return 1
    return 0


def _exit(main) -> None:  # pragma: no cover
    sys.exit(main())


def run_onboard() -> None:  # pragma: no cover
    _exit(onboard_main)


def run_validate() -> None:  # pragma: no cover
    _exit(validate_main)


def run_quick_validate() -> None:  # pragma: no cover
    _exit(quick_main)
