"""Render the per-customer Terraform configuration as Terraform JSON.

Documents are built as plain dicts and serialised with sorted keys, so the
output for a given :class:`RunConfig` is byte-for-byte stable and no value
ever needs quoting or escaping by hand.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path

from argus_onboarding import __version__
from argus_onboarding.models import DeploymentArtifact, RunConfig

logger = logging.getLogger(__name__)

MAIN_FILE = "main.tf.json"
VARIABLES_FILE = "variables.tf.json"
SECRETS_FILE = "terraform.tfvars.json"

MODULE_NAME = "argus_agent_ec2"

_MODULE_VARIABLES = (
    "customer_name",
    "agent_api_key",
    "argus_backend_url",
    "aws_region",
    "instance_type",
    "environment",
    "enable_ssh_access",
    "auto_scaling_enabled",
    "enable_detailed_monitoring",
    "additional_tags",
)

_OUTPUTS: tuple[tuple[str, str, bool], ...] = (
    ("agent_instance_id", "EC2 instance ID of the deployed agent", False),
    ("agent_role_arn", "ARN of the IAM role assigned to the agent", False),
    ("external_id", "External ID for cross-account role assumption", True),
    ("agent_connection_info", "Information needed for backend agent registration", True),
)


def deployment_directory(root: str | Path, config: RunConfig) -> Path:
    return Path(root) / config.deployment_name


def build_main_document(config: RunConfig, module_source: str) -> dict[str, object]:
    terraform_block: dict[str, object] = {
        "required_version": ">= 1.5",
        "required_providers": {
            "aws": {"source": "hashicorp/aws", "version": "~> 5.0"},
        },
    }
    if config.state_bucket:
        terraform_block["backend"] = {
            "s3": {
                "bucket": config.state_bucket,
                "key": config.state_key,
                "region": config.region,
            }
        }

    module_block: dict[str, object] = {"source": module_source}
    module_block.update({name: f"${{var.{name}}}" for name in _MODULE_VARIABLES})

    outputs: dict[str, object] = {}
    for name, description, sensitive in _OUTPUTS:
        output: dict[str, object] = {
            "description": description,
            "value": f"${{module.{MODULE_NAME}.{name}}}",
        }
        if sensitive:
            output["sensitive"] = True
        outputs[name] = output

    return {
        "//": f"Argus agent deployment for {config.customer_name} (generated by argus-onboard)",
        "terraform": terraform_block,
        "provider": {"aws": {"region": "${var.aws_region}"}},
        "module": {MODULE_NAME: module_block},
        "output": outputs,
    }


def build_variables_document(config: RunConfig) -> dict[str, object]:
    def variable(description: str, type_: str, default: object = None, **extra: object):
        block: dict[str, object] = {"description": description, "type": type_}
        if default is not None:
            block["default"] = default
        block.update(extra)
        return block

    return {
        "variable": {
            "customer_name": variable(
                "Customer name for resource naming", "string", config.customer_name
            ),
            "agent_api_key": variable("Argus agent API key", "string", sensitive=True),
            "argus_backend_url": variable("Argus backend URL", "string", config.backend_url),
            "aws_region": variable("AWS region", "string", config.region),
            "instance_type": variable("EC2 instance type", "string", config.instance_type),
            "environment": variable("Environment name", "string", config.environment),
            "enable_ssh_access": variable("Enable SSH access", "bool", config.enable_ssh),
            "auto_scaling_enabled": variable(
                "Enable auto-scaling", "bool", config.enable_autoscaling
            ),
            "enable_detailed_monitoring": variable(
                "Enable detailed monitoring", "bool", config.enable_monitoring
            ),
            "additional_tags": variable(
                "Additional tags",
                "map(string)",
                {
                    "DeployedBy": "argus-onboarding-script",
                    "ScriptVersion": __version__,
                },
            ),
        }
    }


def build_secrets_document(api_key: str) -> dict[str, object]:
    return {"agent_api_key": api_key}


def dumps(document: dict[str, object]) -> str:
    return json.dumps(document, indent=2, sort_keys=True) + "\n"


def _write_private(path: Path, content: str) -> None:
    # 0600 from creation; chmod also covers a file left by an earlier run
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w", encoding="utf-8") as handle:
        handle.write(content)
    os.chmod(path, 0o600)


def render_deployment(
    config: RunConfig,
    api_key: str,
    *,
    deployments_root: str | Path,
    module_source: str,
) -> DeploymentArtifact:
    """Write the three configuration files and return where they landed."""
    directory = deployment_directory(deployments_root, config)
    directory.mkdir(parents=True, exist_ok=True)

    main_file = directory / MAIN_FILE
    variables_file = directory / VARIABLES_FILE
    secrets_file = directory / SECRETS_FILE

    main_file.write_text(dumps(build_main_document(config, module_source)), encoding="utf-8")
    variables_file.write_text(dumps(build_variables_document(config)), encoding="utf-8")
    _write_private(secrets_file, dumps(build_secrets_document(api_key)))
    logger.debug("Rendered %s, %s, %s", main_file, variables_file, secrets_file)

    return DeploymentArtifact(
        directory=directory,
        main_file=main_file,
        variables_file=variables_file,
        secrets_file=secrets_file,
        api_key=api_key,
    )
