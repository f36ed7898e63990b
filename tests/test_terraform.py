from __future__ import annotations

import subprocess
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from argus_onboarding.execution.terraform import (
    TerraformError,
    TerraformRunner,
    parse_version,
    version_at_least,
)


def _completed(returncode: int = 0, stdout: str = "", stderr: str = "") -> SimpleNamespace:
    return SimpleNamespace(returncode=returncode, stdout=stdout, stderr=stderr)


@pytest.mark.parametrize(
    ("version", "minimum", "expected"),
    [
        ("1.5.0", "1.5.0", True),
        ("1.10.2", "1.5.0", True),
        ("v1.7.5", "1.5.0", True),
        ("1.4.9", "1.5.0", False),
        ("unknown", "1.5.0", False),
    ],
)
def test_version_at_least(version: str, minimum: str, expected: bool) -> None:
    assert version_at_least(version, minimum) is expected


def test_parse_version_from_plain_output() -> None:
    assert parse_version("Terraform v1.6.3\non linux_amd64") == (1, 6, 3)


@patch("argus_onboarding.execution.terraform.subprocess.run")
def test_version_reads_json(mock_run: MagicMock) -> None:
    mock_run.return_value = _completed(stdout='{"terraform_version": "1.7.5"}')

    assert TerraformRunner().version() == "1.7.5"
    assert mock_run.call_args.args[0] == ("terraform", "version", "-json")


@patch("argus_onboarding.execution.terraform.subprocess.run")
def test_plan_and_apply_use_plan_file_in_working_dir(mock_run: MagicMock, tmp_path) -> None:
    mock_run.return_value = _completed(stdout="ok")
    runner = TerraformRunner(binary="tf", timeout=60).in_directory(tmp_path)

    runner.plan("tfplan")
    runner.apply("tfplan")

    plan_call, apply_call = mock_run.call_args_list
    assert plan_call.args[0] == ("tf", "plan", "-input=false", "-no-color", "-out=tfplan")
    assert apply_call.args[0] == ("tf", "apply", "-input=false", "-no-color", "tfplan")
    assert plan_call.kwargs["cwd"] == tmp_path
    assert plan_call.kwargs["timeout"] == 60
    assert plan_call.kwargs["env"]["TF_IN_AUTOMATION"] == "1"


@patch("argus_onboarding.execution.terraform.subprocess.run")
def test_failed_command_raises_with_result(mock_run: MagicMock) -> None:
    mock_run.return_value = _completed(returncode=1, stderr="Error: no valid credential sources")

    with pytest.raises(TerraformError, match="terraform init failed") as excinfo:
        TerraformRunner().init()

    assert excinfo.value.result is not None
    assert excinfo.value.result.returncode == 1


@patch(
    "argus_onboarding.execution.terraform.subprocess.run",
    side_effect=FileNotFoundError("terraform"),
)
def test_missing_binary(_mock_run: MagicMock) -> None:
    with pytest.raises(TerraformError, match="not found in PATH"):
        TerraformRunner().version()


@patch(
    "argus_onboarding.execution.terraform.subprocess.run",
    side_effect=subprocess.TimeoutExpired(cmd="terraform apply", timeout=5),
)
def test_timeout(_mock_run: MagicMock) -> None:
    with pytest.raises(TerraformError, match="timed out after 5 seconds"):
        TerraformRunner().apply()


@patch("argus_onboarding.execution.terraform.subprocess.run")
def test_output_json(mock_run: MagicMock) -> None:
    mock_run.return_value = _completed(
        stdout='{"agent_instance_id": {"sensitive": false, "type": "string", "value": "i-1"}}'
    )

    outputs = TerraformRunner().output_json()

    assert outputs["agent_instance_id"]["value"] == "i-1"


@patch("argus_onboarding.execution.terraform.subprocess.run")
def test_output_json_rejects_garbage(mock_run: MagicMock) -> None:
    mock_run.return_value = _completed(stdout="Warning: No outputs found")

    with pytest.raises(TerraformError, match="invalid JSON"):
        TerraformRunner().output_json()


@patch(
    "argus_onboarding.execution.terraform.subprocess.run",
    side_effect=PermissionError(13, "Permission denied"),
)
def test_non_executable_binary(_mock_run: MagicMock) -> None:
    with pytest.raises(TerraformError, match="could not run /opt/tf: .*Permission denied"):
        TerraformRunner(binary="/opt/tf").init()
