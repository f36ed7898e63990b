from __future__ import annotations

import pytest

from argus_onboarding import cli
from argus_onboarding.execution import aws_client


@pytest.fixture
def collaborators(monkeypatch: pytest.MonkeyPatch, probe, terraform, network):
    monkeypatch.setattr(cli, "AwsProbe", lambda: probe)
    monkeypatch.setattr(cli, "_terraform_runner", lambda: terraform)
    monkeypatch.setattr(cli, "configure_logging", lambda **_: None)

    class _Network:
        def __enter__(self):
            return network

        def __exit__(self, *exc_info):
            return None

    monkeypatch.setattr(cli, "NetworkProbe", _Network)
    return probe, terraform, network


def test_onboard_requires_customer_name(capsys) -> None:
    with pytest.raises(SystemExit) as excinfo:
        cli.onboard_main([])

    assert excinfo.value.code == 1
    assert "--customer-name" in capsys.readouterr().err


def test_onboard_rejects_bad_name_before_any_work(
    collaborators, tmp_path, monkeypatch, capsys
) -> None:
    monkeypatch.setenv("ARGUS_DEPLOYMENTS_ROOT", str(tmp_path / "deployments"))
    probe, terraform, _ = collaborators

    code = cli.onboard_main(["--customer-name", "acme_corp"])

    assert code == 1
    assert "alphanumeric characters and hyphens" in capsys.readouterr().out
    assert probe.calls == []
    assert not (tmp_path / "deployments").exists()


def test_onboard_rejects_unknown_environment() -> None:
    with pytest.raises(SystemExit) as excinfo:
        cli.onboard_main(["--customer-name", "acme", "--environment", "qa"])

    assert excinfo.value.code == 1


@pytest.mark.usefixtures("all_tools_present")
def test_onboard_dry_run_scenario(collaborators, tmp_path, monkeypatch, capsys) -> None:
    root = tmp_path / "deployments"
    monkeypatch.setenv("ARGUS_DEPLOYMENTS_ROOT", str(root))
    _, terraform, _ = collaborators

    code = cli.onboard_main(
        ["--customer-name", "acme-corp", "--region", "us-west-2", "--dry-run"]
    )

    directory = root / "acme-corp-us-west-2"
    assert code == 0
    assert "apply" not in terraform.commands
    assert (directory / "tfplan").exists()
    assert len(list(directory.glob("*.json"))) == 3
    assert not (directory / "deployment-summary.txt").exists()
    assert "DRY RUN completed" in capsys.readouterr().out


@pytest.mark.usefixtures("all_tools_present")
def test_onboard_apply_failure_exits_1(collaborators, tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("ARGUS_DEPLOYMENTS_ROOT", str(tmp_path))
    collaborators[1].failing.add("apply")

    assert cli.onboard_main(["--customer-name", "acme"]) == 1


@pytest.mark.usefixtures("all_tools_present")
def test_validate_ready_writes_report(collaborators, tmp_path) -> None:
    report = tmp_path / "validation-report.txt"

    code = cli.validate_main(["--region", "us-west-2", "--output", str(report)])

    assert code == 0
    text = report.read_text()
    assert "AWS Region: us-west-2" in text
    assert "Status: READY FOR DEPLOYMENT" in text


@pytest.mark.usefixtures("all_tools_present")
def test_validate_expired_token_exits_1(collaborators, capsys) -> None:
    collaborators[0].identity = None

    code = cli.validate_main(["--skip-network", "--skip-resources"])

    out = capsys.readouterr().out
    assert code == 1
    assert "- Failed: 1" in out
    assert "Validation failed with 1 issues" in out


@pytest.mark.usefixtures("no_tools")
def test_validate_missing_tool_exits_1(collaborators) -> None:
    assert cli.validate_main(["--skip-permissions", "--skip-resources", "--skip-network"]) == 1


def test_validate_rejects_unknown_option() -> None:
    with pytest.raises(SystemExit) as excinfo:
        cli.validate_main(["--bogus"])
    assert excinfo.value.code == 1


def test_quick_validate_exit_codes(collaborators, tmp_path, monkeypatch) -> None:
    monkeypatch.setattr("argus_onboarding.quick.shutil.which", lambda tool: "/usr/bin/terraform")
    assert cli.quick_main(["--config-dir", str(tmp_path)]) == 0

    collaborators[0].identity = None
    assert cli.quick_main(["--config-dir", str(tmp_path)]) == 1


@pytest.fixture
def unknown_profile(monkeypatch: pytest.MonkeyPatch, tmp_path):
    config_file = tmp_path / "aws-config"
    credentials_file = tmp_path / "aws-credentials"
    config_file.write_text("")
    credentials_file.write_text("")
    monkeypatch.setenv("AWS_CONFIG_FILE", str(config_file))
    monkeypatch.setenv("AWS_SHARED_CREDENTIALS_FILE", str(credentials_file))
    monkeypatch.setenv("AWS_PROFILE", "does-not-exist")
    monkeypatch.setattr(cli, "configure_logging", lambda **_: None)
    aws_client._CLIENT_CACHE.clear()
    yield
    aws_client._CLIENT_CACHE.clear()


@pytest.mark.usefixtures("unknown_profile", "all_tools_present")
def test_onboard_with_unknown_profile_exits_1(tmp_path, monkeypatch, capsys) -> None:
    monkeypatch.setenv("ARGUS_DEPLOYMENTS_ROOT", str(tmp_path / "deployments"))

    code = cli.onboard_main(["--customer-name", "acme", "--dry-run"])

    assert code == 1
    assert "AWS credentials not configured or invalid" in capsys.readouterr().out
    assert not (tmp_path / "deployments").exists()


@pytest.mark.usefixtures("unknown_profile")
def test_quick_validate_with_unknown_profile_exits_1(tmp_path, capsys) -> None:
    code = cli.quick_main(["--config-dir", str(tmp_path)])

    assert code == 1
    assert "AWS credentials not configured" in capsys.readouterr().out
