from __future__ import annotations

import io
from pathlib import Path

import pytest

from argus_onboarding import config
from argus_onboarding.console import Console
from argus_onboarding.execution.aws_client import AwsProbeError
from argus_onboarding.execution.terraform import CommandResult, TerraformError


@pytest.fixture(autouse=True)
def _fresh_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config, "load_dotenv", lambda **_: None)
    for key in config.ENV_KEYS.values():
        monkeypatch.delenv(key, raising=False)
    monkeypatch.delenv("AWS_REGION", raising=False)
    config._load_settings_cached.cache_clear()
    yield
    config._load_settings_cached.cache_clear()


class FakeProbe:
    """In-memory stand-in for AwsProbe."""

    def __init__(self) -> None:
        self.identity: dict[str, str] | None = {
            "account": "111111111111",
            "arn": "arn:aws:iam::111111111111:user/deployer",
            "user_id": "AIDATEST",
        }
        self.region: str | None = "us-east-1"
        self.failing: set[str] = set()
        self.vpcs = 1
        self.default_vpc: str | None = "vpc-default"
        self.running = 0
        self.roles: list[str] = []
        self.groups: list[str] = []
        self.states: list[str] = ["running"]
        self.private_ip: str | None = "10.0.1.25"
        self.calls: list[tuple[str, str, str | None, dict[str, object]]] = []
        self.waited: list[str] = []

    def _maybe_fail(self, service: str, operation: str) -> None:
        if f"{service}:{operation}" in self.failing or service in self.failing:
            raise AwsProbeError(service, operation, "AccessDenied", "not authorized")

    def call(self, service, operation, region=None, **params):
        self.calls.append((service, operation, region, params))
        self._maybe_fail(service, operation)
        return {}

    def caller_identity(self):
        self.calls.append(("sts", "get_caller_identity", None, {}))
        if self.identity is None:
            raise AwsProbeError(
                "sts",
                "get_caller_identity",
                "ExpiredToken",
                "The security token included in the request is expired",
            )
        return dict(self.identity)

    def configured_region(self):
        return self.region

    def vpc_count(self, region):
        self._maybe_fail("ec2", "describe_vpcs")
        return self.vpcs

    def default_vpc_id(self, region):
        self._maybe_fail("ec2", "describe_vpcs")
        return self.default_vpc

    def running_instance_count(self, region):
        self._maybe_fail("ec2", "describe_instances")
        return self.running

    def role_names_containing(self, fragment):
        self._maybe_fail("iam", "list_roles")
        return list(self.roles)

    def security_group_names_containing(self, fragment, region):
        self._maybe_fail("ec2", "describe_security_groups")
        return list(self.groups)

    def instance_state(self, instance_id, region):
        self._maybe_fail("ec2", "describe_instances")
        return self.states.pop(0) if len(self.states) > 1 else self.states[0]

    def instance_private_ip(self, instance_id, region):
        return self.private_ip

    def wait_instance_running(self, instance_id, region):
        self._maybe_fail("ec2", "wait_instance_running")
        self.waited.append(instance_id)


class FakeTerraform:
    """Records terraform subcommands instead of running them."""

    def __init__(self) -> None:
        self.binary = "terraform"
        self.version_string = "1.7.5"
        self.failing: set[str] = set()
        self.commands: list[str] = []
        self.cwd: Path | None = None
        self.outputs: dict[str, dict[str, object]] = {
            "agent_instance_id": {"value": "i-0abc123", "sensitive": False, "type": "string"},
            "agent_role_arn": {
                "value": "arn:aws:iam::111111111111:role/argus-agent",
                "sensitive": False,
                "type": "string",
            },
            "external_id": {"value": "ext-secret", "sensitive": True, "type": "string"},
        }

    def in_directory(self, working_dir):
        self.cwd = Path(working_dir)
        return self

    def _result(self, command: str) -> CommandResult:
        self.commands.append(command)
        if command in self.failing:
            result = CommandResult(("terraform", command), 1, "", f"{command} exploded")
            raise TerraformError(f"terraform {command} failed: {command} exploded", result)
        return CommandResult(("terraform", command), 0, f"{command} ok", "")

    def version(self):
        self._result("version")
        return self.version_string

    def init(self):
        return self._result("init")

    def plan(self, plan_file="tfplan"):
        result = self._result("plan")
        (self.cwd / plan_file).write_bytes(b"plan")
        return result

    def apply(self, plan_file="tfplan"):
        return self._result("apply")

    def output_json(self):
        self._result("output")
        return self.outputs


class FakeNetwork:
    def __init__(self) -> None:
        self.unreachable: set[str] = set()
        self.requests: list[tuple[str, str, float]] = []

    def reachable(self, url, *, method="HEAD", timeout=10.0):
        self.requests.append((method, url, timeout))
        return url not in self.unreachable and "*" not in self.unreachable


@pytest.fixture
def probe() -> FakeProbe:
    return FakeProbe()


@pytest.fixture
def terraform() -> FakeTerraform:
    return FakeTerraform()


@pytest.fixture
def network() -> FakeNetwork:
    return FakeNetwork()


@pytest.fixture
def output() -> io.StringIO:
    return io.StringIO()


@pytest.fixture
def console(output: io.StringIO) -> Console:
    return Console(output, color=False)


@pytest.fixture
def all_tools_present(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(
        "argus_onboarding.validator.shutil.which", lambda tool: f"/usr/bin/{tool}"
    )


@pytest.fixture
def no_tools(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("argus_onboarding.validator.shutil.which", lambda tool: None)
