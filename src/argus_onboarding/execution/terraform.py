"""Typed subprocess wrapper around the Terraform CLI."""

from __future__ import annotations

import json
import logging
import os
import re
import subprocess
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

_VERSION_RE = re.compile(r"v?(\d+)\.(\d+)\.(\d+)")


@dataclass(frozen=True)
class CommandResult:
    args: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def error_text(self, limit: int = 2000) -> str:
        text = (self.stderr or self.stdout or f"exit {self.returncode}").strip()
        if len(text) > limit:
            return text[-limit:]
        return text


class TerraformError(RuntimeError):
    """Raised when a terraform invocation fails or cannot be started."""

    def __init__(self, message: str, result: CommandResult | None = None) -> None:
        super().__init__(message)
        self.result = result


def parse_version(text: str) -> tuple[int, int, int] | None:
    match = _VERSION_RE.search(text or "")
    if match is None:
        return None
    return (int(match.group(1)), int(match.group(2)), int(match.group(3)))


def version_at_least(version: str, minimum: str) -> bool:
    parsed = parse_version(version)
    required = parse_version(minimum)
    if parsed is None or required is None:
        return False
    return parsed >= required


class TerraformRunner:
    """Run terraform subcommands in a single working directory."""

    def __init__(
        self,
        binary: str = "terraform",
        working_dir: str | Path | None = None,
        timeout: int = 1800,
    ) -> None:
        self.binary = binary
        self.working_dir = Path(working_dir) if working_dir is not None else None
        self.timeout = timeout

    def in_directory(self, working_dir: str | Path) -> TerraformRunner:
        return TerraformRunner(self.binary, working_dir, self.timeout)

    def run(self, args: Sequence[str], *, timeout: int | None = None) -> CommandResult:
        cmd = (self.binary, *args)
        env = dict(os.environ)
        env["TF_IN_AUTOMATION"] = "1"
        logger.debug("Running %s in %s", " ".join(cmd), self.working_dir or os.getcwd())
        try:
            completed = subprocess.run(
                cmd,
                cwd=self.working_dir,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                timeout=timeout or self.timeout,
                env=env,
            )
        except FileNotFoundError as exc:
            raise TerraformError(f"{self.binary} not found in PATH") from exc
        except subprocess.TimeoutExpired as exc:
            raise TerraformError(
                f"{' '.join(cmd[:2])} timed out after {exc.timeout} seconds"
            ) from exc
        except OSError as exc:
            raise TerraformError(f"could not run {self.binary}: {exc}") from exc
        return CommandResult(
            args=cmd,
            returncode=completed.returncode,
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
        )

    def _checked(self, args: Sequence[str], action: str) -> CommandResult:
        result = self.run(args)
        if not result.ok:
            raise TerraformError(f"terraform {action} failed: {result.error_text()}", result)
        return result

    def version(self) -> str:
        result = self._checked(["version", "-json"], "version")
        try:
            payload = json.loads(result.stdout)
        except json.JSONDecodeError:
            parsed = parse_version(result.stdout)
            if parsed is None:
                raise TerraformError("could not parse terraform version output", result)
            return ".".join(str(part) for part in parsed)
        return str(payload.get("terraform_version", ""))

    def init(self) -> CommandResult:
        return self._checked(["init", "-input=false", "-no-color"], "init")

    def plan(self, plan_file: str = "tfplan") -> CommandResult:
        return self._checked(
            ["plan", "-input=false", "-no-color", f"-out={plan_file}"],
            "plan",
        )

    def apply(self, plan_file: str = "tfplan") -> CommandResult:
        return self._checked(["apply", "-input=false", "-no-color", plan_file], "apply")

    def output_json(self) -> dict[str, dict[str, object]]:
        result = self._checked(["output", "-json", "-no-color"], "output")
        try:
            payload = json.loads(result.stdout or "{}")
        except json.JSONDecodeError as exc:
            raise TerraformError("terraform output returned invalid JSON", result) from exc
        if not isinstance(payload, dict):
            raise TerraformError("terraform output returned unexpected payload", result)
        return payload
