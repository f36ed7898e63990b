"""Colour-coded operator output."""

from __future__ import annotations

import os
import sys
from typing import TextIO

RED = "\033[0;31m"
GREEN = "\033[0;32m"
YELLOW = "\033[1;33m"
BLUE = "\033[0;34m"
RESET = "\033[0m"


class Console:
    """Prints tagged lines; colour only when writing to a terminal."""

    def __init__(
        self,
        stream: TextIO | None = None,
        *,
        color: bool | None = None,
        success_tag: str = "SUCCESS",
        warning_tag: str = "WARNING",
        error_tag: str = "ERROR",
    ) -> None:
        self.stream = stream or sys.stdout
        if color is None:
            color = self.stream.isatty() and "NO_COLOR" not in os.environ
        self.color = color
        self.success_tag = success_tag
        self.warning_tag = warning_tag
        self.error_tag = error_tag

    def _emit(self, colour: str, tag: str, message: str) -> None:
        if self.color:
            prefix = f"{colour}[{tag}]{RESET}"
        else:
            prefix = f"[{tag}]"
        print(f"{prefix} {message}", file=self.stream, flush=True)

    def info(self, message: str) -> None:
        self._emit(BLUE, "INFO", message)

    def success(self, message: str) -> None:
        self._emit(GREEN, self.success_tag, message)

    def warning(self, message: str) -> None:
        self._emit(YELLOW, self.warning_tag, message)

    def error(self, message: str) -> None:
        self._emit(RED, self.error_tag, message)

    def line(self, text: str = "") -> None:
        print(text, file=self.stream, flush=True)


def validator_console(stream: TextIO | None = None, *, color: bool | None = None) -> Console:
    return Console(stream, color=color, success_tag="PASS", warning_tag="WARN", error_tag="FAIL")


def quick_console(stream: TextIO | None = None, *, color: bool | None = None) -> Console:
    return Console(stream, color=color, success_tag="✓", warning_tag="!", error_tag="✗")
