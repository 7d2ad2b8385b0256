"""Shared types for the VM and container commands."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Protocol, Sequence

LIMA_INSTANCE_NAME = "finch"
VIRTUAL_MACHINE_ROOT_CMD = "vm"


class FinchError(Exception):
    """An error reported by a command, optionally carrying captured output."""

    def __init__(self, message: str, output: bytes = b"") -> None:
        super().__init__(message)
        self.output = output


class VMStatus(enum.Enum):
    """The lifecycle state of the virtual machine instance."""

    RUNNING = "Running"
    STOPPED = "Stopped"
    NONEXISTENT = "Nonexistent"

    @classmethod
    def parse(cls, text: str) -> "VMStatus":
        """Map the status text reported for an instance to a status."""
        value = text.strip()
        if value == "Running":
            return cls.RUNNING
        if value == "Stopped":
            return cls.STOPPED
        if value == "":
            return cls.NONEXISTENT
        raise FinchError("unrecognized system status")


@dataclass(frozen=True)
class Replacement:
    """A text substitution applied to a command's standard output."""

    source: str
    target: str


class LimaCommandCreator(Protocol):
    """Runs limactl with the given arguments."""

    def run(self, *args: str) -> None:
        """Run with standard streams attached; raise FinchError on failure."""

    def output(self, *args: str) -> bytes:
        """Run detached from the terminal and return standard output."""

    def combined_output(self, *args: str) -> bytes:
        """Run detached and return stdout and stderr together.

        On failure a FinchError is raised whose ``output`` holds what was captured.
        """

    def run_with_replacing_stdout(
        self, replacements: Sequence[Replacement], *args: str
    ) -> None:
        """Run and rewrite standard output with the given replacements."""