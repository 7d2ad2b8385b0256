"""The version command: Finch version plus nerdctl details from the VM."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Sequence, TextIO

from .common import LIMA_INSTANCE_NAME, FinchError, LimaCommandCreator, VMStatus


def _mapping(value: Any, what: str) -> Mapping[str, Any]:
    if value is None:
        return {}
    if isinstance(value, Mapping):
        return value
    raise ValueError(f"cannot unmarshal {type(value).__name__} into {what}")


def _text(value: Any, what: str) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    raise ValueError(f"cannot unmarshal {type(value).__name__} into string field {what}")


def _items(value: Any, what: str) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    raise ValueError(f"cannot unmarshal {type(value).__name__} into list field {what}")


@dataclass(frozen=True)
class ComponentVersion:
    """Version details of one component reported by nerdctl."""

    name: str = ""
    version: str = ""
    git_commit: str = ""

    @classmethod
    def _from_mapping(cls, data: Any) -> "ComponentVersion":
        obj = _mapping(data, "component")
        details = _mapping(obj.get("Details"), "component details")
        return cls(
            name=_text(obj.get("Name"), "Name"),
            version=_text(obj.get("Version"), "Version"),
            git_commit=_text(details.get("GitCommit"), "GitCommit"),
        )


def _components(value: Any) -> tuple[ComponentVersion, ...]:
    return tuple(
        ComponentVersion._from_mapping(item) for item in _items(value, "Components")
    )


@dataclass(frozen=True)
class ClientVersion:
    """The client part of the nerdctl version report."""

    version: str = ""
    git_commit: str = ""
    go_version: str = ""
    os: str = ""
    arch: str = ""
    components: tuple[ComponentVersion, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class ServerVersion:
    """The server part of the nerdctl version report."""

    components: tuple[ComponentVersion, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class NerdctlVersionOutput:
    """The JSON document printed by ``nerdctl version --format json``."""

    client: ClientVersion = field(default_factory=ClientVersion)
    server: ServerVersion = field(default_factory=ServerVersion)

    @classmethod
    def from_json(cls, data: str | bytes) -> "NerdctlVersionOutput":
        """Parse the report; raise ValueError if it is not valid."""
        root = _mapping(json.loads(data), "version output")
        client = _mapping(root.get("Client"), "Client")
        server = _mapping(root.get("Server"), "Server")
        return cls(
            client=ClientVersion(
                version=_text(client.get("Version"), "Version"),
                git_commit=_text(client.get("GitCommit"), "GitCommit"),
                go_version=_text(client.get("GoVersion"), "GoVersion"),
                os=_text(client.get("Os"), "Os"),
                arch=_text(client.get("Arch"), "Arch"),
                components=_components(client.get("Components")),
            ),
            server=ServerVersion(components=_components(server.get("Components"))),
        )


class VersionAction:
    """Prints version information for Finch and the tools inside the VM."""

    def __init__(
        self,
        creator: LimaCommandCreator,
        vm_status: Callable[[], VMStatus],
        stdout: TextIO,
        version: str,
        git_commit: str,
    ) -> None:
        self.creator = creator
        self.vm_status = vm_status
        self.stdout = stdout
        self.version = version
        self.git_commit = git_commit

    def run(self) -> None:
        """Print the detailed report, or only the Finch version if that fails."""
        try:
            self._print_version()
        except FinchError:
            self.stdout.write(f"Finch version:\t{self.version}\n")
            raise

    def _print_version(self) -> None:
        try:
            status = self.vm_status()
        except FinchError as exc:
            raise FinchError(f"failed to get VM status: {exc}") from exc
        if status is not VMStatus.RUNNING:
            raise FinchError(
                "detailed version info is unavailable because VM is not running"
            )

        try:
            out = self.creator.output(
                "shell",
                LIMA_INSTANCE_NAME,
                "sudo",
                "-E",
                "nerdctl",
                "version",
                "--format",
                "json",
            )
        except FinchError as exc:
            raise FinchError(
                f"failed to create the nerdctl version command: {exc}"
            ) from exc

        try:
            report = NerdctlVersionOutput.from_json(out)
        except (ValueError, TypeError) as exc:
            raise FinchError(
                f"failed to JSON-unmarshal the nerdctl version output: {exc}"
            ) from exc

        write = self.stdout.write
        write("Client:\n")
        write(f" Version:\t{self.version}\n")
        write(f" OS/Arch:\t{report.client.os}/{report.client.arch}\n")
        write(f" GitCommit:\t{self.git_commit}\n")
        write(" nerdctl:\n")
        write(f"  Version:\t{report.client.version}\n")
        write(f"  GitCommit:\t{report.client.git_commit}\n")
        self._write_components(report.client.components)
        write("\n")
        write("Server:\n")
        self._write_components(report.server.components)

    def _write_components(self, components: Sequence[ComponentVersion]) -> None:
        for component in components:
            self.stdout.write(f" {component.name}:\n")
            self.stdout.write(f"  Version:\t{component.version}\n")
            self.stdout.write(f"  GitCommit:\t{component.git_commit}\n")