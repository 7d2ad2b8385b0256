"""Forwarding of container commands to nerdctl inside the VM."""

from __future__ import annotations

import logging
import os
from typing import Callable, Mapping, Sequence

from .common import (
    LIMA_INSTANCE_NAME,
    VIRTUAL_MACHINE_ROOT_CMD,
    FinchError,
    LimaCommandCreator,
    Replacement,
    VMStatus,
)

NERDCTL_CMD_NAME = "nerdctl"
HOST_GATEWAY_NAME = "host-gateway"
SLIRP_GATEWAY = "192.168.5.2"

_IMPLICIT_HELP_COMMANDS = frozenset(
    {"system", "builder", "compose", "container", "image", "network", "volume"}
)
_HELP_FLAGS = frozenset({"--help", "-h"})
_ADD_HOST_PREFIX = "--add-host="

_COMMAND_TABLE = """
build      Build an image from Dockerfile
builder    Manage builds
commit     Create a new image from a container's changes
compose    Compose
container  Manage containers
create     Create a new container
cp         Copy files/folders between a running container and the local filesystem
events     Get real time events from the server
exec       Run a command in a running container
history    Show the history of an image
image      Manage images
images     List images
info       Display system-wide information
inspect    Return low-level information on Docker objects
kill       Kill one or more running containers
load       Load an image from a tar archive or STDIN
login      Log in to a container registry
logout     Log out from a container registry
logs       Fetch the logs of a container
network    Manage networks
pause      Pause all processes within one or more containers
port       List port mappings or a specific mapping for the container
ps         List containers
pull       Pull an image from a registry
push       Push an image or a repository to a registry
restart    Restart one or more containers
rm         Remove one or more containers
rmi        Remove one or more images
run        Run a command in a new container
save       Save one or more images to a tar archive (streamed to STDOUT by default)
start      Start one or more stopped containers
stats      Display a live stream of container(s) resource usage statistics
stop       Stop one or more running containers
system     Manage containerd
tag        Create a tag TARGET_IMAGE that refers to SOURCE_IMAGE
top        Display the running processes of a container
unpause    Unpause all processes within one or more containers
update     Update configuration of one or more containers
volume     Manage volumes
wait       Block until one or more containers stop, then print their exit codes
"""


def _parse_table(text: str) -> dict[str, str]:
    entries = (line.split(None, 1) for line in text.strip().splitlines())
    return {name: description for name, description in entries}


NERDCTL_COMMANDS: dict[str, str] = _parse_table(_COMMAND_TABLE)


def _require(arg: str, next_arg: str | None) -> str:
    if next_arg is None:
        raise FinchError(f"flag needs an argument: {arg}")
    return next_arg


def arg_is_env(arg: str) -> bool:
    """Tell whether an argument is an environment flag (-e or --env)."""
    if arg.startswith("-e"):
        return True
    return arg.startswith("--env") and not arg.startswith("--env-file")


def _lookup(environ: Mapping[str, str], name: str) -> str | None:
    value = environ.get(name)
    return None if value is None else f"{name}={value}"


def handle_env(
    environ: Mapping[str, str], arg: str, next_arg: str | None
) -> tuple[bool, str | None]:
    """Resolve an environment flag.

    Returns whether the next argument was consumed and the NAME=VALUE entry,
    or None when the variable has no value here.
    """
    consumed = arg in ("-e", "--env")
    if consumed:
        name = _require(arg, next_arg)
    elif arg.startswith("-e"):
        name = arg[len("-e"):]
    else:
        name = arg[len("--env="):]

    if "=" in name:
        return consumed, name
    return consumed, _lookup(environ, name)


def _read_env_lines(path: str, environ: Mapping[str, str]):
    with open(os.path.normpath(path), encoding="utf-8") as handle:
        for line in map(str.strip, handle):
            if not line or line.startswith("#"):
                continue
            entry = line if "=" in line else _lookup(environ, line)
            if entry is not None:
                yield entry


def handle_env_file(
    environ: Mapping[str, str], arg: str, next_arg: str | None
) -> tuple[bool, list[str]]:
    """Read NAME=VALUE entries from an --env-file argument's file.

    Returns whether the next argument was consumed and the entries found.
    """
    consumed = arg == "--env-file"
    path = _require(arg, next_arg) if consumed else arg[len("--env-file="):]
    return consumed, list(_read_env_lines(path, environ))


def resolve_ip(host: str, logger: logging.Logger) -> str:
    """Replace the special "host-gateway" address in a NAME:IP mapping."""
    name, sep, address = host.partition(":")
    if not sep or address != HOST_GATEWAY_NAME:
        return host
    logger.debug(
        'Resolving special IP "host-gateway" to "%s" for host "%s"',
        SLIRP_GATEWAY,
        name,
    )
    return f"{name}:{SLIRP_GATEWAY}"


class NerdctlCommand:
    """Runs a nerdctl subcommand inside the VM."""

    def __init__(
        self,
        creator: LimaCommandCreator,
        vm_status: Callable[[], VMStatus],
        logger: logging.Logger,
        environ: Mapping[str, str],
    ) -> None:
        self.creator = creator
        self.vm_status = vm_status
        self.logger = logger
        self.environ = environ

    def _ensure_running(self) -> None:
        status = self.vm_status()
        instance = f'instance "{LIMA_INSTANCE_NAME}"'
        if status is VMStatus.NONEXISTENT:
            raise FinchError(
                f"{instance} does not exist, run "
                f"`finch {VIRTUAL_MACHINE_ROOT_CMD} init` to create a new instance"
            )
        if status is VMStatus.STOPPED:
            raise FinchError(
                f"{instance} is stopped, run "
                f"`finch {VIRTUAL_MACHINE_ROOT_CMD} start` to start the instance"
            )

    def _translate(self, args: Sequence[str]) -> list[str]:
        """Split env handling from the plain arguments and build nerdctl's list."""
        remaining = list(args)
        passthrough: list[str] = []
        cli_envs: list[str] = []
        file_envs: list[str] = []

        position = 0
        while position < len(remaining):
            arg = remaining[position]
            following = remaining[position + 1] if position + 1 < len(remaining) else None
            consumed = False
            if arg == "--debug":
                self.logger.setLevel(logging.DEBUG)
            elif arg_is_env(arg):
                consumed, entry = handle_env(self.environ, arg, following)
                if entry is not None:
                    cli_envs.append(entry)
            elif arg.startswith("--env-file"):
                consumed, entries = handle_env_file(self.environ, arg, following)
                file_envs.extend(entries)
            elif arg.startswith("--add-host"):
                if arg == "--add-host":
                    if following is not None:
                        remaining[position + 1] = resolve_ip(following, self.logger)
                else:
                    tail = arg[len(_ADD_HOST_PREFIX):]
                    arg = arg[: len(_ADD_HOST_PREFIX)] + resolve_ip(tail, self.logger)
                passthrough.append(arg)
            else:
                passthrough.append(arg)
            position += 2 if consumed else 1

        # Command-line entries override env-file ones; later flags override earlier.
        merged = dict(entry.partition("=")[::2] for entry in (*file_envs, *cli_envs))
        env_flags = [part for key, value in merged.items() for part in ("-e", f"{key}={value}")]
        return env_flags + passthrough

    def run(self, cmd_name: str, args: Sequence[str]) -> None:
        """Forward the command and its arguments to nerdctl in the VM."""
        self._ensure_running()
        lima_args = (
            "shell",
            LIMA_INSTANCE_NAME,
            "sudo",
            "-E",
            NERDCTL_CMD_NAME,
            cmd_name,
            *self._translate(args),
        )
        if self.should_replace_for_help(cmd_name, args):
            self.creator.run_with_replacing_stdout(
                [Replacement("nerdctl", "finch")], *lima_args
            )
            return
        self.creator.run(*lima_args)

    def should_replace_for_help(self, cmd_name: str, args: Sequence[str]) -> bool:
        """Tell whether "nerdctl" should read "finch" in the command's output."""
        if not args:
            return cmd_name in _IMPLICIT_HELP_COMMANDS
        return not _HELP_FLAGS.isdisjoint(args)