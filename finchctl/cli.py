"""The finch command line: container commands, VM lifecycle and utilities."""

from __future__ import annotations

import argparse
import functools
import logging
import os
import subprocess
import sys
from dataclasses import dataclass, field
from typing import Callable, Mapping, Sequence, TextIO

from .common import (
    LIMA_INSTANCE_NAME,
    VIRTUAL_MACHINE_ROOT_CMD,
    FinchError,
    LimaCommandCreator,
    Replacement,
    VMStatus,
)
from .nerdctl import NERDCTL_COMMANDS, NerdctlCommand
from .support_bundle import BundleBuilder, GenerateSupportBundleAction
from .version import VersionAction
from .virtual_machine import (
    InitVMAction,
    LimaConfigApplier,
    NerdctlConfigApplier,
    PostVMStartInitAction,
    RemoveVMAction,
    StartVMAction,
    StatusVMAction,
    StopVMAction,
    UserDataDiskManager,
)

FINCH_ROOT_CMD = "finch"


class _BaseConfig:
    """Leaves configuration as shipped: the instance boots from the base file."""

    def apply(self, _value: object) -> None:
        return None

    def ensure_user_data_disk(self) -> None:
        return None


@dataclass
class AppDeps:
    """Everything the commands need from the outside world."""

    creator: LimaCommandCreator
    logger: logging.Logger
    stdout: TextIO = field(default_factory=lambda: sys.stdout)
    environ: Mapping[str, str] = field(default_factory=lambda: os.environ)
    base_yaml_file_path: str = ""
    lima_config_applier: LimaConfigApplier = field(default_factory=_BaseConfig)
    nerdctl_applier: NerdctlConfigApplier = field(default_factory=_BaseConfig)
    disk_manager: UserDataDiskManager = field(default_factory=_BaseConfig)
    bundle_builder: BundleBuilder | None = None
    install_optional_deps: Callable[[], None] | None = None
    version: str = ""
    git_commit: str = ""


class _SubprocessLimaCreator:
    """Runs limactl as a child process with its own home directory."""

    def __init__(self, limactl: str, lima_home: str) -> None:
        self.limactl = limactl
        self.env = {**os.environ, "LIMA_HOME": lima_home}

    def _cmd(self, args: Sequence[str]) -> list[str]:
        return [self.limactl, *args]

    @staticmethod
    def _check(proc: subprocess.CompletedProcess, output: bytes = b"") -> None:
        if proc.returncode != 0:
            raise FinchError(f"exit status {proc.returncode}", output)

    def run(self, *args: str) -> None:
        self._check(subprocess.run(self._cmd(args), env=self.env, check=False))

    def output(self, *args: str) -> bytes:
        proc = subprocess.run(
            self._cmd(args),
            env=self.env,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            check=False,
        )
        self._check(proc, proc.stdout)
        return proc.stdout

    def combined_output(self, *args: str) -> bytes:
        proc = subprocess.run(
            self._cmd(args),
            env=self.env,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            check=False,
        )
        self._check(proc, proc.stdout)
        return proc.stdout

    def run_with_replacing_stdout(
        self, replacements: Sequence[Replacement], *args: str
    ) -> None:
        proc = subprocess.run(
            self._cmd(args), env=self.env, stdout=subprocess.PIPE, check=False
        )
        text = proc.stdout.decode("utf-8", errors="replace")
        for replacement in replacements:
            text = text.replace(replacement.source, replacement.target)
        sys.stdout.write(text)
        sys.stdout.flush()
        self._check(proc, proc.stdout)


def _default_deps() -> AppDeps:
    try:
        executable = os.path.realpath(sys.argv[0])
    except OSError as exc:
        raise FinchError(
            "failed to find the installation path of Finch: "
            f"failed to locate the executable that starts this process: {exc}"
        ) from exc
    prefix = os.path.normpath(os.path.join(executable, "../.."))
    logging.basicConfig(format="%(levelname)s %(message)s")
    logger = logging.getLogger(FINCH_ROOT_CMD)
    logger.setLevel(logging.INFO)
    creator = _SubprocessLimaCreator(
        os.path.join(prefix, "lima", "bin", "limactl"),
        os.path.join(prefix, "lima", "data"),
    )
    return AppDeps(
        creator=creator,
        logger=logger,
        base_yaml_file_path=os.path.join(prefix, "os", "finch.yaml"),
    )


def _vm_status(creator: LimaCommandCreator, logger: logging.Logger) -> VMStatus:
    out = creator.output("ls", "-f", "{{.Status}}", LIMA_INSTANCE_NAME)
    text = out.decode("utf-8", errors="replace").strip()
    logger.debug("Status of virtual machine: %s", text)
    return VMStatus.parse(text)


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for all finch commands."""
    parser = argparse.ArgumentParser(
        prog=FINCH_ROOT_CMD,
        usage=f"{FINCH_ROOT_CMD} <command>",
        description="Finch: open-source container development tool",
    )
    parser.add_argument("--debug", action="store_true", help="running under debug mode")
    parser.add_argument(
        "-v", "--version", dest="show_version", action="store_true", help="version for finch"
    )

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--debug", action="store_true", default=argparse.SUPPRESS, help="running under debug mode"
    )

    commands = parser.add_subparsers(dest="command", metavar="<command>")
    for name, description in NERDCTL_COMMANDS.items():
        commands.add_parser(name, help=description, description=description, add_help=False)

    commands.add_parser(
        "version", parents=[common], help="Shows Finch version information"
    )

    vm = commands.add_parser(
        VIRTUAL_MACHINE_ROOT_CMD, parents=[common], help="Manage the virtual machine lifecycle"
    )
    vm_commands = vm.add_subparsers(dest="vm_command", metavar="<command>", required=True)
    vm_commands.add_parser("init", parents=[common], help="Initialize the virtual machine")
    vm_commands.add_parser("start", parents=[common], help="Start the virtual machine")
    stop = vm_commands.add_parser("stop", parents=[common], help="Stop the virtual machine")
    stop.add_argument("-f", "--force", action="store_true", help="forcibly stop finch VM")
    remove = vm_commands.add_parser(
        "remove", parents=[common], help="Remove the virtual machine instance"
    )
    remove.add_argument("-f", "--force", action="store_true", help="forcibly remove finch VM")
    vm_commands.add_parser("status", parents=[common], help="Status of the virtual machine")

    bundle = commands.add_parser(
        "support-bundle", parents=[common], help="Support bundle management"
    )
    bundle_commands = bundle.add_subparsers(
        dest="bundle_command", metavar="<command>", required=True
    )
    generate = bundle_commands.add_parser(
        "generate",
        parents=[common],
        help="Generate support bundle",
        description=(
            "Generates a collection of logs and configs that can be uploaded to a "
            "Github issue to help debug issues."
        ),
    )
    generate.add_argument(
        "--include",
        action="append",
        default=[],
        help="additional files to include in the support bundle, "
        "specified by absolute or relative path",
    )
    generate.add_argument(
        "--exclude",
        action="append",
        default=[],
        help="files to exclude from the support bundle. if you specify a base name, "
        "all files matching that base name will be excluded. if you specify an absolute "
        "or relative path, only exact matches will be excluded",
    )
    return parser


def _run_vm(namespace: argparse.Namespace, deps: AppDeps, status: Callable[[], VMStatus]) -> None:
    sub = namespace.vm_command
    post_start = PostVMStartInitAction(deps.logger, deps.creator, deps.nerdctl_applier)
    if sub == "init":
        InitVMAction(
            deps.creator,
            status,
            deps.logger,
            deps.install_optional_deps,
            deps.lima_config_applier,
            deps.base_yaml_file_path,
            deps.disk_manager,
        ).run()
        post_start.run()
    elif sub == "start":
        StartVMAction(
            deps.creator,
            status,
            deps.logger,
            deps.install_optional_deps,
            deps.lima_config_applier,
            deps.disk_manager,
        ).run()
        post_start.run()
    elif sub == "stop":
        StopVMAction(deps.creator, status, deps.logger).run(namespace.force)
    elif sub == "remove":
        RemoveVMAction(deps.creator, status, deps.logger).run(namespace.force)
    elif sub == "status":
        StatusVMAction(status, deps.stdout).run()


def _dispatch(namespace: argparse.Namespace, extras: list[str], deps: AppDeps) -> None:
    command = namespace.command
    status = functools.partial(_vm_status, deps.creator, deps.logger)
    if command in NERDCTL_COMMANDS:
        NerdctlCommand(deps.creator, status, deps.logger, deps.environ).run(command, extras)
    elif command == "version":
        VersionAction(deps.creator, status, deps.stdout, deps.version, deps.git_commit).run()
    elif command == VIRTUAL_MACHINE_ROOT_CMD:
        _run_vm(namespace, deps, status)
    elif command == "support-bundle":
        if deps.bundle_builder is None:
            raise FinchError("support bundle generation is not configured")
        GenerateSupportBundleAction(deps.logger, deps.bundle_builder, status).run(
            namespace.include, namespace.exclude
        )


def run(argv: Sequence[str] | None = None, deps: AppDeps | None = None) -> int:
    """Parse the arguments, run the command and return the exit status."""
    args = list(sys.argv[1:] if argv is None else argv)
    if deps is None:
        try:
            deps = _default_deps()
        except FinchError as exc:
            logging.getLogger(FINCH_ROOT_CMD).error("%s", exc)
            return 1

    parser = build_parser()
    namespace, extras = parser.parse_known_args(args)

    if namespace.debug:
        deps.logger.setLevel(logging.DEBUG)
    if namespace.show_version:
        deps.stdout.write(f"{FINCH_ROOT_CMD} version {deps.version}\n")
        return 0
    if namespace.command is None:
        parser.print_help(deps.stdout)
        return 0
    if namespace.command not in NERDCTL_COMMANDS and extras:
        parser.error(f"unrecognized arguments: {' '.join(extras)}")

    try:
        _dispatch(namespace, extras, deps)
    except (FinchError, OSError) as exc:
        deps.logger.error("%s", exc)
        return 1
    return 0