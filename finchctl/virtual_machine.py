"""Lifecycle actions for the virtual machine instance."""

from __future__ import annotations

import logging
from typing import Callable, Protocol, TextIO

from .common import (
    LIMA_INSTANCE_NAME,
    VIRTUAL_MACHINE_ROOT_CMD,
    FinchError,
    LimaCommandCreator,
    VMStatus,
)

StatusProvider = Callable[[], VMStatus]


class LimaConfigApplier(Protocol):
    """Writes the VM configuration before the instance boots."""

    def apply(self, is_init: bool) -> None:
        """Apply the configuration; raise on failure."""


class NerdctlConfigApplier(Protocol):
    """Applies in-VM configuration over SSH."""

    def apply(self, remote_addr: str) -> None:
        """Apply the configuration to the guest at the given address."""


class UserDataDiskManager(Protocol):
    """Makes sure the persistent user data disk exists."""

    def ensure_user_data_disk(self) -> None:
        """Create or attach the disk; raise on failure."""


def _decode(output: bytes) -> str:
    return output.decode("utf-8", errors="replace")


def _run_logged(
    creator: LimaCommandCreator,
    logger: logging.Logger,
    failure: str,
    *args: str,
) -> None:
    """Run a detached limactl command, logging its output if it fails."""
    try:
        creator.combined_output(*args)
    except FinchError as exc:
        logger.error("%s, debug logs:\n%s", failure, _decode(exc.output))
        raise


def _install_optional_deps(
    install: Callable[[], None] | None, logger: logging.Logger
) -> None:
    if install is None:
        return
    try:
        install()
    except Exception as exc:  # optional dependencies never stop the VM
        logger.error("Dependency error: %s", exc)


class PostVMStartInitAction:
    """Applies guest configuration once the VM is up."""

    def __init__(
        self,
        logger: logging.Logger,
        creator: LimaCommandCreator,
        nerdctl_applier: NerdctlConfigApplier,
    ) -> None:
        self.logger = logger
        self.creator = creator
        self.nerdctl_applier = nerdctl_applier

    def run(self) -> None:
        """Look up the SSH port of the instance and apply the guest configuration."""
        self.logger.debug("Applying guest configuration options")
        out = self.creator.output("ls", "-f", "{{.SSHLocalPort}}", LIMA_INSTANCE_NAME)
        port = _decode(out).strip()
        if port == "0":
            self.logger.warning(
                "SSH port = 0, is the instance running? "
                "Not able to apply VM configuration options"
            )
            return
        self.nerdctl_applier.apply(f"127.0.0.1:{port}")


class InitVMAction:
    """Creates and boots a new VM instance."""

    def __init__(
        self,
        creator: LimaCommandCreator,
        vm_status: StatusProvider,
        logger: logging.Logger,
        install_optional_deps: Callable[[], None] | None,
        lima_config_applier: LimaConfigApplier,
        base_yaml_file_path: str,
        disk_manager: UserDataDiskManager,
    ) -> None:
        self.creator = creator
        self.vm_status = vm_status
        self.logger = logger
        self.install_optional_deps = install_optional_deps
        self.lima_config_applier = lima_config_applier
        self.base_yaml_file_path = base_yaml_file_path
        self.disk_manager = disk_manager

    def _assert_vm_is_nonexistent(self) -> None:
        status = self.vm_status()
        if status is VMStatus.STOPPED:
            raise FinchError(
                f'the instance "{LIMA_INSTANCE_NAME}" already exists but is stopped, '
                f"run `finch {VIRTUAL_MACHINE_ROOT_CMD} start` to start the existing instance"
            )
        if status is VMStatus.RUNNING:
            raise FinchError(f'the instance "{LIMA_INSTANCE_NAME}" is already running')

    def run(self) -> None:
        """Initialize the instance from the base configuration and start it."""
        self._assert_vm_is_nonexistent()
        _install_optional_deps(self.install_optional_deps, self.logger)
        self.lima_config_applier.apply(True)
        self.disk_manager.ensure_user_data_disk()
        self.logger.info("Initializing and starting Finch virtual machine...")
        _run_logged(
            self.creator,
            self.logger,
            "Finch virtual machine failed to start",
            "start",
            f"--name={LIMA_INSTANCE_NAME}",
            self.base_yaml_file_path,
            "--tty=false",
        )
        self.logger.info("Finch virtual machine started successfully")


class StartVMAction:
    """Boots an existing, stopped VM instance."""

    def __init__(
        self,
        creator: LimaCommandCreator,
        vm_status: StatusProvider,
        logger: logging.Logger,
        install_optional_deps: Callable[[], None] | None,
        lima_config_applier: LimaConfigApplier,
        disk_manager: UserDataDiskManager,
    ) -> None:
        self.creator = creator
        self.vm_status = vm_status
        self.logger = logger
        self.install_optional_deps = install_optional_deps
        self.lima_config_applier = lima_config_applier
        self.disk_manager = disk_manager

    def _assert_vm_is_stopped(self) -> None:
        status = self.vm_status()
        if status is VMStatus.NONEXISTENT:
            raise FinchError(
                f'the instance "{LIMA_INSTANCE_NAME}" does not exist, run '
                f"`finch {VIRTUAL_MACHINE_ROOT_CMD} init` to create a new instance"
            )
        if status is VMStatus.RUNNING:
            raise FinchError(f'the instance "{LIMA_INSTANCE_NAME}" is already running')

    def run(self) -> None:
        """Start the stopped instance."""
        self._assert_vm_is_stopped()
        _install_optional_deps(self.install_optional_deps, self.logger)
        self.lima_config_applier.apply(False)
        self.disk_manager.ensure_user_data_disk()
        self.logger.info("Starting existing Finch virtual machine...")
        _run_logged(
            self.creator,
            self.logger,
            "Finch virtual machine failed to start",
            "start",
            LIMA_INSTANCE_NAME,
        )
        self.logger.info("Finch virtual machine started successfully")


class StopVMAction:
    """Stops the running VM instance."""

    def __init__(
        self,
        creator: LimaCommandCreator,
        vm_status: StatusProvider,
        logger: logging.Logger,
    ) -> None:
        self.creator = creator
        self.vm_status = vm_status
        self.logger = logger

    def _assert_vm_is_running(self) -> None:
        status = self.vm_status()
        if status is VMStatus.NONEXISTENT:
            raise FinchError(f'the instance "{LIMA_INSTANCE_NAME}" does not exist')
        if status is VMStatus.STOPPED:
            raise FinchError(f'the instance "{LIMA_INSTANCE_NAME}" is already stopped')

    def run(self, force: bool) -> None:
        """Stop the instance; with force, skip the status check."""
        if not force:
            self._assert_vm_is_running()
            self.logger.info("Stopping existing Finch virtual machine...")
            args: tuple[str, ...] = ("stop", LIMA_INSTANCE_NAME)
        else:
            self.logger.info("Forcibly stopping Finch virtual machine...")
            args = ("stop", "--force", LIMA_INSTANCE_NAME)
        _run_logged(
            self.creator, self.logger, "Finch virtual machine failed to stop", *args
        )
        self.logger.info("Finch virtual machine stopped successfully")


class RemoveVMAction:
    """Deletes the stopped VM instance."""

    def __init__(
        self,
        creator: LimaCommandCreator,
        vm_status: StatusProvider,
        logger: logging.Logger,
    ) -> None:
        self.creator = creator
        self.vm_status = vm_status
        self.logger = logger

    def _assert_vm_is_stopped(self) -> None:
        status = self.vm_status()
        if status is VMStatus.NONEXISTENT:
            raise FinchError(f'the instance "{LIMA_INSTANCE_NAME}" does not exist')
        if status is VMStatus.RUNNING:
            raise FinchError(
                f'the instance "{LIMA_INSTANCE_NAME}" is running, run '
                f"`finch {VIRTUAL_MACHINE_ROOT_CMD} stop` to stop the instance first"
            )

    def run(self, force: bool) -> None:
        """Remove the instance; with force, skip the status check."""
        if not force:
            self._assert_vm_is_stopped()
            self.logger.info("Removing existing Finch virtual machine...")
            args: tuple[str, ...] = ("remove", LIMA_INSTANCE_NAME)
        else:
            self.logger.info("Forcibly removing Finch virtual machine...")
            args = ("remove", "--force", LIMA_INSTANCE_NAME)
        _run_logged(
            self.creator, self.logger, "Finch virtual machine failed to remove", *args
        )
        self.logger.info("Finch virtual machine removed successfully")


class StatusVMAction:
    """Prints the state of the VM instance."""

    def __init__(self, vm_status: StatusProvider, stdout: TextIO) -> None:
        self.vm_status = vm_status
        self.stdout = stdout

    def run(self) -> None:
        """Write Running, Stopped or Nonexistent followed by a newline."""
        status = self.vm_status()
        self.stdout.write(f"{status.value}\n")