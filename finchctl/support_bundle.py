"""The support-bundle generate command."""

from __future__ import annotations

import logging
from typing import Callable, Protocol, Sequence

from .common import VIRTUAL_MACHINE_ROOT_CMD, FinchError, VMStatus


class BundleBuilder(Protocol):
    """Collects logs and configuration into a bundle file."""

    def generate_support_bundle(
        self, include: Sequence[str], exclude: Sequence[str]
    ) -> str:
        """Build the bundle and return the path of the file written."""


class GenerateSupportBundleAction:
    """Generates a support bundle for an existing VM."""

    def __init__(
        self,
        logger: logging.Logger,
        builder: BundleBuilder,
        vm_status: Callable[[], VMStatus],
    ) -> None:
        self.logger = logger
        self.builder = builder
        self.vm_status = vm_status

    def _assert_vm_exists(self) -> None:
        if self.vm_status() is VMStatus.NONEXISTENT:
            raise FinchError(
                "cannot create support bundle for nonexistent VM, run "
                f"`finch {VIRTUAL_MACHINE_ROOT_CMD} init` to create a new instance"
            )

    def run(self, include: Sequence[str], exclude: Sequence[str]) -> str:
        """Build the bundle with extra and excluded files; return its path."""
        self._assert_vm_exists()
        self.logger.info("Generating support bundle...")
        bundle_file = self.builder.generate_support_bundle(include, exclude)
        self.logger.info("Bundle created: %s", bundle_file)
        self.logger.info("Files posted on a Github issue can be read by anyone.")
        self.logger.info(
            "Please ensure there is no sensitive information in the bundle before uploading."
        )
        self.logger.info(
            "By default, this bundle contains basic logs and configs for Finch."
        )
        return bundle_file