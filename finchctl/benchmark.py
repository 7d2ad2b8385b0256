"""Locating the executable that benchmarks run against."""

from __future__ import annotations

import os

from .common import FinchError

INSTALLED_TEST_SUBJECT = "finch"


def get_subject(installed: bool) -> str:
    """Return the executable to benchmark: the installed one or the local build."""
    try:
        cwd = os.getcwd()
    except OSError as exc:
        raise FinchError(f"failed to get the current working directory: {exc}") from exc
    if installed:
        return INSTALLED_TEST_SUBJECT
    return os.path.normpath(os.path.join(cwd, "../../_output/bin/finch"))