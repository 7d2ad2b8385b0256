import logging

import pytest

from finchctl.common import FinchError, VMStatus
from finchctl.support_bundle import GenerateSupportBundleAction

LOGGER_NAME = "finchctl.tests.support_bundle"


class FakeBuilder:
    def __init__(self, result="bundleName"):
        self.result = result
        self.calls = []

    def generate_support_bundle(self, include, exclude):
        self.calls.append((list(include), list(exclude)))
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


def status_of(value):
    def provider():
        if isinstance(value, Exception):
            raise value
        return value

    return provider


@pytest.fixture
def logger(caplog):
    caplog.set_level(logging.INFO, logger=LOGGER_NAME)
    return logging.getLogger(LOGGER_NAME)


@pytest.mark.parametrize("status", [VMStatus.RUNNING, VMStatus.STOPPED])
def test_generates_bundle(logger, caplog, status):
    builder = FakeBuilder()
    result = GenerateSupportBundleAction(logger, builder, status_of(status)).run([], [])
    assert result == "bundleName"
    assert builder.calls == [([], [])]
    assert [r.getMessage() for r in caplog.records] == [
        "Generating support bundle...",
        "Bundle created: bundleName",
        "Files posted on a Github issue can be read by anyone.",
        "Please ensure there is no sensitive information in the bundle before uploading.",
        "By default, this bundle contains basic logs and configs for Finch.",
    ]


@pytest.mark.parametrize(
    "include, exclude",
    [
        (["testfile"], []),
        (["testfile", "secondfile"], []),
        ([], ["testfile"]),
        ([], ["testfile", "secondfile"]),
        (["testfile"], ["secondfile"]),
    ],
)
def test_include_and_exclude_reach_builder(logger, include, exclude):
    builder = FakeBuilder()
    GenerateSupportBundleAction(logger, builder, status_of(VMStatus.RUNNING)).run(include, exclude)
    assert builder.calls == [(include, exclude)]


def test_nonexistent_vm(logger):
    builder = FakeBuilder()
    with pytest.raises(FinchError) as info:
        GenerateSupportBundleAction(logger, builder, status_of(VMStatus.NONEXISTENT)).run([], [])
    assert str(info.value) == (
        "cannot create support bundle for nonexistent VM, run `finch vm init` to create a new instance"
    )
    assert builder.calls == []


def test_builder_error_propagates(logger, caplog):
    builder = FakeBuilder(FinchError("foo"))
    with pytest.raises(FinchError, match="^foo$"):
        GenerateSupportBundleAction(logger, builder, status_of(VMStatus.RUNNING)).run([], [])
    assert [r.getMessage() for r in caplog.records] == ["Generating support bundle..."]


def test_status_error_propagates(logger):
    builder = FakeBuilder()
    with pytest.raises(FinchError, match="get status error"):
        GenerateSupportBundleAction(
            logger, builder, status_of(FinchError("get status error"))
        ).run([], [])
    assert builder.calls == []