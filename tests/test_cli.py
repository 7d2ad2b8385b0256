import io
import logging

import pytest

from finchctl.cli import AppDeps, build_parser, run
from finchctl.nerdctl import NERDCTL_COMMANDS


class FakeCreator:
    def __init__(self, status="Running", ssh_port=b"80", version_json=b"{}"):
        self.status = status
        self.ssh_port = ssh_port
        self.version_json = version_json
        self.calls = []

    def output(self, *args):
        self.calls.append(("output", args))
        if args[:3] == ("ls", "-f", "{{.Status}}"):
            return self.status.encode()
        if args[:3] == ("ls", "-f", "{{.SSHLocalPort}}"):
            return self.ssh_port
        return self.version_json

    def run(self, *args):
        self.calls.append(("run", args))

    def combined_output(self, *args):
        self.calls.append(("combined_output", args))
        return b""

    def run_with_replacing_stdout(self, replacements, *args):
        self.calls.append(("replace", tuple(replacements), args))


class Recorder:
    def __init__(self):
        self.calls = []

    def apply(self, value):
        self.calls.append(value)

    def ensure_user_data_disk(self):
        self.calls.append("disk")


class FakeBuilder:
    def __init__(self):
        self.calls = []

    def generate_support_bundle(self, include, exclude):
        self.calls.append((list(include), list(exclude)))
        return "bundle.zip"


def make_deps(request, creator):
    logger = logging.getLogger(f"finchctl.tests.cli.{request.node.name}")
    logger.setLevel(logging.INFO)
    return AppDeps(
        creator=creator,
        logger=logger,
        stdout=io.StringIO(),
        environ={},
        base_yaml_file_path="/os/os.yaml",
        lima_config_applier=Recorder(),
        nerdctl_applier=Recorder(),
        disk_manager=Recorder(),
        bundle_builder=FakeBuilder(),
        version="1.2.3",
    )


@pytest.mark.parametrize("name", sorted(NERDCTL_COMMANDS))
def test_parser_knows_every_nerdctl_command(name):
    namespace, extras = build_parser().parse_known_args([name, "-d", "alpine"])
    assert namespace.command == name
    assert extras == ["-d", "alpine"]


def test_parser_rejects_unknown_command():
    with pytest.raises(SystemExit):
        build_parser().parse_args(["no-such-command"])


def test_parser_vm_stop_force():
    namespace = build_parser().parse_args(["vm", "stop", "-f"])
    assert (namespace.command, namespace.vm_command, namespace.force) == ("vm", "stop", True)


def test_vm_status(request):
    deps = make_deps(request, FakeCreator(status="Running"))
    assert run(["vm", "status"], deps) == 0
    assert deps.stdout.getvalue() == "Running\n"


def test_debug_flag_sets_level(request):
    deps = make_deps(request, FakeCreator(status=""))
    assert run(["--debug", "vm", "status"], deps) == 0
    assert deps.logger.level == logging.DEBUG
    assert deps.stdout.getvalue() == "Nonexistent\n"


def test_nerdctl_command_forwarded(request):
    creator = FakeCreator()
    deps = make_deps(request, creator)
    assert run(["build", "-t", "demo", "."], deps) == 0
    assert creator.calls[-1] == (
        "run",
        ("shell", "finch", "sudo", "-E", "nerdctl", "build", "-t", "demo", "."),
    )


def test_nerdctl_flags_are_not_parsed(request):
    creator = FakeCreator()
    deps = make_deps(request, creator)
    assert run(["run", "-d", "alpine"], deps) == 0
    assert creator.calls[-1] == (
        "run",
        ("shell", "finch", "sudo", "-E", "nerdctl", "run", "-d", "alpine"),
    )


def test_vm_init_applies_config_after_start(request):
    creator = FakeCreator(status="")
    deps = make_deps(request, creator)
    assert run(["vm", "init"], deps) == 0
    assert ("combined_output", ("start", "--name=finch", "/os/os.yaml", "--tty=false")) in creator.calls
    assert deps.lima_config_applier.calls == [True]
    assert deps.disk_manager.calls == ["disk"]
    assert deps.nerdctl_applier.calls == ["127.0.0.1:80"]


def test_vm_stop_force_skips_status(request):
    creator = FakeCreator()
    deps = make_deps(request, creator)
    assert run(["vm", "stop", "--force"], deps) == 0
    assert creator.calls == [("combined_output", ("stop", "--force", "finch"))]


def test_vm_start_when_running_fails(request, caplog):
    caplog.set_level(logging.ERROR)
    deps = make_deps(request, FakeCreator(status="Running"))
    assert run(["vm", "start"], deps) == 1
    assert 'the instance "finch" is already running' in caplog.text


def test_unknown_status_fails(request, caplog):
    caplog.set_level(logging.ERROR)
    deps = make_deps(request, FakeCreator(status="Broken"))
    assert run(["vm", "status"], deps) == 1
    assert "unrecognized system status" in caplog.text


def test_support_bundle_flags(request):
    deps = make_deps(request, FakeCreator())
    code = run(
        ["support-bundle", "generate", "--include", "a", "--include", "b", "--exclude", "c"],
        deps,
    )
    assert code == 0
    assert deps.bundle_builder.calls == [(["a", "b"], ["c"])]


def test_version_when_stopped(request):
    deps = make_deps(request, FakeCreator(status="Stopped"))
    assert run(["version"], deps) == 1
    assert deps.stdout.getvalue() == "Finch version:\t1.2.3\n"


def test_version_flag(request):
    deps = make_deps(request, FakeCreator())
    assert run(["--version"], deps) == 0
    assert deps.stdout.getvalue() == "finch version 1.2.3\n"


def test_extra_arguments_for_finch_command_rejected(request):
    deps = make_deps(request, FakeCreator())
    with pytest.raises(SystemExit) as info:
        run(["vm", "status", "extra"], deps)
    assert info.value.code == 2