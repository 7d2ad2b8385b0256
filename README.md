# finchctl

`finchctl` is the command layer of a container development tool. It manages a
Lima virtual machine named `finch` and forwards container commands such as
`run`, `build` and `pull` to `nerdctl` running inside that machine. It runs
`limactl` for all of this.

## Installation

```
pip install .
pip install ".[test]"   # with pytest, to run the tests
```

## The `finch` command

Installing the package provides a `finch` command, which calls
`finchctl.cli.run`:

```
finch vm init
finch vm start
finch vm status
finch run --rm -e GREETING=hello alpine:latest env
finch vm stop          # add -f / --force to skip the state check
finch vm remove        # add -f / --force to skip the state check
finch version
```

- `finch` with no command prints help. `finch --version` (or `-v`) prints
  `finch version <version>`. `--debug` sets the logger to debug level.
- Every nerdctl command from `finchctl.nerdctl.NERDCTL_COMMANDS` (`build`,
  `run`, `ps`, `images`, `compose`, `volume`, and so on) passes its arguments
  through to nerdctl.
- `vm init|start|stop|remove|status` manage the machine. `init` and `start`
  apply the in-machine configuration once the machine is up.
- `support-bundle generate [--include PATH]... [--exclude PATH]...` builds a
  support bundle.
- `run` returns the exit status: 0 on success, 1 when a command fails. The
  error is logged.

Without an explicit `AppDeps`, the command finds its installation prefix two
directories above the real path of the running script. It then runs
`<prefix>/lima/bin/limactl` with `LIMA_HOME=<prefix>/lima/data` and boots new
machines from `<prefix>/os/finch.yaml`.

## Library use

`finchctl.cli.run(argv, deps)` carries out a command line. `build_parser()`
returns the `argparse` parser for the whole command tree. The `AppDeps`
dataclass supplies the collaborators:

- the `LimaCommandCreator`
- the logger, stdout and environment mapping
- the base YAML path
- the Lima and nerdctl configuration appliers
- the user data disk manager
- an optional bundle builder
- an optional installer for optional dependencies
- the version strings

Embedding applications and tests can provide their own implementations.

### Machine status

`VMStatus.parse` turns the output of `limactl ls -f {{.Status}} finch`, after
stripping whitespace, into a status:

```python
from finchctl.common import VMStatus

VMStatus.parse("Running")   # VMStatus.RUNNING
VMStatus.parse("Stopped")   # VMStatus.STOPPED
VMStatus.parse("")          # VMStatus.NONEXISTENT
```

Any other text raises `FinchError("unrecognized system status")`.

### Virtual machine actions (`finchctl.virtual_machine`)

- **`InitVMAction`, `StartVMAction`, `StopVMAction` and `RemoveVMAction`.**
  Each action checks the current state first and raises `FinchError` with a
  helpful message when the request does not fit, for example:
  - starting a machine that is already running;
  - removing a running machine without `force`.
- **`StatusVMAction`.** Writes `Running`, `Stopped` or `Nonexistent`.
- **`PostVMStartInitAction`.** Reads the SSH port of the instance and passes
  `127.0.0.1:<port>` to the nerdctl configuration applier. If the port is
  `0`, it logs a warning and does nothing more.

When an init, start, stop or remove fails, the action logs the output captured
from `limactl` and raises the error again. A failure to install optional
dependencies is logged and does not stop the action.

### Container commands (`finchctl.nerdctl`)

`NerdctlCommand.run` first makes sure that the machine is running. It then
runs `limactl shell finch sudo -E nerdctl <command> ...`. Before it does, it
prepares the arguments:

- **Environment variables.** It gathers them from `-e`, `--env` and
  `--env-file`.
  - A name given without a value takes its value from the environment mapping.
    If the mapping has no such name, the variable is dropped.
  - In env files, blank lines and `#` comments are skipped.
  - Command-line values override env-file values, and later flags override
    earlier ones.
- **`--add-host`.** It rewrites `--add-host name:host-gateway` and
  `--add-host=name:host-gateway` to `name:192.168.5.2`.
- **Help output.** When `--help` or `-h` is given, or when one of `system`,
  `builder`, `compose`, `container`, `image`, `network` or `volume` is run
  without arguments, the output is rewritten so that `nerdctl` reads `finch`.

The helpers `arg_is_env`, `handle_env`, `handle_env_file` and `resolve_ip` are
public.

### Version information (`finchctl.version`)

`VersionAction` prints the client version together with the nerdctl component
versions. It reads these from `nerdctl version --format json`, which
`NerdctlVersionOutput.from_json` parses. If the machine is not running, or the
report cannot be read, it prints only `Finch version:\t<version>` and raises
the error.

### Support bundles (`finchctl.support_bundle`)

`GenerateSupportBundleAction.run(include, exclude)` refuses to run for a
machine that does not exist. Otherwise it asks the `BundleBuilder` for a bundle
and returns its path.

### Benchmarks

`finchctl.benchmark.get_subject(installed)` gives the executable that the
benchmarks exercise:

- `"finch"` when the installed application is under test;
- otherwise `../../_output/bin/finch`, relative to the working directory.

## What this package does not do

When `finch` runs without an explicit `AppDeps`, the following are not
provided:

- **Configuration.** No configuration file is read, and the Lima and nerdctl
  configuration appliers and the disk manager do nothing. The machine boots
  exactly as `finch.yaml` describes.
- **Optional dependencies.** Nothing is installed.
- **Support bundles.** There is no bundle builder, so
  `support-bundle generate` fails with "support bundle generation is not
  configured".
- **Version strings.** These are empty.

Supply real implementations through `AppDeps` to get these features.

## Requirements

- Python 3.10 or later
- A working Lima installation for anything that touches the virtual machine