[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "finchctl"
version = "0.1.0"
description = "Command-line front end that manages a Lima virtual machine and forwards container commands to nerdctl inside it"
requires-python = ">=3.10"
dependencies = []
keywords = ["containers", "nerdctl", "lima", "virtual-machine", "cli", "containerd"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Operating System :: MacOS",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Emulators",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
finch = "finchctl.cli:run"

[tool.hatch.build.targets.wheel]
packages = ["finchctl"]

[tool.pytest.ini_options]
addopts = "-ra"
testpaths = ["tests"]

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
