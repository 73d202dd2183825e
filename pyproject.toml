[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "nxhost"
version = "0.1.0"
description = "Host integration for a DNS proxy daemon: init-system services, resolver setup and network discovery"
requires-python = ">=3.10"
keywords = [
    "dns",
    "resolver",
    "resolv.conf",
    "init",
    "service",
    "launchd",
    "entware",
    "router",
    "ndp",
    "network interfaces",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: No Input/Output (Daemon)",
    "Intended Audience :: System Administrators",
    "Operating System :: POSIX :: Linux",
    "Operating System :: POSIX :: BSD",
    "Operating System :: MacOS",
    "Operating System :: Microsoft :: Windows",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Systems Administration",
    "Topic :: Internet :: Name Service (DNS)",
]
dependencies = [
    "jinja2",
    "psutil",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["nxhost"]

[tool.hatch.build.targets.sdist]
include = [
    "nxhost",
    "tests",
    "README.md",
]

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
