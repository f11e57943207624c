[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "splitbit"
version = "0.1.0"
description = "A small TCP load balancer with round-robin and weighted round-robin backend selection"
requires-python = ">=3.10"
dependencies = [
    "pyyaml",
]
keywords = ["load-balancer", "tcp", "proxy", "round-robin", "reverse-proxy"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: System Administrators",
    "Intended Audience :: Developers",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: Proxy Servers",
    "Topic :: System :: Networking",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
splitbit = "splitbit.server:main"

[tool.hatch.build.targets.wheel]
packages = ["splitbit"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"
