[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "sidecarrt"
version = "0.1.0"
description = "Application runtime sidecar core: state, lock, configuration, pub/sub and RPC APIs, actuator health endpoints and traffic sampling."
requires-python = ">=3.10"
keywords = ["sidecar", "runtime", "state store", "distributed lock", "actuator", "traffic sampling"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Distributed Computing",
]
dependencies = [
    "psutil",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["sidecarrt"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
