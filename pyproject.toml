[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "sparenode"
version = "0.1.0"
description = "Worker node for an edge serverless platform with emergency-aware request offloading"
requires-python = ">=3.10"
keywords = ["serverless", "edge computing", "orchestration", "offloading", "emergency"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: Science/Research",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Framework :: AsyncIO",
    "Framework :: aiohttp",
    "Topic :: System :: Distributed Computing",
]
dependencies = [
    "aiohttp",
]

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
]

[tool.hatch.build.targets.wheel]
packages = ["sparenode"]

[tool.hatch.build.targets.sdist]
include = ["sparenode", "tests", "pyproject.toml"]

[tool.pytest.ini_options]
addopts = "-ra"
