[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "schedplugins"
version = "0.1.0"
description = "Scheduling plugins for cluster schedulers: QoS queue sorting, pod-state scoring, NUMA topology matching and load-aware scoring."
requires-python = ">=3.10"
dependencies = []
keywords = ["scheduler", "scheduling", "numa", "topology", "load-aware", "bin-packing", "qos"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Distributed Computing",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["schedplugins"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
