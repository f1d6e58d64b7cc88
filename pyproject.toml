[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "labkit"
version = "0.1.0"
description = "A toolkit for distributed-systems experiments: a value codec, a linearizability checker and a small MapReduce framework."
requires-python = ">=3.10"
dependencies = []
keywords = ["mapreduce", "rpc", "linearizability", "distributed-systems", "codec"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: Education",
    "Operating System :: POSIX",
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

[project.scripts]
mrmaster = "labkit.mr.cli:master_main"
mrworker = "labkit.mr.cli:worker_main"
mrsequential = "labkit.mr.cli:sequential_main"

[tool.hatch.build.targets.wheel]
packages = ["labkit"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
