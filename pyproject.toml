[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "starvalues"
version = "0.1.0"
description = "Starlark value model: values, comparison, containers, argument unpacking and a wall-time pprof profiler"
requires-python = ">=3.10"
dependencies = []
keywords = ["starlark", "interpreter", "values", "profiler", "pprof"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Operating System :: OS Independent",
    "Topic :: Software Development :: Interpreters",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["starvalues"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
