[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "fattreesim"
version = "0.1.0"
description = "Discrete-event simulation of storage traffic over a fat-tree network of compute nodes, switches and object storage servers"
requires-python = ">=3.10"
dependencies = []
keywords = ["simulation", "discrete-event", "fat-tree", "network", "storage", "hpc"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Science/Research",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Networking",
    "Topic :: Scientific/Engineering",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["fattreesim"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
