[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "gpusched"
version = "0.1.0"
description = "Discrete-time emulator for GPU cluster job scheduling policies"
requires-python = ">=3.10"
dependencies = []
keywords = ["gpu", "scheduling", "emulation", "cluster", "mcts"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: Science/Research",
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

[project.scripts]
gpusched = "gpusched.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["gpusched"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
