[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "chipreg"
version = "0.1.0"
description = "Register map tooling: YAML register descriptions, transforms, formatting and validation"
requires-python = ">=3.10"
keywords = ["registers", "embedded", "peripherals", "yaml", "microcontroller"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Embedded Systems",
]
dependencies = [
    "pyyaml",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
chipreg = "chipreg.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["chipreg"]

[tool.pytest.ini_options]
addopts = "-ra"
