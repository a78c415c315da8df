[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "jplcomp"
version = "0.1.0"
description = "Type checker, tree printer and C / x86-64 assembly code generators for JPL syntax trees"
requires-python = ">=3.10"
dependencies = []
keywords = ["compiler", "jpl", "type checker", "code generation", "assembly", "nasm"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: Education",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Compilers",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["jplcomp"]

[tool.hatch.build.targets.sdist]
include = ["jplcomp", "tests", "pyproject.toml", "README.md"]

[tool.pytest.ini_options]
addopts = "-ra"
testpaths = ["tests"]

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
