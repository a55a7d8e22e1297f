[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "sixkernel"
version = "0.1.0"
description = "A small teaching-kernel file system, buffer cache, log, console and user tools, modelled in pure Python"
requires-python = ">=3.10"
dependencies = []
keywords = [
    "operating-system",
    "file-system",
    "teaching",
    "kernel",
    "buffer-cache",
    "write-ahead-log",
    "mkfs",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Education",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Operating System",
    "Topic :: System :: Filesystems",
    "Topic :: Education",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
sixkernel-mkfs = "sixkernel.mkfs:main"
sixkernel-grep = "sixkernel.grep:main"

[tool.hatch.build.targets.wheel]
packages = ["sixkernel"]

[tool.hatch.build.targets.sdist]
include = ["sixkernel", "tests", "pyproject.toml", "README.md"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 88
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
