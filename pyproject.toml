[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "slimdb"
version = "0.1.0"
description = "A small file-backed relational database with B+ tree indexes, transactions and an interactive query shell"
requires-python = ">=3.10"
dependencies = []
keywords = ["database", "dbms", "b+tree", "index", "transactions", "sql", "shell"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Intended Audience :: Education",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Database :: Database Engines/Servers",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
slimdb = "slimdb.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["slimdb"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
