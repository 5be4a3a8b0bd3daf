[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "carbonstore"
version = "0.15.6"
description = "Metric-name trie index with glob queries, quotas and throttling for Graphite-style metric stores"
requires-python = ">=3.10"
dependencies = []
keywords = ["graphite", "carbon", "metrics", "trie", "glob", "quota", "throttling"]
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
    "Topic :: Database :: Database Engines/Servers",
    "Topic :: System :: Monitoring",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["carbonstore"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
