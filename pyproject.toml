[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "trafficlog"
version = "0.1.76"
description = "Network traffic accounting with SQLite storage, history tables, summaries and 95th percentile reports."
requires-python = ">=3.11"
dependencies = []
keywords = [
    "network",
    "traffic",
    "bandwidth",
    "monitoring",
    "sqlite",
    "statistics",
    "95th-percentile",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: System Administrators",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Networking :: Monitoring",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["trafficlog"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py311"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.11"
warn_unused_ignores = true
warn_redundant_casts = true
