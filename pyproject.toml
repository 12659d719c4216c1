[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "sentryrelay"
version = "0.1.0"
description = "Rate-limit aware background queue that batches and delivers Sentry envelopes over HTTP"
requires-python = ">=3.10"
dependencies = [
    "httpx",
]
keywords = [
    "sentry",
    "envelope",
    "error-reporting",
    "transport",
    "queue",
    "rate-limiting",
    "retry",
]
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
    "Topic :: System :: Logging",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["sentryrelay"]

[tool.hatch.build.targets.sdist]
include = [
    "sentryrelay",
    "tests",
    "pyproject.toml",
]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
