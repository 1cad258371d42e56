[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "cjms"
version = "0.1.0"
description = "Affiliate conversion tracking: AIC cookie, subscription and refund records, statsd telemetry and reporting jobs."
requires-python = ">=3.10"
keywords = ["affiliate", "subscriptions", "refunds", "reporting", "statsd"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Office/Business",
]
dependencies = [
    "pyyaml",
    "sqlalchemy",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["cjms"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
