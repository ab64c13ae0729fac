[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "edgeweb"
version = "0.1.0"
description = "A multi-reactor static-file HTTP server with asynchronous logging and a threaded HTTP load generator"
requires-python = ">=3.10"
dependencies = []
keywords = ["http", "server", "reactor", "epoll", "event-loop", "benchmark", "logging"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Environment :: No Input/Output (Daemon)",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: WWW/HTTP :: HTTP Servers",
    "Topic :: System :: Benchmark",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
edgeweb = "edgeweb.server:main"
edgeweb-bench = "edgeweb.bench:main"

[tool.hatch.build.targets.wheel]
packages = ["edgeweb"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 88
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
