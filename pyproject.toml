[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "cooper"
version = "1.0.0"
description = "Reactor-style TCP building blocks: event loops, channels, acceptors, connectors, HTTP request handling and a framed message dispatcher"
requires-python = ">=3.10"
dependencies = []
keywords = ["reactor", "event-loop", "tcp", "http", "networking", "poll"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Networking",
    "Topic :: Internet :: WWW/HTTP :: HTTP Servers",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["cooper"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"
