[build-system]
requires = ["setuptools>=61.0"]
build-backend = "setuptools.build_meta"

[project]
name = "miniredis"
version = "2.0.0"
description = "Building blocks for an in-process Redis test server: a RESP server, databases, sorted sets, streams and pub/sub"
requires-python = ">=3.10"
dependencies = []
keywords = ["redis", "testing", "server", "resp", "pubsub"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Operating System :: OS Independent",
    "Topic :: Software Development :: Testing",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.setuptools.packages.find]
include = ["miniredis*"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
