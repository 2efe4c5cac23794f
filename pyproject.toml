[build-system]
requires = ["setuptools>=64"]
build-backend = "setuptools.build_meta"

[project]
name = "portrelay"
version = "0.1.0"
description = "Server-side bookkeeping for a reverse tunnelling proxy: port allocation, proxy groups, registries and work-connection pools"
requires-python = ">=3.10"
dependencies = []
keywords = ["proxy", "tunnel", "reverse-proxy", "port-allocation", "load-balancing"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: Proxy Servers",
    "Topic :: System :: Networking",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.setuptools.packages.find]
include = ["portrelay*"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
