[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "hypermcp"
version = "0.1.0"
description = "An MCP server that serves tools from configurable built-in plugins"
requires-python = ">=3.11"
keywords = ["mcp", "model-context-protocol", "plugins", "server", "json-rpc", "sse", "cli"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Framework :: AsyncIO",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Libraries :: Application Frameworks",
]
dependencies = [
    "pyyaml",
    "requests",
    "aiohttp",
    "platformdirs",
]

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
    "responses",
]

[project.scripts]
hypermcp = "hypermcp.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["hypermcp"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
