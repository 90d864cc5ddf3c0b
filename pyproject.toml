[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "vnetkit"
version = "0.1.0"
description = "Transport building blocks: deadlines, packet buffers, replay detection, context-aware connections and virtual UDP network parts with NAT."
requires-python = ">=3.10"
dependencies = []
keywords = ["networking", "udp", "nat", "replay-detection", "packet-buffer", "virtual-network", "deadline"]
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
    "Topic :: System :: Networking",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["vnetkit"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
