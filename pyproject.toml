[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "blekit"
version = "0.1.0"
description = "Bluetooth Low Energy building blocks: UUIDs, advertising packets, HCI events, an ATT client, L2CAP framing and a Linux HCI socket"
requires-python = ">=3.10"
keywords = ["bluetooth", "ble", "att", "hci", "l2cap", "advertising", "uuid"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Communications",
    "Topic :: System :: Networking",
]
dependencies = []

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["blekit"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
