[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "pcapanon"
version = "0.1.0"
description = "Anonymize IP addresses, phone numbers and user identifiers in pcap captures, including SIP message content"
requires-python = ">=3.10"
dependencies = []
keywords = ["pcap", "pcapng", "anonymization", "sip", "voip", "privacy", "network"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: System Administrators",
    "Intended Audience :: Telecommunications Industry",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Networking",
    "Topic :: Security",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
pcap-anon = "pcapanon.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["pcapanon"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
