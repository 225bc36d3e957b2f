[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "rtptransfer"
version = "0.1.0"
description = "Reliable file transfer over UDP with go-back-N and selective-repeat sliding windows"
requires-python = ">=3.10"
dependencies = []
keywords = ["udp", "reliable transport", "go-back-n", "selective repeat", "sliding window", "file transfer"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: Education",
    "Intended Audience :: Developers",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Networking",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
rtp-sender = "rtptransfer.sender:main"
rtp-receiver = "rtptransfer.receiver:main"

[tool.hatch.build.targets.wheel]
packages = ["rtptransfer"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
