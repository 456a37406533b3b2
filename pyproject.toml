[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "snapsync"
version = "2.0.0"
description = "A small distributed file store: one front server keeps .c files and routes .pdf, .txt and .zip files to storage servers."
requires-python = ">=3.10"
dependencies = []
keywords = ["distributed", "file-system", "tcp", "file-transfer", "storage"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Intended Audience :: Education",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Distributed Computing",
    "Topic :: System :: Networking",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
snapsync-server = "snapsync.main_server:main"
snapsync-storage = "snapsync.storage:main"
snapsync-client = "snapsync.client:main"
snapsync-info = "snapsync.info_server:main"

[tool.hatch.build.targets.wheel]
packages = ["snapsync"]

[tool.pytest.ini_options]
addopts = "-ra"
