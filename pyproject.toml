[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "twinab"
version = "0.1.0"
description = "A/B testing of a TCP request service against its digital twin"
requires-python = ">=3.10"
dependencies = []
keywords = ["a/b testing", "digital twin", "shadow traffic", "tcp", "replay"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Testing",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
twinab-original = "twinab.original:main"
twinab-twin = "twinab.twin:main"
twinab-client = "twinab.client:main"

[tool.hatch.build.targets.wheel]
packages = ["twinab"]

[tool.pytest.ini_options]
addopts = "-ra"
