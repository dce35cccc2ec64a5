[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "live2text"
version = "0.1.0"
description = "Live speech-to-text service core: captures audio input, streams it to a pluggable speech recognizer and serves rolling subtitles over a WSGI API and Unix sockets."
requires-python = ">=3.10"
dependencies = []
keywords = [
    "speech",
    "speech-recognition",
    "subtitles",
    "transcription",
    "audio",
    "wsgi",
    "prometheus",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Multimedia :: Sound/Audio :: Speech",
    "Topic :: Internet :: WWW/HTTP :: WSGI :: Application",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["live2text"]

[tool.hatch.build.targets.sdist]
include = ["live2text", "tests", "pyproject.toml"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
