[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "strelp"
version = "1.0.0"
description = "Discord presence API over HTTP and WebSocket, with GitHub commit polling"
requires-python = ">=3.11"
keywords = ["discord", "presence", "api", "websocket", "github"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Web Environment",
    "Framework :: AsyncIO",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: WWW/HTTP :: HTTP Servers",
]
dependencies = [
    "cryptography>=41",
    "httpx>=0.25",
    "sqlalchemy>=2.0",
    "starlette>=0.35",
    "uvicorn[standard]>=0.23",
    "python-dotenv>=1.0",
]

[project.optional-dependencies]
test = [
    "pytest>=7.4",
    "pytest-asyncio>=0.23",
    "respx>=0.20",
]

[project.scripts]
strelp-api = "strelp.apiserver:main"

[tool.hatch.build.targets.wheel]
packages = ["strelp"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py311"

[tool.ruff.lint]
select = ["E", "F", "I", "B", "UP"]

[tool.mypy]
python_version = "3.11"
warn_unused_ignores = true
