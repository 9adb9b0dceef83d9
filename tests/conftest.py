"""tests/conftest.py

Pytest configuration and shared fixtures for the vibechat test suite.
"""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from vibechat.config import ModelConfig, ModerationConfig
from vibechat.schemas import Message

ROOT = Path(__file__).resolve().parent.parent
CONFIG_PATH = ROOT / "config.yaml"

# vibechat.main loads config at import time
os.environ.setdefault("VIBECHAT_CONFIG", str(CONFIG_PATH))


@pytest.fixture(autouse=True)
def _clear_secret_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the developer's real keys out of config loaded by tests."""
    for name in ("MODERATION_API_KEY", "MODERATION_API_REGION", "VIBECHAT_API_KEY"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def model() -> ModelConfig:
    return ModelConfig(id="test-model", name="Test Model", provider_model="test-1")


@pytest.fixture
def moderation_config() -> ModerationConfig:
    return ModerationConfig(api_key="wc-test-key", region="eu", timeout=0.5)


@pytest.fixture
def hello_messages() -> list[Message]:
    return [
        Message.model_validate(
            {"id": "1", "role": "user", "parts": [{"type": "text", "text": "hello"}]}
        )
    ]
