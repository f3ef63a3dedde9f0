"""Pytest configuration for all tests."""

import pytest


ISSUEBOT_ENV_VARS = (
    "ISSUEBOT_GITHUB_TOKEN",
    "ISSUEBOT_LLM_API_KEY",
    "ISSUEBOT_WEBHOOK_SECRET",
    "ISSUEBOT_DATABASE_URL",
    "ISSUEBOT_AUTO_FIX_ENABLED",
    "ISSUEBOT_BOT_NAME",
)


@pytest.fixture(autouse=True)
def clean_issuebot_env(monkeypatch):
    """Keep the developer's environment out of settings-driven tests."""
    for name in ISSUEBOT_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def issuebot_env(monkeypatch):
    """Minimal environment for constructing BotSettings."""
    monkeypatch.setenv("ISSUEBOT_GITHUB_TOKEN", "ghp_test_token_123")
    monkeypatch.setenv("ISSUEBOT_LLM_API_KEY", "sk-test-key-456")
