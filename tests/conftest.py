from __future__ import annotations

from pathlib import Path

import pytest

from flowsmith.config import Settings

_CREDENTIAL_VARS = ("API_KEY", "FLOWSMITH_API_KEY", "GEMINI_API_KEY", "GOOGLE_API_KEY")


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    for name in _CREDENTIAL_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def settings() -> Settings:
    return Settings(api_key="test-key", initial_delay_ms=0, attempt_timeout_seconds=None)
