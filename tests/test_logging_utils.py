import importlib

import pytest

logging_utils_module = importlib.import_module("flowsmith.logging_utils")


class RecordingLogger:
    def __init__(self) -> None:
        self.levels: list[str] = []
        self.removed = 0

    def remove(self) -> None:
        self.removed += 1

    def add(self, sink, *, level: str, **kwargs) -> int:
        self.levels.append(level)
        return len(self.levels)


@pytest.fixture
def recorder(monkeypatch: pytest.MonkeyPatch) -> RecordingLogger:
    recording = RecordingLogger()
    monkeypatch.setattr(logging_utils_module, "logger", recording)
    monkeypatch.setattr(logging_utils_module, "_CONFIGURED", None)
    monkeypatch.delenv("FLOWSMITH_LOG_LEVEL", raising=False)
    return recording


def test_same_profile_and_level_configures_once(recorder: RecordingLogger) -> None:
    logging_utils_module.configure_logging(profile="default", level="info")
    logging_utils_module.configure_logging(profile="default", level="INFO")

    assert recorder.levels == ["INFO"]
    assert recorder.removed == 1


def test_new_level_in_same_profile_reconfigures(recorder: RecordingLogger) -> None:
    logging_utils_module.configure_logging(profile="cli", level="INFO")
    logging_utils_module.configure_logging(profile="cli", level="DEBUG")

    assert recorder.levels == ["INFO", "DEBUG"]


def test_level_falls_back_to_environment(recorder: RecordingLogger, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("FLOWSMITH_LOG_LEVEL", "warning")

    logging_utils_module.configure_logging()

    assert recorder.levels == ["WARNING"]
