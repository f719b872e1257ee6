"""Tests for settings validation and logging setup."""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

import pytest
from pydantic import ValidationError

from dossier.config.settings import Settings
from dossier.log import configure_logging, log_operation


@pytest.fixture(autouse=True)
def _restore_root_logging():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


def make_settings(**overrides) -> Settings:
    return Settings(_env_file=None, **overrides)


# ===========================================================================
# Settings
# ===========================================================================


class TestSettings:
    def test_defaults(self, monkeypatch: pytest.MonkeyPatch):
        for name in ("CASES_ROOT", "LLM_PROVIDER", "MAX_LEAD_DEPTH", "BATCH_SIZE"):
            monkeypatch.delenv(name, raising=False)
        s = make_settings()
        assert s.CASES_ROOT == "cases"
        assert s.LLM_PROVIDER == "ollama"
        assert s.MAX_LEAD_DEPTH == 3
        assert s.BATCH_SIZE == 4
        assert set(s.MODEL_ROUTING) == {"fast", "balanced", "powerful"}

    def test_environment_override(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("BATCH_SIZE", "8")
        monkeypatch.setenv("LLM_PROVIDER", "stub")
        s = make_settings()
        assert s.BATCH_SIZE == 8
        assert s.LLM_PROVIDER == "stub"

    def test_log_level_is_uppercased(self):
        assert make_settings(LOG_LEVEL="debug").LOG_LEVEL == "DEBUG"

    def test_unknown_log_level(self):
        with pytest.raises(ValidationError):
            make_settings(LOG_LEVEL="verbose")

    @pytest.mark.parametrize("field", ["MAX_LEAD_DEPTH", "BATCH_SIZE", "LOG_BACKUP_COUNT"])
    def test_positive_ints(self, field: str):
        with pytest.raises(ValidationError, match="must be at least 1"):
            make_settings(**{field: 0})

    def test_negative_threshold(self):
        with pytest.raises(ValidationError, match="non-negative"):
            make_settings(LOCK_TIMEOUT=-1)
        assert make_settings(LEAD_CLAIM_STALE_MINUTES=0).LEAD_CLAIM_STALE_MINUTES == 0

    def test_unknown_provider(self):
        with pytest.raises(ValidationError):
            make_settings(LLM_PROVIDER="openai")


# ===========================================================================
# Logging
# ===========================================================================


class TestConfigureLogging:
    def test_level_name(self):
        configure_logging("warning", log_file="")
        root = logging.getLogger()
        assert root.level == logging.WARNING
        assert not any(isinstance(h, RotatingFileHandler) for h in root.handlers)

    def test_rotating_file(self, tmp_path: Path):
        log_file = tmp_path / "logs" / "dossier.log"
        configure_logging("INFO", log_file=str(log_file))

        handlers = [h for h in logging.getLogger().handlers if isinstance(h, RotatingFileHandler)]
        assert len(handlers) == 1
        logging.getLogger("dossier.test").info("written to file")
        handlers[0].flush()
        assert "[INFO] dossier.test: written to file" in log_file.read_text()


class TestLogOperation:
    def test_done(self, caplog: pytest.LogCaptureFixture):
        logger = logging.getLogger("dossier.test")
        with caplog.at_level(logging.INFO, logger="dossier.test"):
            with log_operation(logger, "capture", source="S001") as result:
                result["files"] = 2
        messages = [r.getMessage() for r in caplog.records]
        assert messages[0] == "START capture {'source': 'S001'}"
        assert messages[1].startswith("DONE capture (")
        assert messages[1].endswith("{'files': 2}")

    def test_fail_reraises(self, caplog: pytest.LogCaptureFixture):
        logger = logging.getLogger("dossier.test")
        with caplog.at_level(logging.INFO, logger="dossier.test"):
            with pytest.raises(RuntimeError, match="boom"):
                with log_operation(logger, "capture"):
                    raise RuntimeError("boom")
        failure = caplog.records[-1]
        assert failure.levelno == logging.ERROR
        assert failure.getMessage().startswith("FAIL capture (")
        assert failure.getMessage().endswith("boom")
