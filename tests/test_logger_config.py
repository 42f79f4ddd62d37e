# tests/test_logger_config.py
"""
Tests for services/logger_config.py
Handler setup and the application bootstrap that installs it.
"""
import logging
import os
from logging.handlers import RotatingFileHandler

import pytest

from config import settings
from services.logger_config import setup_logging
from services.rag_service import RAGService, create_rag_service


@pytest.fixture
def log_file(tmp_path, monkeypatch):
    path = tmp_path / "logs" / "rag.log"
    monkeypatch.setattr(settings, "LOG_FILE_PATH", str(path))
    yield path

    logger = logging.getLogger(settings.LOGGER_NAME)
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)
    logger.propagate = True


def _handler_kinds(logger):
    files = [h for h in logger.handlers if isinstance(h, RotatingFileHandler)]
    consoles = [
        h for h in logger.handlers
        if isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler)
    ]
    return files, consoles


class TestSetupLogging:
    """Rotating file plus console handlers."""

    def test_installs_file_and_console_handlers(self, log_file):
        logger = setup_logging()

        files, consoles = _handler_kinds(logger)
        assert len(logger.handlers) == 2
        assert len(files) == 1 and len(consoles) == 1
        assert files[0].baseFilename == os.path.abspath(str(log_file))
        assert files[0].maxBytes == 5 * 1024 * 1024
        assert files[0].backupCount == 5
        assert logger.propagate is False

    def test_creates_log_directory(self, log_file):
        assert not log_file.parent.exists()
        setup_logging()
        assert log_file.parent.is_dir()

    def test_repeated_calls_do_not_stack_handlers(self, log_file):
        setup_logging()
        logger = setup_logging()

        files, consoles = _handler_kinds(logger)
        assert len(logger.handlers) == 2
        assert len(files) == 1 and len(consoles) == 1

    def test_level_follows_settings(self, log_file, monkeypatch):
        monkeypatch.setattr(settings, "LOG_LEVEL", "warning")
        assert setup_logging().level == logging.WARNING

    def test_unknown_level_falls_back_to_info(self, log_file, monkeypatch):
        monkeypatch.setattr(settings, "LOG_LEVEL", "chatty")
        assert setup_logging().level == logging.INFO


class TestCreateRagService:
    """Application bootstrap."""

    def test_configures_logging_and_builds_service(self, log_file, embedding_service, llm_service, chunker):
        service = create_rag_service(
            embedding_service=embedding_service,
            chunker=chunker,
            llm_service=llm_service,
            vector_store_type="memory",
        )

        assert isinstance(service, RAGService)
        assert service.factory.llm_service is llm_service
        files, consoles = _handler_kinds(logging.getLogger(settings.LOGGER_NAME))
        assert len(files) == 1 and len(consoles) == 1
        assert log_file.exists()
