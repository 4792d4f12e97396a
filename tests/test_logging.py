"""
Tests for logging setup.
"""

import logging
from pathlib import Path

from telestack.core.observability.logging_config import setup_logging


class TestSetupLogging:
    def test_console_level(self):
        setup_logging("INFO")
        root = logging.getLogger()
        assert root.level == logging.INFO
        assert len(root.handlers) == 1
        assert root.handlers[0].level == logging.INFO

    def test_unknown_level_falls_back_to_warning(self):
        setup_logging("LOUD")
        assert logging.getLogger().level == logging.WARNING

    def test_file_handler_with_own_level(self, tmp_path: Path):
        log_file = tmp_path / "logs" / "telestack.log"
        setup_logging("WARNING", log_file=str(log_file), log_file_level="DEBUG")
        root = logging.getLogger()
        assert root.level == logging.DEBUG
        logging.getLogger("telestack.test").debug("materialized openemr")
        for h in root.handlers:
            h.flush()
        assert "materialized openemr" in log_file.read_text()

    def test_third_party_quieted(self):
        setup_logging("INFO")
        assert logging.getLogger("urllib3").level == logging.WARNING

    def test_repeat_calls_do_not_stack_handlers(self):
        setup_logging("INFO")
        setup_logging("INFO")
        assert len(logging.getLogger().handlers) == 1
