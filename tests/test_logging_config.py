"""Test logging setup, context fields and formatters.

Run:
    pytest tests/test_logging_config.py -v
"""
import json
import logging
import tempfile
from pathlib import Path

import pytest

from src.utils import logging_config


@pytest.fixture(autouse=True)
def clean_context():
    logging_config.pop_context()
    yield
    logging_config.pop_context()


def _record(msg="Knockout removed 12 px", level=logging.INFO):
    return logging.LogRecord("src.dtf_engine.knockout", level, __file__, 1, msg, None, None)


class TestContext:

    def test_push_and_pop(self):
        logging_config.push_context(substrate="black", style="clean")
        assert logging_config.get_context() == {"substrate": "black", "style": "clean"}

        logging_config.pop_context(keys=["style"])
        assert logging_config.get_context() == {"substrate": "black"}

    def test_pop_all(self):
        logging_config.push_context(job="sku-1")
        logging_config.pop_context()
        assert logging_config.get_context() == {}

    def test_get_context_returns_copy(self):
        logging_config.push_context(job="sku-1")
        logging_config.get_context()["job"] = "changed"
        assert logging_config.get_context() == {"job": "sku-1"}


class TestFormatter:

    def test_human_includes_context(self):
        logging_config.push_context(substrate="black")
        fmt = logging_config.ContextFormatter("human", use_color=False)
        line = fmt.format(_record())
        assert "INFO" in line
        assert "substrate=black" in line
        assert line.endswith("Knockout removed 12 px")

    def test_json_line(self):
        logging_config.push_context(style="grunge")
        fmt = logging_config.ContextFormatter("json", use_color=False)
        payload = json.loads(fmt.format(_record(level=logging.WARNING)))
        assert payload["lvl"] == "WARNING"
        assert payload["style"] == "grunge"
        assert payload["msg"] == "Knockout removed 12 px"


class TestSetup:

    def test_idempotent_handlers(self):
        logging_config.setup_logging(log_level="DEBUG", color=False)
        handlers = logging_config.setup_logging(log_level="INFO", color=False)
        assert len(logging.getLogger().handlers) == len(handlers) == 1
        assert logging.getLogger().level == logging.INFO

    def test_quiets_pil(self):
        logging_config.setup_logging(log_level="DEBUG", color=False)
        assert logging.getLogger("PIL").level == logging.WARNING

    def test_file_handler_writes(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            log_file = Path(tmpdir) / "logs" / "dtf.log"
            handlers = logging_config.setup_logging(
                log_level="INFO", log_file=str(log_file), to_stderr=False,
                context={"app": "dtf"},
            )
            logging_config.get_logger("test").info("hello")
            for h in handlers:
                h.flush()
                h.close()
            assert "app=dtf" in log_file.read_text()
            assert "hello" in log_file.read_text()
            logging.getLogger().handlers.clear()

    def test_unknown_rotation_mode(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            with pytest.raises(ValueError, match="rotation mode"):
                logging_config.setup_logging(
                    log_file=str(Path(tmpdir) / "x.log"), to_stderr=False,
                    rotate={"mode": "weekly"},
                )
