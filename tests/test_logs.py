import logging
from pathlib import Path

from modelit.logs import LOGGER_NAME, configure_logging


def test_configure_logging_once(tmp_path: Path):
    logger = logging.getLogger(LOGGER_NAME)
    saved = list(logger.handlers)
    try:
        configure_logging(tmp_path / "logs")
        configure_logging(tmp_path / "other")
        added = [handler for handler in logger.handlers if handler not in saved]
        assert len(added) == 2
        logging.getLogger(f"{LOGGER_NAME}.launcher").debug("[launcher] submit -> job1")
        for handler in added:
            handler.flush()
        assert "[launcher] submit -> job1" in (tmp_path / "logs" / "modelit.log").read_text()
        assert not (tmp_path / "other").exists()
    finally:
        for handler in list(logger.handlers):
            if handler not in saved:
                logger.removeHandler(handler)
                handler.close()
        if hasattr(logger, "_modelit_configured"):
            del logger._modelit_configured
