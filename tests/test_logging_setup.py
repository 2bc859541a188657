import logging

from job_tracker.logging_setup import ROOT_LOGGER, setup_logging


def test_setup_logging_writes_module_loggers_to_file(tmp_path):
    log_file = tmp_path / "logs" / "tracker.log"
    logger = setup_logging("debug", log_file=log_file)
    try:
        assert logger.level == logging.DEBUG
        logging.getLogger("job_tracker.store").info("added application a1")
        for handler in logger.handlers:
            handler.flush()
        assert "job_tracker.store - INFO - added application a1" in log_file.read_text(encoding="utf-8")
    finally:
        for handler in logger.handlers:
            handler.close()
        logger.handlers.clear()


def test_repeated_setup_does_not_stack_handlers():
    setup_logging("INFO")
    logger = setup_logging("WARNING")
    try:
        assert len(logger.handlers) == 1
        assert logger.level == logging.WARNING
    finally:
        logging.getLogger(ROOT_LOGGER).handlers.clear()
