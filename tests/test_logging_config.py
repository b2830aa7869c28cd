"""Tests for the logger tree and the per-request user tag."""

import contextvars
import logging

from src.logging_config import APP_LOGGER_NAME, UserContextFilter, bind_user, get_logger, setup_logging


def make_record():
    return logging.LogRecord("ledger_keeper.test", logging.INFO, __file__, 1, "paid", None, None)


class TestLoggingConfig:

    def test_modules_log_under_the_app_logger(self):
        assert get_logger("src.services.settlement").name == f"{APP_LOGGER_NAME}.src.services.settlement"
        assert get_logger(APP_LOGGER_NAME).name == APP_LOGGER_NAME

    def test_setup_does_not_stack_handlers(self):
        setup_logging(app_log_level="DEBUG")
        logger = setup_logging(app_log_level="DEBUG")
        assert len(logger.handlers) == 1
        assert logger.level == logging.DEBUG

    def test_records_carry_bound_user(self):
        def run():
            bind_user("user-42")
            record = make_record()
            UserContextFilter().filter(record)
            return record.user_id

        assert contextvars.copy_context().run(run) == "user-42"

    def test_records_without_user(self):
        record = make_record()
        contextvars.Context().run(UserContextFilter().filter, record)
        assert record.user_id == "-"
