"""Unit tests for alignopt.utils.logging."""

import logging

import pytest

from alignopt.utils.logging import get_logger, log_operation, set_log_level


class TestGetLogger:
    def test_package_module_name_kept(self):
        assert get_logger("alignopt.optimization.gradient_descent").name == (
            "alignopt.optimization.gradient_descent"
        )

    def test_foreign_name_prefixed(self):
        assert get_logger("registration_script").name == "alignopt.registration_script"

    def test_main_module(self):
        assert get_logger("__main__").name == "alignopt.main"

    def test_caller_module_detected(self):
        assert get_logger().name == f"alignopt.{__name__}"

    def test_root_handler_installed_once(self):
        get_logger("first")
        get_logger("second")

        assert len(logging.getLogger("alignopt").handlers) == 1


class TestSetLogLevel:
    def test_level_by_name_and_constant(self):
        root = logging.getLogger("alignopt")
        previous = root.level
        try:
            set_log_level("DEBUG")
            assert root.level == logging.DEBUG
            set_log_level(logging.ERROR)
            assert root.level == logging.ERROR
        finally:
            root.setLevel(previous)


class TestLogOperation:
    def test_success_logs_start_and_completion(self, caplog):
        logger = get_logger("alignopt.tests.operation")

        with caplog.at_level(logging.INFO, logger="alignopt"):
            with log_operation("scale estimation", logger=logger) as yielded:
                assert yielded is logger

        messages = [r.getMessage() for r in caplog.records]
        assert messages[0] == "Starting operation: scale estimation"
        assert messages[1].startswith("Completed operation: scale estimation in ")

    def test_failure_logged_and_reraised(self, caplog):
        logger = get_logger("alignopt.tests.operation")

        with caplog.at_level(logging.INFO, logger="alignopt"):
            with pytest.raises(RuntimeError):
                with log_operation("registration", logger=logger):
                    raise RuntimeError("diverged")

        failure = caplog.records[-1]
        assert failure.levelno == logging.ERROR
        assert "Failed operation: registration" in failure.getMessage()
        assert "diverged" in failure.getMessage()
