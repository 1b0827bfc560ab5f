import logging
from logging.handlers import RotatingFileHandler
from unittest.mock import patch

import pytest

from smc100cc_ctrl.config.models import LoggingConfig
from smc100cc_ctrl.utils.logging_setup import setup_logging
from smc100cc_ctrl.utils.privileges import elevated_privileges


class TestElevatedPrivileges:

    def test_switches_to_saved_uid_and_back(self):
        with patch("os.getresuid", return_value=(1000, 1000, 0), create=True), \
                patch("os.seteuid", create=True) as seteuid:
            with elevated_privileges():
                seteuid.assert_called_once_with(0)
            seteuid.assert_called_with(1000)
        assert seteuid.call_count == 2

    def test_restores_on_error(self):
        with patch("os.getresuid", return_value=(1000, 1000, 0), create=True), \
                patch("os.seteuid", create=True) as seteuid:
            with pytest.raises(OSError):
                with elevated_privileges():
                    raise OSError("open failed")
        seteuid.assert_called_with(1000)

    def test_noop_without_setuid(self):
        with patch("os.getresuid", return_value=(1000, 1000, 1000), create=True), \
                patch("os.seteuid", create=True) as seteuid:
            with elevated_privileges():
                pass
        seteuid.assert_not_called()


class TestSetupLogging:

    @pytest.fixture(autouse=True)
    def restore_root_logger(self):
        root = logging.getLogger()
        handlers, level = list(root.handlers), root.level
        yield
        for handler in root.handlers:
            if handler not in handlers:
                handler.close()
        root.handlers[:] = handlers
        root.setLevel(level)
        logging.getLogger("smc100cc_ctrl.protocol").setLevel(logging.NOTSET)

    def test_console_and_file(self, tmp_path):
        log_file = tmp_path / "stage.log"
        setup_logging(LoggingConfig(level="DEBUG", file=str(log_file), max_file_mb=1, backup_count=2))

        root = logging.getLogger()
        assert root.level == logging.DEBUG
        (file_handler,) = [h for h in root.handlers if isinstance(h, RotatingFileHandler)]
        assert file_handler.maxBytes == 1024 * 1024
        assert file_handler.backupCount == 2
        assert log_file.exists()

    def test_protocol_frames_have_their_own_level(self):
        setup_logging(LoggingConfig(level="DEBUG", file=None, protocol_level="info"))

        frame_logger = logging.getLogger("smc100cc_ctrl.protocol.serial_transport")
        assert not frame_logger.isEnabledFor(logging.DEBUG)
        assert logging.getLogger("smc100cc_ctrl.stage.controller").isEnabledFor(logging.DEBUG)

    def test_uvicorn_routed_through_root(self):
        setup_logging(LoggingConfig(file=None))

        uvicorn_logger = logging.getLogger("uvicorn.error")
        assert uvicorn_logger.handlers == []
        assert uvicorn_logger.propagate

    def test_console_only(self):
        setup_logging(LoggingConfig(level="WARNING", file=None))

        root = logging.getLogger()
        assert root.level == logging.WARNING
        assert not any(isinstance(h, RotatingFileHandler) for h in root.handlers)
