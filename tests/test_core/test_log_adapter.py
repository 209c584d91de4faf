""" Tests for dynpool.core.log_adapter """

from unittest.mock import patch

from dynpool.core.log_adapter import CoreLogger, current_task_id


class TestCoreLogger:
    """ Tests for CoreLogger """

    def test_forwards_levels(self):
        """ Every method maps onto DynPoolLogger """
        log = CoreLogger("test")

        with patch.object(log, "_logger") as mock_logger:
            log.debug("d")
            log.info("i")
            log.warning("w")
            log.warn("w2")
            log.error("e")
            log.trace("t", task_id="explicit")

        mock_logger.debug.assert_called_once_with("d", None)
        mock_logger.info.assert_called_once_with("i", None)
        assert mock_logger.warn.call_count == 2
        mock_logger.error.assert_called_once_with("e", None)
        mock_logger.trace.assert_called_once_with("t", "explicit")

    def test_task_context(self):
        """ The context task id is used until the block ends """
        log = CoreLogger("test")

        with patch.object(log, "_logger") as mock_logger:
            with log.task_context("task-123"):
                assert current_task_id.get() == "task-123"
                log.info("inside")
                log.info("explicit", task_id="other")
            log.info("outside")

        assert [call.args for call in mock_logger.info.call_args_list] == [
            ("inside", "task-123"), ("explicit", "other"), ("outside", None)
        ]
        assert current_task_id.get() is None

    def test_level(self):
        """ level mirrors DynPoolLogger """
        log = CoreLogger("test")
        assert log.level == log._logger.level  # pylint: disable=protected-access
