""" Tests for dynpool.modules.dp_logger """

import json
import os
import unittest
from unittest.mock import patch

from dynpool.modules import dp_logger


class TestLogger(unittest.TestCase):
    """Tests for dp_logger"""

    def setUp(self) -> None:
        self.logger = dp_logger.DynPoolLogger()
        self.original_level = self.logger.level
        self.logger.set_source(None)

    def tearDown(self) -> None:
        self.logger.set_level(self.original_level)
        self.logger.set_source(None)

    def test_singleton(self):
        """
        Tests that the logger is a singleton
        """
        self.assertIs(dp_logger.DynPoolLogger(), dp_logger.DynPoolLogger())

    def test_set_log_level(self):
        """
        Tests that the log level can be set by name or value
        """
        self.logger.set_level("trace")
        self.assertEqual(self.logger.level, "TRACE")

        self.logger.set_level(3)
        self.assertEqual(self.logger.level, "INFO")

    def test_invalid_log_level(self):
        """
        Tests that invalid levels are rejected
        """
        with self.assertRaises(ValueError):
            self.logger.set_level("LOUD")

        with self.assertRaises(ValueError):
            self.logger.set_level(6)

        with self.assertRaises(ValueError):
            self.logger.set_level(None)

    def test_level_filter(self):
        """
        Messages below the level are not printed
        """
        self.logger.set_level("WARN")
        with patch("builtins.print") as mock_print:
            self.logger.info("hidden")
            mock_print.assert_not_called()

            self.logger.error("shown", "task-1")
            mock_print.assert_called_once_with("ERROR  | task-1 | shown", flush=True)

    def test_notset(self):
        """
        NOTSET disables logging
        """
        self.logger.set_level("NOTSET")
        with patch("builtins.print") as mock_print:
            self.logger.error("hidden")
            mock_print.assert_not_called()

    def test_json_format(self):
        """
        DYNPOOL_LOG_FORMAT=json prints one JSON object per line
        """
        self.logger.set_level("DEBUG")
        with patch.dict(os.environ, {"DYNPOOL_LOG_FORMAT": "json"}), \
                patch("builtins.print") as mock_print:
            self.logger.info("hello", "task-2")

        line = json.loads(mock_print.call_args[0][0])
        self.assertEqual(line, {"taskId": "task-2", "message": "hello", "level": "INFO"})

    def test_truncation(self):
        """
        Oversized messages keep their head and tail
        """
        self.logger.set_level("DEBUG")
        message = "a" * dp_logger.MAX_MESSAGE_LENGTH + "b" * 100
        with patch("builtins.print") as mock_print:
            self.logger.info(message)

        printed = mock_print.call_args[0][0]
        self.assertIn("...TRUNCATED 100 CHARACTERS...", printed)
        self.assertTrue(printed.endswith("b" * 100))

    def test_source_tag(self):
        """
        Worker processes tag their lines with their source
        """
        self.logger.set_level("DEBUG")
        self.logger.set_source("worker-3")
        with patch("builtins.print") as mock_print:
            self.logger.info("ready")
            self.logger.info("done", "task-4")

        self.assertEqual(mock_print.call_args_list[0][0][0], "INFO   | worker-3 | ready")
        self.assertEqual(mock_print.call_args_list[1][0][0], "INFO   | worker-3 | task-4 | done")

    def test_source_in_json(self):
        """
        The source is a field of JSON lines
        """
        self.logger.set_level("DEBUG")
        self.logger.set_source("worker-1")
        with patch.dict(os.environ, {"DYNPOOL_LOG_FORMAT": "json"}), \
                patch("builtins.print") as mock_print:
            self.logger.warn("slow")

        line = json.loads(mock_print.call_args[0][0])
        self.assertEqual(line["source"], "worker-1")
