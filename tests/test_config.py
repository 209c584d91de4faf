""" Tests for dynpool.config """

import os
import tempfile
import unittest
from unittest.mock import patch

from dynpool.config import PoolConfig, load_config, read_config_file
from dynpool.error import ConfigurationError


class TestPoolConfig(unittest.TestCase):
    """ Tests for PoolConfig """

    def test_defaults(self):
        """ Defaults describe a small pool """
        config = PoolConfig()
        self.assertEqual(config.min_workers, 1)
        self.assertEqual(config.max_workers, 4)
        self.assertIsNone(config.idle_timeout)
        self.assertEqual(config.start_method, "spawn")
        self.assertEqual(config.scratch_dir, os.path.join(os.getcwd(), ".tmp"))
        self.assertIs(config.validate(), config)

    def test_invalid(self):
        """ validate() rejects impossible pools """
        for kwargs in (
            {"min_workers": -1},
            {"max_workers": 0},
            {"min_workers": 5, "max_workers": 2},
            {"idle_timeout": -1},
            {"start_method": "thread"},
        ):
            with self.subTest(kwargs=kwargs):
                with self.assertRaises(ConfigurationError):
                    PoolConfig(**kwargs).validate()

    def test_to_dict(self):
        """ to_dict() lists every setting """
        settings = PoolConfig(max_workers=2).to_dict()
        self.assertEqual(settings["max_workers"], 2)
        self.assertIn("scratch_dir", settings)


class TestLoadConfig(unittest.TestCase):
    """ Tests for load_config """

    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()  # pylint: disable=consider-using-with
        self.config_file = os.path.join(self.temp_dir.name, "config.toml")
        self.env = patch.dict(os.environ, {"DYNPOOL_CONFIG": self.config_file}, clear=False)
        self.env.start()
        for name in ("DYNPOOL_MIN_WORKERS", "DYNPOOL_MAX_WORKERS", "DYNPOOL_IDLE_TIMEOUT",
                     "DYNPOOL_SHUTDOWN_TIMEOUT", "DYNPOOL_SCRATCH_DIR", "DYNPOOL_START_METHOD"):
            os.environ.pop(name, None)

    def tearDown(self):
        self.env.stop()
        self.temp_dir.cleanup()

    def _write(self, content):
        with open(self.config_file, "w", encoding="UTF-8") as config_file:
            config_file.write(content)

    def test_missing_file(self):
        """ No file means defaults """
        self.assertEqual(read_config_file(), {})
        self.assertEqual(load_config().max_workers, 4)

    def test_profile(self):
        """ The profile table is read """
        self._write("[default]\nmax_workers = 2\n\n[big]\nmax_workers = 16\nidle_timeout = 30\n")
        self.assertEqual(load_config().max_workers, 2)

        config = load_config("big")
        self.assertEqual(config.max_workers, 16)
        self.assertEqual(config.idle_timeout, 30)

    def test_env_override(self):
        """ Environment variables win over the file """
        self._write("[default]\nmax_workers = 2\n")
        with patch.dict(os.environ, {"DYNPOOL_MAX_WORKERS": "8", "DYNPOOL_IDLE_TIMEOUT": "1.5"}):
            config = load_config()
        self.assertEqual(config.max_workers, 8)
        self.assertEqual(config.idle_timeout, 1.5)

    def test_keyword_override(self):
        """ Keyword overrides win over everything, None is ignored """
        with patch.dict(os.environ, {"DYNPOOL_MAX_WORKERS": "8"}):
            config = load_config(max_workers=3, idle_timeout=None)
        self.assertEqual(config.max_workers, 3)
        self.assertIsNone(config.idle_timeout)

    def test_invalid_env(self):
        """ A non numeric override is a configuration error """
        with patch.dict(os.environ, {"DYNPOOL_MAX_WORKERS": "many"}):
            with self.assertRaises(ConfigurationError):
                load_config()

    def test_unknown_setting(self):
        """ Unknown keys are rejected """
        self._write("[default]\nworkers = 2\n")
        with self.assertRaises(ConfigurationError):
            load_config()

        with self.assertRaises(ConfigurationError):
            load_config("other", workers=2)

    def test_invalid_toml(self):
        """ A broken file is a configuration error """
        self._write("[default\nmax_workers = ")
        with self.assertRaises(ConfigurationError):
            read_config_file()
