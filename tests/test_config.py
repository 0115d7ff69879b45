"""Tests for configuration loading."""

import os
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from filecourier.config import Config, load_config


class ConfigTest(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.dir = Path(self.tmp.name)

    def tearDown(self):
        self.tmp.cleanup()

    def test_defaults(self):
        config = Config()
        self.assertEqual(config.chunk_size, 4096)
        self.assertEqual(config.events_port, 3030)
        self.assertEqual(config.events_capacity, 16)
        self.assertEqual(config.session_history, 100)
        self.assertIsNone(config.temp_dir)

    def test_from_env(self):
        env = {
            'FILECOURIER_CHUNK_SIZE': '8192',
            'FILECOURIER_EVENTS_PORT': '4040',
            'FILECOURIER_TEMP_DIR': str(self.dir),
            'FILECOURIER_LOG_LEVEL': 'DEBUG',
            'FILECOURIER_SESSION_HISTORY': '10',
        }
        with mock.patch.dict(os.environ, env):
            config = Config.from_env()

        self.assertEqual(config.chunk_size, 8192)
        self.assertEqual(config.events_port, 4040)
        self.assertEqual(config.temp_dir, self.dir)
        self.assertEqual(config.log_level, 'DEBUG')
        self.assertEqual(config.session_history, 10)

    def test_save_and_load_file(self):
        path = self.dir / "config.json"
        config = Config(chunk_size=1024, events_port=5050, temp_dir=self.dir)
        config.save(path)

        loaded = Config.from_file(path)
        self.assertEqual(loaded.to_dict(), config.to_dict())

    def test_missing_file_gives_defaults(self):
        self.assertEqual(Config.from_file(self.dir / "nope.json").to_dict(),
                         Config().to_dict())

    def test_env_overrides_file(self):
        path = self.dir / "config.json"
        Config(chunk_size=1024, events_port=5050).save(path)

        with mock.patch.dict(os.environ, {'FILECOURIER_EVENTS_PORT': '6060'}):
            config = load_config(path)

        self.assertEqual(config.chunk_size, 1024)
        self.assertEqual(config.events_port, 6060)


if __name__ == '__main__':
    unittest.main()
