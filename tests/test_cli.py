"""Tests for the command-line interface."""

import json
import socket
import tempfile
import unittest
from pathlib import Path

import click
from click.testing import CliRunner

from filecourier.cli import cli, format_size, resolve_server
from filecourier.config import Config


class CliTest(unittest.TestCase):

    def setUp(self):
        self.runner = CliRunner()
        self.tmp = tempfile.TemporaryDirectory()
        self.dir = Path(self.tmp.name)

    def tearDown(self):
        self.tmp.cleanup()

    def test_help_lists_commands(self):
        result = self.runner.invoke(cli, ['--help'])
        self.assertEqual(result.exit_code, 0)
        self.assertIn('send', result.output)
        self.assertIn('recv', result.output)

    def test_send_failure_exits_nonzero(self):
        source = self.dir / "a.txt"
        source.write_text("hello")
        with socket.socket() as s:
            s.bind(('127.0.0.1', 0))
            port = s.getsockname()[1]

        result = self.runner.invoke(cli, ['send', '127.0.0.1', str(port), str(source)])

        self.assertEqual(result.exit_code, 1)
        self.assertIn('Send failed', result.output)

    def test_send_missing_file(self):
        result = self.runner.invoke(cli, ['send', '127.0.0.1', '9000', str(self.dir / "x")])
        self.assertEqual(result.exit_code, 2)

    def test_example_config_is_loadable(self):
        result = self.runner.invoke(cli, ['example-config'])
        self.assertEqual(result.exit_code, 0)

        path = self.dir / "config.json"
        path.write_text(result.output)
        self.assertEqual(json.loads(result.output), Config().to_dict())
        self.assertEqual(Config.from_file(path).to_dict(), Config().to_dict())

    def test_resolve_server(self):
        self.assertEqual(resolve_server('10.0.0.5'), '10.0.0.5')
        self.assertEqual(resolve_server('ws://example.com:9000/upload'), 'example.com')
        with self.assertRaises(click.BadParameter):
            resolve_server('ws://')

    def test_format_size(self):
        self.assertEqual(format_size(512), "512.0 B")
        self.assertEqual(format_size(2048), "2.0 KB")


if __name__ == '__main__':
    unittest.main()
