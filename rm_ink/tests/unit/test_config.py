"""Unit tests for ink_config.py."""

import sys
import unittest
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from ink_config import DEFAULT_PORT, ServerSettings


class TestServerSettings(unittest.TestCase):
    """Tests for ServerSettings.from_env."""

    def test_defaults_from_empty_environment(self):
        settings = ServerSettings.from_env({})
        self.assertEqual(settings.port, DEFAULT_PORT)
        self.assertEqual(settings.log_level, 'INFO')
        self.assertIsNone(settings.log_file)
        self.assertFalse(settings.has_credentials)

    def test_reads_all_variables(self):
        settings = ServerSettings.from_env({
            'PORT': '9000',
            'RMAPI_HWR_APPLICATIONKEY': 'app',
            'RMAPI_HWR_HMAC': 'secret',
            'LOG_LEVEL': 'DEBUG',
            'LOG_FILE': '/tmp/ink.log',
        })
        self.assertEqual(settings.port, 9000)
        self.assertEqual(settings.application_key, 'app')
        self.assertEqual(settings.hmac_key, 'secret')
        self.assertEqual(settings.log_level, 'DEBUG')
        self.assertEqual(settings.log_file, '/tmp/ink.log')
        self.assertTrue(settings.has_credentials)

    def test_malformed_port_falls_back(self):
        self.assertEqual(ServerSettings.from_env({'PORT': 'eighty'}).port, DEFAULT_PORT)

    def test_one_key_is_not_enough(self):
        settings = ServerSettings.from_env({'RMAPI_HWR_APPLICATIONKEY': 'app'})
        self.assertFalse(settings.has_credentials)

    def test_settings_are_immutable(self):
        settings = ServerSettings()
        with self.assertRaises(AttributeError):
            settings.port = 1


if __name__ == '__main__':
    unittest.main()
