"""
Settings tests focusing on behavior, not implementation.
"""

import json
import os
import sys
import tempfile
import unittest
from unittest.mock import patch

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from settings import DEFAULTS, Settings, _load_env_file, load_env_files
from .test_utils import BaseTestCase, TempDirTestCase


class TestSettingsBehavior(BaseTestCase):
    """Test settings behavior and configuration outcomes."""

    def write_settings(self, data) -> str:
        with tempfile.NamedTemporaryFile(mode="w", suffix=".json", delete=False) as f:
            json.dump(data, f)
            path = f.name
        self.addCleanup(os.unlink, path)
        return path

    @patch.dict(os.environ, {}, clear=True)
    def test_defaults_without_file(self):
        settings = Settings()

        self.assertEqual(settings.max_workers, 4)
        self.assertEqual(settings.chunk_size, 64 * 1024)
        self.assertEqual(settings.ipa_compression_level, 6)
        self.assertEqual(settings.max_extracted_entries, DEFAULTS["max_extracted_entries"])
        self.assertEqual(settings.log_level, "INFO")
        self.assertEqual(settings.log_file, "")
        self.assertFalse(settings.identity_store_directory.startswith("~"))

    @patch.dict(os.environ, {}, clear=True)
    def test_settings_load_successfully(self):
        path = self.write_settings(
            {"max_workers": 8, "ipa_compression_level": 9, "unknown_key": True}
        )

        settings = Settings(path)

        self.assertEqual(settings.max_workers, 8)
        self.assertEqual(settings.ipa_compression_level, 9)
        self.assertEqual(settings.raw["unknown_key"], True)

    @patch.dict(os.environ, {}, clear=True)
    def test_values_are_clamped(self):
        path = self.write_settings(
            {"max_workers": 0, "chunk_size": 10, "ipa_compression_level": 42}
        )

        settings = Settings(path)

        self.assertEqual(settings.max_workers, 1)
        self.assertEqual(settings.chunk_size, 1024)
        self.assertEqual(settings.ipa_compression_level, 9)

    def test_environment_overrides_file(self):
        path = self.write_settings({"max_workers": 8})

        with patch.dict(
            os.environ,
            {"BUNDLE_FILES_MAX_WORKERS": "2", "BUNDLE_FILES_LOG_LEVEL": "debug"},
            clear=True,
        ):
            settings = Settings(path)

        self.assertEqual(settings.max_workers, 2)
        self.assertEqual(settings.log_level, "debug")

    @patch.dict(os.environ, {"BUNDLE_FILES_CHUNK_SIZE": "lots"}, clear=True)
    def test_invalid_environment_value_is_ignored(self):
        self.assertEqual(Settings().chunk_size, DEFAULTS["chunk_size"])

    def test_missing_file_exits(self):
        with self.assertRaises(SystemExit) as ctx:
            Settings("/definitely/not/here.json")
        self.assertEqual(ctx.exception.code, 1)

    def test_invalid_json_exits(self):
        with tempfile.NamedTemporaryFile(mode="w", suffix=".json", delete=False) as f:
            f.write("{ not json")
            path = f.name
        self.addCleanup(os.unlink, path)

        with self.assertRaises(SystemExit):
            Settings(path)

    def test_non_object_json_exits(self):
        path = self.write_settings([1, 2, 3])
        with self.assertRaises(SystemExit):
            Settings(path)


class TestEnvFile(TempDirTestCase):
    def test_env_file_parsing(self):
        env_path = self.make_file(
            ".env",
            "# comment\n"
            "BUNDLE_FILES_TEST_A=plain\n"
            'BUNDLE_FILES_TEST_B="quoted value"\n'
            "not a pair\n"
            "BUNDLE_FILES_TEST_C = 'single' \n",
        )

        with patch.dict(os.environ, {}, clear=True):
            _load_env_file(str(env_path))
            self.assertEqual(os.environ["BUNDLE_FILES_TEST_A"], "plain")
            self.assertEqual(os.environ["BUNDLE_FILES_TEST_B"], "quoted value")
            self.assertEqual(os.environ["BUNDLE_FILES_TEST_C"], "single")

    def test_first_existing_env_file_wins(self):
        first = self.make_file("one.env", "BUNDLE_FILES_TEST_PICK=first\n")
        second = self.make_file("two.env", "BUNDLE_FILES_TEST_PICK=second\n")

        with patch.dict(os.environ, {}, clear=True):
            load_env_files((str(self.root / "missing.env"), str(first), str(second)))
            self.assertEqual(os.environ["BUNDLE_FILES_TEST_PICK"], "first")


if __name__ == "__main__":
    unittest.main()
