"""
Command-line interface tests: exit codes and filesystem effects.
"""

import os
import sys
import unittest
import zipfile
from unittest.mock import patch

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from cli_files import FilesCLI
from .test_utils import TempDirTestCase, build_tree


@patch.dict(os.environ, {}, clear=True)
class TestFilesCLI(TempDirTestCase):
    def setUp(self):
        super().setUp()
        self.cli = FilesCLI()

    def run_cli(self, *args) -> int:
        return self.cli.run([str(a) for a in args])

    def test_no_command_prints_help(self):
        with patch("sys.stdout"):
            self.assertEqual(self.cli.run([]), 1)

    def test_list(self):
        self.make_file("a.txt")
        self.assertEqual(self.run_cli("list", self.root), 0)
        self.assertEqual(self.run_cli("list", self.root, "--kind", "archive"), 0)

    def test_list_missing_directory(self):
        self.assertEqual(self.run_cli("list", self.root / "missing"), 1)

    def test_copy_and_move(self):
        source = self.make_file("src/a.txt", "a")
        dest = self.make_dir("dst")

        self.assertEqual(self.run_cli("copy", source, dest), 0)
        self.assertEqual(self.run_cli("move", source, dest), 1)
        self.assertTrue(source.exists())
        self.assertEqual((dest / "a.txt").read_text(), "a")

    def test_delete_rename_mkdir_touch(self):
        target = self.make_file("doc.txt", "x")

        self.assertEqual(self.run_cli("rename", target, "doc:v2.txt"), 0)
        self.assertTrue((self.root / "docv2.txt").exists())
        self.assertEqual(self.run_cli("mkdir", self.root, "Folder"), 0)
        self.assertEqual(self.run_cli("mkdir", self.root, "Folder"), 1)
        self.assertEqual(self.run_cli("touch", self.root, "docv2.txt"), 0)
        self.assertTrue((self.root / "docv2 (1).txt").exists())
        self.assertEqual(self.run_cli("delete", self.root / "docv2.txt"), 0)
        self.assertFalse((self.root / "docv2.txt").exists())

    def test_import(self):
        source = self.make_file("outside/a.txt", "a")
        dest = self.make_dir("dst")

        self.assertEqual(
            self.run_cli("import", source, self.root / "outside" / "gone.txt", dest), 1
        )
        self.assertTrue((dest / "a.txt").exists())

    def test_package_and_extract(self):
        app = self.make_dir("Demo.app")
        build_tree(app, {"Info.plist": "<plist/>"})
        out = self.make_dir("out")

        self.assertEqual(self.run_cli("package", app, "--into", out), 0)
        self.assertTrue(zipfile.is_zipfile(out / "Demo.ipa"))

        self.assertEqual(self.run_cli("extract", out / "Demo.ipa"), 0)
        self.assertTrue((out / "Payload" / "Demo.app" / "Info.plist").exists())

    def test_package_rejects_plain_directory(self):
        folder = self.make_dir("plain")
        self.assertEqual(self.run_cli("package", folder), 1)

    def test_import_cert_without_profile(self):
        p12 = self.make_file("certs/dev.p12", "0")
        self.assertEqual(
            self.run_cli("import-cert", p12, "--no-prompt"),
            1,
        )

    def test_keyboard_interrupt(self):
        with patch.object(FilesCLI, "_handle_list", side_effect=KeyboardInterrupt):
            self.assertEqual(self.run_cli("list", self.root), 130)


if __name__ == "__main__":
    unittest.main()
