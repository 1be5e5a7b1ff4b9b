"""
Directory catalog tests: listing order, classification and best-effort reads.
"""

import os
import sys
import unittest
from pathlib import Path
from unittest.mock import patch

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from file_ops.catalog import (
    DirectoryCatalog,
    Entry,
    EntryKind,
    classify,
    extension_of,
    format_size,
)
from file_ops.errors import DirectoryUnreadable
from .test_utils import TempDirTestCase


class TestClassification(unittest.TestCase):
    def test_files_are_classified_by_extension(self):
        self.assertIs(classify("Game.IPA", False), EntryKind.ARCHIVE)
        self.assertIs(classify("bundle.tar.zst", False), EntryKind.ARCHIVE)
        self.assertIs(classify("dev.mobileprovision", False), EntryKind.AUTHORIZATION_PROFILE)
        self.assertIs(classify("dev.p12", False), EntryKind.PRIVATE_KEY_CONTAINER)
        self.assertIs(classify("Info.plist", False), EntryKind.PROPERTY_LIST)
        self.assertIs(classify("notes.txt", False), EntryKind.PLAIN_FILE)

    def test_directories_are_classified_by_extension(self):
        self.assertIs(classify("MyApp.app", True), EntryKind.APPLICATION_DIRECTORY)
        self.assertIs(classify("photos", True), EntryKind.DIRECTORY)
        # An archive extension on a directory does not make it an archive
        self.assertIs(classify("weird.zip", True), EntryKind.DIRECTORY)

    def test_extension_of_handles_dot_files(self):
        self.assertEqual(extension_of(".zshrc"), "")
        self.assertEqual(extension_of("README"), "")
        self.assertEqual(extension_of("a.b.TXT"), "txt")

    def test_format_size(self):
        self.assertEqual(format_size(0), "0 bytes")
        self.assertEqual(format_size(512), "512 bytes")
        self.assertEqual(format_size(2048), "2.0 KB")
        self.assertEqual(format_size(5 * 1024 * 1024), "5.0 MB")


class TestEntry(TempDirTestCase):
    def test_identity_is_the_absolute_path(self):
        path = self.make_file("a.txt", "x")
        first = Entry.from_path(path)
        second = Entry(name="a.txt", location=path, byte_size=999)

        self.assertEqual(first, second)
        self.assertEqual(hash(first), hash(second))
        self.assertTrue(first.location.is_absolute())

    def test_directories_report_zero_bytes(self):
        directory = self.make_dir("folder")
        self.make_file("folder/inner.txt", "content")

        entry = Entry.from_path(directory)

        self.assertTrue(entry.is_directory)
        self.assertEqual(entry.byte_size, 0)

    def test_entries_are_immutable(self):
        entry = Entry.from_path(self.make_file("a.txt"))
        with self.assertRaises(Exception):
            entry.name = "b.txt"

    def test_classification_flags(self):
        app = Entry.from_path(self.make_dir("Demo.app"))
        archive = Entry.from_path(self.make_file("demo.zip"))

        self.assertTrue(app.is_application_directory)
        self.assertFalse(app.is_archive)
        self.assertTrue(archive.is_archive)
        self.assertEqual(archive.extension, "zip")


class TestDirectoryCatalog(TempDirTestCase):
    def setUp(self):
        super().setUp()
        self.catalog = DirectoryCatalog()

    def test_listing_is_sorted_case_insensitively(self):
        for name in ("beta.txt", "Alpha.txt", "gamma", "Delta.p12"):
            if "." in name:
                self.make_file(name)
            else:
                self.make_dir(name)

        names = [entry.name for entry in self.catalog.list(self.temp_dir)]

        self.assertEqual(names, ["Alpha.txt", "beta.txt", "Delta.p12", "gamma"])
        self.assertEqual(len(names), len(set(names)))

    def test_missing_directory_is_unreadable(self):
        with self.assertRaises(DirectoryUnreadable):
            self.catalog.list(self.root / "does-not-exist")

    def test_empty_directory_lists_nothing(self):
        self.assertEqual(self.catalog.list(self.temp_dir), [])

    def test_unreadable_children_are_skipped(self):
        self.make_file("good.txt")
        self.make_file("bad.txt")
        original = Entry.from_path.__func__

        def flaky(cls, path):
            if Path(path).name == "bad.txt":
                raise PermissionError(13, "Permission denied")
            return original(cls, path)

        with patch.object(Entry, "from_path", classmethod(flaky)):
            entries = self.catalog.list(self.temp_dir)

        self.assertEqual([e.name for e in entries], ["good.txt"])

    def test_hidden_files_are_listed_unless_excluded(self):
        self.make_file(".hidden")
        self.make_file("visible.txt")

        with_hidden = [e.name for e in self.catalog.list(self.temp_dir)]
        without_hidden = [
            e.name for e in self.catalog.list(self.temp_dir, include_hidden=False)
        ]

        self.assertEqual(with_hidden, [".hidden", "visible.txt"])
        self.assertEqual(without_hidden, ["visible.txt"])

    def test_find_by_kind(self):
        self.make_file("one.mobileprovision")
        self.make_file("two.p12")
        self.make_file("three.zip")

        profiles = self.catalog.find_by_kind(
            self.temp_dir, EntryKind.AUTHORIZATION_PROFILE
        )

        self.assertEqual([e.name for e in profiles], ["one.mobileprovision"])

    def test_listing_returns_fresh_snapshots(self):
        path = self.make_file("grow.txt", "a")
        before = self.catalog.list(self.temp_dir)[0]
        path.write_text("abcdef", encoding="utf-8")
        after = self.catalog.list(self.temp_dir)[0]

        self.assertEqual(before.byte_size, 1)
        self.assertEqual(after.byte_size, 6)


if __name__ == "__main__":
    unittest.main()
