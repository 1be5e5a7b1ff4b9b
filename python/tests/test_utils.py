"""
Shared test utilities and fixtures for bundle-files tests.

This module provides base classes and small file-tree builders used
across the test modules.
"""

import logging
import os
import plistlib
import shutil
import sys
import tempfile
import unittest
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, Optional


class BaseTestCase(unittest.TestCase):
    """Base test case that handles common setup and teardown operations."""

    def setUp(self):
        """Set up common test fixtures."""
        # Disable logging during tests to reduce noise
        logging.disable(logging.CRITICAL)

        # Add parent directory to path for module imports
        parent_dir = os.path.join(os.path.dirname(__file__), "..")
        if parent_dir not in sys.path:
            sys.path.insert(0, parent_dir)

    def tearDown(self):
        """Clean up after tests."""
        # Re-enable logging
        logging.disable(logging.NOTSET)


class TempDirTestCase(BaseTestCase):
    """Base test case that provides temporary directory management."""

    def setUp(self):
        """Set up test fixtures including temporary directory."""
        super().setUp()
        self.temp_dir = tempfile.mkdtemp()
        self.root = Path(self.temp_dir)

    def tearDown(self):
        """Clean up temporary directory and other fixtures."""
        super().tearDown()
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def make_file(self, relative: str, content: str = "") -> Path:
        path = self.root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        return path

    def make_dir(self, relative: str) -> Path:
        path = self.root / relative
        path.mkdir(parents=True, exist_ok=True)
        return path


def build_tree(root: Path, files: Dict[str, str]) -> None:
    """Create ``files`` (relative path -> text) under ``root``."""
    for relative, content in files.items():
        path = Path(root) / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")


def write_profile(
    path: Path,
    certificates: Iterable[bytes] = (b"developer-cert",),
    name: str = "Test Profile",
    uuid: str = "11111111-2222-3333-4444-555555555555",
    team: str = "TEAM123456",
    expiration: Optional[datetime] = None,
) -> Path:
    """Write a fake .mobileprovision: a binary envelope around an XML plist."""
    info = {
        "Name": name,
        "UUID": uuid,
        "TeamIdentifier": [team],
        "ExpirationDate": expiration or datetime(2030, 1, 1, 12, 0, 0),
        "DeveloperCertificates": list(certificates),
    }
    payload = plistlib.dumps(info, fmt=plistlib.FMT_XML)
    Path(path).write_bytes(b"\x30\x82\x10\x00signed-envelope" + payload + b"\x00trailer")
    return Path(path)
