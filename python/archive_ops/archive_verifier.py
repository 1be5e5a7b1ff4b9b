"""
Integrity verification for generated distributables.

A distributable is only handed to the user after the ZIP container tests
clean and its layout matches ``Payload/<Name>.app/...``.
"""

import zipfile
import zlib
from pathlib import Path
from typing import Any, Dict, Optional

from colored_logger import get_colored_logger

from .path_utils import PAYLOAD_DIRECTORY

logger = get_colored_logger(__name__)


class DistributableVerifier:
    """Verifies a freshly written .ipa before it is published."""

    def __init__(self, sample_size: int = 5):
        self.sample_size = sample_size

    def verify(self, archive_path: Path, app_name: Optional[str] = None) -> bool:
        """Return True when the archive is intact and holds exactly one app bundle."""
        try:
            with zipfile.ZipFile(archive_path, "r") as zipf:
                bad_file = zipf.testzip()
                if bad_file is not None:
                    logger.debug("ZIP integrity check failed on file: %s", bad_file)
                    return False

                names = zipf.namelist()
                if not names:
                    logger.debug("Distributable is empty: %s", archive_path)
                    return False

                bundles = {self._bundle_of(name) for name in names}
                if None in bundles or len(bundles) != 1:
                    logger.debug("Unexpected distributable layout: %s", sorted(
                        b for b in bundles if b
                    ))
                    return False
                if app_name is not None and bundles != {app_name}:
                    logger.debug("Bundle %s missing from %s", app_name, archive_path)
                    return False

                # Decompress the head of a few members
                for filename in names[: self.sample_size]:
                    with zipf.open(filename) as f:
                        f.read(1024)
                return True
        except (OSError, zipfile.BadZipFile, zlib.error, EOFError) as e:
            logger.debug("Distributable verification failed: %s", e)
            return False

    @staticmethod
    def _bundle_of(name: str) -> Optional[str]:
        """"Payload/My.app/Info.plist" -> "My.app"; anything else -> None."""
        parts = name.split("/")
        if len(parts) < 2 or parts[0] != PAYLOAD_DIRECTORY:
            return None
        if not parts[1].endswith(".app"):
            return None
        return parts[1]

    def get_archive_info(self, archive_path: Path) -> Dict[str, Any]:
        """Summary numbers for logging."""
        with zipfile.ZipFile(archive_path, "r") as zipf:
            infos = zipf.infolist()
            compressed = sum(f.compress_size for f in infos)
            uncompressed = sum(f.file_size for f in infos)
        return {
            "file_count": len(infos),
            "compressed_size": compressed,
            "uncompressed_size": uncompressed,
            "compression_ratio": (
                (1 - compressed / uncompressed) * 100 if uncompressed > 0 else 0
            ),
        }
