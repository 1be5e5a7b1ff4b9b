"""
Path utilities for archive jobs: staging directories, temp outputs and
the names of generated distributables.
"""

import os
import shutil
import tempfile
from pathlib import Path

from colored_logger import get_colored_logger

logger = get_colored_logger(__name__)

DISTRIBUTABLE_EXTENSION = "ipa"
PAYLOAD_DIRECTORY = "Payload"


def distributable_name(app_directory_name: str) -> str:
    """"MyApp.app" -> "MyApp.ipa"."""
    stem = app_directory_name
    if stem.lower().endswith(".app"):
        stem = stem[: -len(".app")]
    return f"{stem or 'app'}.{DISTRIBUTABLE_EXTENSION}"


def payload_root(app_directory_name: str) -> str:
    """Archive prefix every packaged file lives under."""
    return f"{PAYLOAD_DIRECTORY}/{app_directory_name}"


class TempFileManager:
    """Manages temporary outputs and their cleanup."""

    @staticmethod
    def generate_temp_path(base_path: Path, suffix: str = "tmp") -> Path:
        """Hidden sibling of ``base_path`` unique to this process."""
        base_path = Path(base_path)
        return base_path.parent / f".{base_path.name}.{suffix}.{os.getpid()}"

    @staticmethod
    def create_staging_directory(parent: Path) -> Path:
        """Hidden scratch directory on the same volume as ``parent``."""
        return Path(tempfile.mkdtemp(prefix=".extract-", suffix=".tmp", dir=parent))

    @staticmethod
    def cleanup_temp_file(temp_path: Path) -> None:
        """Clean up temporary file safely."""
        if os.path.lexists(temp_path):
            try:
                os.remove(temp_path)
            except OSError as e:
                logger.debug("Failed to cleanup temp file %s: %s", temp_path, e)

    @staticmethod
    def cleanup_directory(directory: Path) -> None:
        if os.path.lexists(directory):
            shutil.rmtree(directory, ignore_errors=True)

    @staticmethod
    def atomic_move(src_path: Path, dest_path: Path) -> None:
        """
        Rename within one volume without replacing anything at ``dest_path``.

        Files and symlinks are hard-linked into place and then unlinked;
        directories are renamed onto an empty directory created here.
        Raises FileExistsError when ``dest_path`` is already taken.
        """
        src_path, dest_path = Path(src_path), Path(dest_path)
        try:
            if src_path.is_dir() and not src_path.is_symlink():
                os.mkdir(dest_path)
                try:
                    os.rename(src_path, dest_path)
                except OSError:
                    os.rmdir(dest_path)
                    raise
            else:
                os.link(src_path, dest_path, follow_symlinks=False)
                os.remove(src_path)
        except OSError as e:
            logger.error("Failed to move %s to %s: %s", src_path, dest_path, e)
            raise
