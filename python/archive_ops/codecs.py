"""
Archive codecs: format-specific readers and writers.

Readers stream an archive into a directory one entry at a time and
report, after each entry, how far through the archive they are.
Writers build an archive from (path, archive name) pairs and report
the bytes they consumed so callers can show progress.
"""

import bz2
import gzip
import lzma
import os
import stat
import tarfile
import zipfile
import zlib
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Iterator, List, Optional, Protocol, Tuple

import zstandard as zstd

from colored_logger import get_colored_logger
from core.cancellation import CancellationToken

from .archive_security import ExtractionValidator
from .errors import ArchiveCorrupted, UnsupportedArchiveFormat

logger = get_colored_logger(__name__)

DEFAULT_CHUNK_SIZE = 64 * 1024
LARGE_FILE_THRESHOLD = 10 * 1024 * 1024  # 10MB, streamed instead of zf.write

ZIP_EXTENSIONS = (".zip", ".ipa", ".tipa")
TAR_EXTENSIONS = (".tar", ".tgz", ".tbz2", ".txz", ".gz", ".bz2", ".xz")
ZSTD_EXTENSIONS = (".zst",)

_STREAM_OPENERS = {".gz": gzip.open, ".bz2": bz2.open, ".xz": lzma.open}


@dataclass(frozen=True)
class ExtractedEntry:
    """One unpacked archive member."""

    name: str
    bytes_written: int
    progress: float


class ArchiveReader(Protocol):
    def uncompressed_size(self, archive_path: Path) -> Optional[int]:
        """Total unpacked size if the format declares it up front."""
        ...

    def extract_entries(
        self,
        archive_path: Path,
        destination: Path,
        validator: ExtractionValidator,
        cancel_token: Optional[CancellationToken] = None,
    ) -> Iterator[ExtractedEntry]:
        ...


class ArchiveWriter(Protocol):
    def create_archive(
        self,
        files: List[Tuple[Path, str]],
        output_path: Path,
        cancel_token: Optional[CancellationToken] = None,
    ) -> Iterator[int]:
        ...


def _check_cancel(cancel_token: Optional[CancellationToken]) -> None:
    if cancel_token is not None:
        cancel_token.raise_if_cancelled()


def _apply_mode(path: Path, mode: int) -> None:
    permissions = mode & 0o777
    if permissions:
        os.chmod(path, permissions)


def _copy_stream(
    source: BinaryIO,
    target: Path,
    validator: ExtractionValidator,
    chunk_size: int,
    cancel_token: Optional[CancellationToken],
) -> int:
    written = 0
    target.parent.mkdir(parents=True, exist_ok=True)
    with open(target, "wb") as dst:
        while True:
            _check_cancel(cancel_token)
            chunk = source.read(chunk_size)
            if not chunk:
                break
            validator.account_bytes(len(chunk))
            dst.write(chunk)
            written += len(chunk)
    return written


def _make_symlink(
    link_path: Path, link_target: str, validator: ExtractionValidator
) -> None:
    validator.check_symlink(link_path, link_target)
    link_path.parent.mkdir(parents=True, exist_ok=True)
    os.symlink(link_target, link_path)


class ZipArchiveCodec:
    """Reads and writes ZIP containers (.zip, .ipa, .tipa)."""

    def __init__(self, compression_level: int = 6, chunk_size: int = DEFAULT_CHUNK_SIZE):
        self.compression_level = compression_level
        self.chunk_size = max(1024, chunk_size)

    def uncompressed_size(self, archive_path: Path) -> Optional[int]:
        try:
            with zipfile.ZipFile(archive_path, "r") as zipf:
                return sum(info.file_size for info in zipf.infolist())
        except (OSError, zipfile.BadZipFile) as e:
            raise ArchiveCorrupted(f"Cannot read archive: {e}") from e

    def extract_entries(
        self,
        archive_path: Path,
        destination: Path,
        validator: ExtractionValidator,
        cancel_token: Optional[CancellationToken] = None,
    ) -> Iterator[ExtractedEntry]:
        try:
            with zipfile.ZipFile(archive_path, "r") as zipf:
                infos = zipf.infolist()
                total_bytes = sum(info.file_size for info in infos)
                validator.check_declared_totals(total_bytes, len(infos))

                done_bytes = 0
                for index, info in enumerate(infos):
                    _check_cancel(cancel_token)
                    validator.account_entry()
                    written = self._extract_member(
                        zipf, info, validator, cancel_token
                    )
                    done_bytes += info.file_size
                    if total_bytes:
                        progress = done_bytes / total_bytes
                    else:
                        progress = (index + 1) / len(infos)
                    yield ExtractedEntry(info.filename, written, progress)
        except (
            zipfile.BadZipFile,
            zlib.error,
            lzma.LZMAError,
            EOFError,
            NotImplementedError,
            ValueError,
        ) as e:
            # ValueError covers undecodable symlink targets
            raise ArchiveCorrupted(f"Cannot read archive: {e}") from e
        except RuntimeError as e:
            # zipfile raises RuntimeError for encrypted members
            raise ArchiveCorrupted(f"Cannot read archive: {e}") from e

    def _extract_member(
        self,
        zipf: zipfile.ZipFile,
        info: zipfile.ZipInfo,
        validator: ExtractionValidator,
        cancel_token: Optional[CancellationToken],
    ) -> int:
        target = validator.resolve_member(info.filename)
        mode = info.external_attr >> 16

        if info.is_dir():
            target.mkdir(parents=True, exist_ok=True)
            _apply_mode(target, mode)
            return 0

        if stat.S_ISLNK(mode):
            link_target = zipf.read(info).decode("utf-8")
            _make_symlink(target, link_target, validator)
            return 0

        with zipf.open(info, "r") as src:
            written = _copy_stream(
                src, target, validator, self.chunk_size, cancel_token
            )
        _apply_mode(target, mode)
        logger.trace("Extracted %s (%d bytes)", info.filename, written)
        return written

    def create_archive(
        self,
        files: List[Tuple[Path, str]],
        output_path: Path,
        cancel_token: Optional[CancellationToken] = None,
    ) -> Iterator[int]:
        """Write ``files`` into a new ZIP at ``output_path``, yielding bytes consumed."""
        with zipfile.ZipFile(
            output_path,
            "w",
            zipfile.ZIP_DEFLATED,
            compresslevel=self.compression_level,
            allowZip64=True,  # Support large archives
        ) as zipf:
            for file_path, archive_name in files:
                _check_cancel(cancel_token)
                if file_path.is_symlink():
                    yield self._add_symlink(zipf, file_path, archive_name)
                elif file_path.is_dir():
                    zipf.write(file_path, archive_name)
                    yield 0
                elif file_path.stat().st_size > LARGE_FILE_THRESHOLD:
                    yield from self._add_large_file(
                        zipf, file_path, archive_name, cancel_token
                    )
                else:
                    zipf.write(file_path, archive_name)
                    yield file_path.stat().st_size

    def _add_symlink(
        self, zipf: zipfile.ZipFile, file_path: Path, archive_name: str
    ) -> int:
        info = zipfile.ZipInfo(archive_name)
        info.create_system = 3  # Unix, so external_attr carries the mode
        info.external_attr = (stat.S_IFLNK | 0o755) << 16
        link_target = os.readlink(file_path)
        zipf.writestr(info, link_target)
        return 0

    def _add_large_file(
        self,
        zipf: zipfile.ZipFile,
        file_path: Path,
        archive_name: str,
        cancel_token: Optional[CancellationToken],
    ) -> Iterator[int]:
        """Stream a large file in chunks so progress moves while it is compressed."""
        info = zipfile.ZipInfo.from_file(file_path, archive_name)
        info.compress_type = zipfile.ZIP_DEFLATED
        with open(file_path, "rb") as src_file:
            with zipf.open(info, "w") as dst_file:
                while True:
                    _check_cancel(cancel_token)
                    chunk = src_file.read(self.chunk_size)
                    if not chunk:
                        break
                    dst_file.write(chunk)
                    yield len(chunk)


class _TarStreamExtractor:
    """Shared member loop for streamed tar input."""

    def __init__(self, chunk_size: int):
        self.chunk_size = chunk_size

    def extract(
        self,
        tar: tarfile.TarFile,
        raw: BinaryIO,
        raw_size: int,
        validator: ExtractionValidator,
        cancel_token: Optional[CancellationToken],
    ) -> Iterator[ExtractedEntry]:
        for member in tar:
            _check_cancel(cancel_token)
            validator.account_entry()
            written = self._extract_member(tar, member, validator, cancel_token)
            progress = min(1.0, raw.tell() / raw_size) if raw_size else 0.0
            yield ExtractedEntry(member.name, written, progress)

    def _extract_member(
        self,
        tar: tarfile.TarFile,
        member: tarfile.TarInfo,
        validator: ExtractionValidator,
        cancel_token: Optional[CancellationToken],
    ) -> int:
        target = validator.resolve_member(member.name)

        if member.isdir():
            target.mkdir(parents=True, exist_ok=True)
            _apply_mode(target, member.mode)
            return 0

        if member.issym():
            _make_symlink(target, member.linkname, validator)
            return 0

        if member.islnk():
            # Hard links refer to a member extracted earlier in the stream
            source = validator.resolve_member(member.linkname)
            with open(source, "rb") as src:
                written = _copy_stream(
                    src, target, validator, self.chunk_size, cancel_token
                )
            _apply_mode(target, member.mode)
            return written

        if not member.isfile():
            logger.debug("Skipping special tar member: %s", member.name)
            return 0

        src = tar.extractfile(member)
        if src is None:
            raise ArchiveCorrupted(f"Cannot read member {member.name}")
        with src:
            written = _copy_stream(
                src, target, validator, self.chunk_size, cancel_token
            )
        _apply_mode(target, member.mode)
        return written


def _single_stream_name(archive_path: Path) -> str:
    """"notes.txt.gz" -> "notes.txt"."""
    name = archive_path.name
    stem, _, _ = name.rpartition(".")
    return stem or name


class TarArchiveCodec:
    """Reads tar archives (plain, gzip, bzip2, xz) and single compressed files."""

    def __init__(self, chunk_size: int = DEFAULT_CHUNK_SIZE):
        self.chunk_size = max(1024, chunk_size)
        self._tar = _TarStreamExtractor(self.chunk_size)

    def uncompressed_size(self, archive_path: Path) -> Optional[int]:
        return None

    def extract_entries(
        self,
        archive_path: Path,
        destination: Path,
        validator: ExtractionValidator,
        cancel_token: Optional[CancellationToken] = None,
    ) -> Iterator[ExtractedEntry]:
        archive_path = Path(archive_path)
        raw_size = archive_path.stat().st_size
        try:
            if tarfile.is_tarfile(archive_path):
                with open(archive_path, "rb") as raw:
                    with tarfile.open(fileobj=raw, mode="r|*") as tar:
                        yield from self._tar.extract(
                            tar, raw, raw_size, validator, cancel_token
                        )
                return

            opener = _STREAM_OPENERS.get(archive_path.suffix.lower())
            if opener is None:
                raise ArchiveCorrupted(f"{archive_path.name} is not a tar archive")

            name = _single_stream_name(archive_path)
            validator.account_entry()
            target = validator.resolve_member(name)
            with opener(archive_path, "rb") as src:
                written = _copy_stream(
                    src, target, validator, self.chunk_size, cancel_token
                )
            yield ExtractedEntry(name, written, 1.0)
        except (tarfile.TarError, zlib.error, EOFError, lzma.LZMAError) as e:
            raise ArchiveCorrupted(f"Cannot read archive: {e}") from e
        except OSError as e:
            # gzip/bz2 report bad data as OSError subclasses
            if isinstance(e, gzip.BadGzipFile) or "Invalid data stream" in str(e):
                raise ArchiveCorrupted(f"Cannot read archive: {e}") from e
            raise


def _looks_like_tar(header: bytes) -> bool:
    return len(header) >= 262 and header[257:262] == b"ustar"


class ZstdArchiveCodec:
    """Reads zstandard-compressed tar archives and single .zst files."""

    def __init__(self, chunk_size: int = DEFAULT_CHUNK_SIZE):
        self.chunk_size = max(1024, chunk_size)
        self._tar = _TarStreamExtractor(self.chunk_size)

    def uncompressed_size(self, archive_path: Path) -> Optional[int]:
        return None

    def _is_tar_stream(self, archive_path: Path) -> bool:
        dctx = zstd.ZstdDecompressor()
        with open(archive_path, "rb") as f:
            with dctx.stream_reader(f) as reader:
                header = b""
                while len(header) < 512:
                    chunk = reader.read(512 - len(header))
                    if not chunk:
                        break
                    header += chunk
                return _looks_like_tar(header)

    def extract_entries(
        self,
        archive_path: Path,
        destination: Path,
        validator: ExtractionValidator,
        cancel_token: Optional[CancellationToken] = None,
    ) -> Iterator[ExtractedEntry]:
        archive_path = Path(archive_path)
        raw_size = archive_path.stat().st_size
        try:
            is_tar = self._is_tar_stream(archive_path)
            dctx = zstd.ZstdDecompressor()
            with open(archive_path, "rb") as raw:
                with dctx.stream_reader(raw) as decompressor:
                    if is_tar:
                        with tarfile.open(fileobj=decompressor, mode="r|") as tar:
                            yield from self._tar.extract(
                                tar, raw, raw_size, validator, cancel_token
                            )
                        return

                    name = _single_stream_name(archive_path)
                    validator.account_entry()
                    target = validator.resolve_member(name)
                    written = _copy_stream(
                        decompressor, target, validator, self.chunk_size, cancel_token
                    )
                    yield ExtractedEntry(name, written, 1.0)
        except (zstd.ZstdError, tarfile.TarError, EOFError) as e:
            raise ArchiveCorrupted(f"Cannot read archive: {e}") from e


class ArchiveCodecFactory:
    """Chooses a codec from the archive's file name."""

    @staticmethod
    def for_path(
        archive_path: Path,
        compression_level: int = 6,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> ArchiveReader:
        name = Path(archive_path).name.lower()
        if name.endswith(ZIP_EXTENSIONS):
            return ZipArchiveCodec(compression_level, chunk_size)
        if name.endswith(ZSTD_EXTENSIONS):
            return ZstdArchiveCodec(chunk_size)
        if name.endswith(TAR_EXTENSIONS):
            return TarArchiveCodec(chunk_size)
        raise UnsupportedArchiveFormat(f"Unsupported archive format: {name}")

    @staticmethod
    def distributable_writer(
        compression_level: int = 6, chunk_size: int = DEFAULT_CHUNK_SIZE
    ) -> ArchiveWriter:
        return ZipArchiveCodec(compression_level, chunk_size)

    @staticmethod
    def get_supported_extensions() -> List[str]:
        return [ext.lstrip(".") for ext in ZIP_EXTENSIONS + TAR_EXTENSIONS + ZSTD_EXTENSIONS]
