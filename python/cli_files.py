#!/usr/bin/env python3
"""
Bundle Files CLI Tool

Command-line front end for the file catalog, file operations, archive
jobs and signing-identity import.

Usage:
    python3 cli_files.py list ~/Documents
    python3 cli_files.py copy notes.txt photos/ ~/Backup
    python3 cli_files.py extract ~/Downloads/MyApp.ipa
    python3 cli_files.py package ~/Build/MyApp.app --into ~/Desktop
    python3 cli_files.py import-cert ~/Certs/dev.p12 --password secret
"""

import argparse
import getpass
import logging
import sys
from pathlib import Path
from typing import List, Optional

from colored_logger import get_colored_logger, level_from_name, setup_colored_logging
from settings import Settings, load_env_files

from archive_ops import ArchiveError, ArchiveService, JobResult
from certificates import CertificateImportError, CertificateImportValidator
from file_ops import (
    BatchResult,
    DirectoryCatalog,
    Entry,
    EntryKind,
    FileOperationEngine,
    FileOperationError,
    summarize,
)

logger = get_colored_logger(__name__)

MAX_PASSWORD_ATTEMPTS = 3


def _entries(paths: List[str]) -> List[Entry]:
    return [Entry.from_path(p) for p in paths]


def _progress_logger(label: str):
    """Progress callback that logs every 10%."""
    last = [-1]

    def on_progress(fraction: float) -> None:
        step = int(fraction * 10)
        if step > last[0]:
            last[0] = step
            logger.progress("%s: %.0f%%", label, fraction * 100)

    return on_progress


class FilesCLI:
    """Command-line interface for file, archive and certificate operations."""

    def __init__(self):
        self.parser = self._create_parser()
        self.settings: Optional[Settings] = None

    def _create_parser(self) -> argparse.ArgumentParser:
        parser = argparse.ArgumentParser(
            description="Browse and manage files, archives and signing identities",
            formatter_class=argparse.RawDescriptionHelpFormatter,
            epilog="""
Examples:
  # List a directory, hidden files excluded
  python3 cli_files.py list ~/Documents --no-hidden

  # Copy never overwrites: existing names get a " (n)" suffix
  python3 cli_files.py copy report.txt ~/Backup

  # Unpack an archive next to itself
  python3 cli_files.py extract ~/Downloads/assets.tar.gz

  # Build MyApp.ipa from an application bundle
  python3 cli_files.py package ~/Build/MyApp.app

  # Import a signing identity; the .mobileprovision must sit beside it
  python3 cli_files.py import-cert ~/Certs/dev.p12
            """,
        )
        parser.add_argument("--settings", help="Path to a JSON settings file")
        parser.add_argument(
            "--verbose", "-v", action="store_true", help="Enable debug logging"
        )

        subparsers = parser.add_subparsers(dest="command", help="Available commands")

        list_parser = subparsers.add_parser("list", help="List a directory")
        list_parser.add_argument("directory", help="Directory to list")
        list_parser.add_argument(
            "--no-hidden", action="store_true", help="Leave out dot-files"
        )
        list_parser.add_argument(
            "--kind",
            choices=[kind.value for kind in EntryKind],
            help="Only show entries of this kind",
        )

        for name, help_text in (
            ("copy", "Copy items into a directory"),
            ("move", "Move items into a directory"),
            ("import", "Import external files into a directory"),
        ):
            sub = subparsers.add_parser(name, help=help_text)
            sub.add_argument("sources", nargs="+", help="Items to process")
            sub.add_argument("destination", help="Destination directory")

        delete_parser = subparsers.add_parser("delete", help="Delete items")
        delete_parser.add_argument("paths", nargs="+", help="Items to delete")

        rename_parser = subparsers.add_parser("rename", help="Rename an item")
        rename_parser.add_argument("path", help="Item to rename")
        rename_parser.add_argument("new_name", help="New name")

        mkdir_parser = subparsers.add_parser("mkdir", help="Create a folder")
        mkdir_parser.add_argument("directory", help="Parent directory")
        mkdir_parser.add_argument("name", help="Folder name")

        touch_parser = subparsers.add_parser("touch", help="Create an empty file")
        touch_parser.add_argument("directory", help="Parent directory")
        touch_parser.add_argument("name", help="File name")

        extract_parser = subparsers.add_parser("extract", help="Extract an archive")
        extract_parser.add_argument("archive", help="Archive to extract")
        extract_parser.add_argument(
            "--into", help="Output directory (default: the archive's directory)"
        )

        package_parser = subparsers.add_parser(
            "package", help="Package an application bundle as .ipa"
        )
        package_parser.add_argument("application", help="The .app directory")
        package_parser.add_argument(
            "--into", help="Output directory (default: the bundle's directory)"
        )

        cert_parser = subparsers.add_parser(
            "import-cert", help="Import a .p12 signing identity"
        )
        cert_parser.add_argument("container", help="The .p12 file")
        cert_parser.add_argument("--password", default="", help="Container password")
        cert_parser.add_argument("--name", help="Display name (default: file name)")
        cert_parser.add_argument(
            "--no-prompt",
            action="store_true",
            help="Fail instead of asking again after a wrong password",
        )

        return parser

    def run(self, args: Optional[list] = None) -> int:
        """Run the CLI with the given arguments."""
        parsed_args = self.parser.parse_args(args)

        if not parsed_args.command:
            self.parser.print_help()
            return 1

        self.settings = Settings(parsed_args.settings)
        level = (
            logging.DEBUG
            if parsed_args.verbose
            else level_from_name(self.settings.log_level)
        )
        if self.settings.log_file:
            setup_colored_logging(level=level, log_file=self.settings.log_file)
        else:
            logging.getLogger().setLevel(level)

        handlers = {
            "list": self._handle_list,
            "copy": self._handle_copy,
            "move": self._handle_move,
            "import": self._handle_import,
            "delete": self._handle_delete,
            "rename": self._handle_rename,
            "mkdir": self._handle_mkdir,
            "touch": self._handle_touch,
            "extract": self._handle_extract,
            "package": self._handle_package,
            "import-cert": self._handle_import_cert,
        }

        try:
            handler = handlers.get(parsed_args.command)
            if handler is None:
                logger.error("Unknown command: %s", parsed_args.command)
                return 1
            return handler(parsed_args)

        except KeyboardInterrupt:
            logger.info("Operation cancelled by user")
            return 130
        except (FileOperationError, ArchiveError, CertificateImportError) as e:
            logger.error("%s", e)
            return 1
        except OSError as e:
            logger.error("Error: %s", e)
            logger.debug("Full error details:", exc_info=True)
            return 1

    def _engine(self) -> FileOperationEngine:
        return FileOperationEngine(
            max_workers=self.settings.max_workers, chunk_size=self.settings.chunk_size
        )

    @staticmethod
    def _report(result: BatchResult, verb: str) -> int:
        for name, message in result.failures:
            logger.error("  %s: %s", name, message)
        logger.info(summarize(result, verb))
        return 0 if result.succeeded else 1

    # ------------------------------------------------------------------
    # File commands

    def _handle_list(self, args) -> int:
        catalog = DirectoryCatalog()
        if args.kind:
            entries = catalog.find_by_kind(args.directory, EntryKind(args.kind))
        else:
            entries = catalog.list(args.directory, include_hidden=not args.no_hidden)

        for entry in entries:
            suffix = "/" if entry.is_directory else ""
            logger.info(
                "%-40s %-22s %s",
                entry.name + suffix,
                entry.kind.value,
                "" if entry.is_directory else entry.formatted_size,
            )
        logger.info("%d items", len(entries))
        return 0

    def _handle_copy(self, args) -> int:
        with self._engine() as engine:
            result = engine.copy(_entries(args.sources), args.destination).result()
        return self._report(result, "copy")

    def _handle_move(self, args) -> int:
        with self._engine() as engine:
            result = engine.move(_entries(args.sources), args.destination).result()
        return self._report(result, "move")

    def _handle_import(self, args) -> int:
        with self._engine() as engine:
            result = engine.import_external(args.sources, args.destination).result()
        return self._report(result, "import")

    def _handle_delete(self, args) -> int:
        with self._engine() as engine:
            result = engine.delete_many(_entries(args.paths)).result()
        return self._report(result, "delete")

    def _handle_rename(self, args) -> int:
        with self._engine() as engine:
            target = engine.rename(Entry.from_path(args.path), args.new_name)
        logger.success("Renamed to %s", target.name)
        return 0

    def _handle_mkdir(self, args) -> int:
        with self._engine() as engine:
            target = engine.create_folder(args.directory, args.name)
        logger.success("Created %s", target)
        return 0

    def _handle_touch(self, args) -> int:
        with self._engine() as engine:
            target = engine.create_file(args.directory, args.name)
        logger.success("Created %s", target)
        return 0

    # ------------------------------------------------------------------
    # Archive commands

    @staticmethod
    def _report_job(result: JobResult, verb: str) -> int:
        if result.succeeded:
            if result.output_name:
                logger.success("%s: %s", verb, result.output_name)
            else:
                logger.success("%s finished", verb)
            return 0
        logger.error("%s failed: %s", verb, result.reason)
        return 1

    def _handle_extract(self, args) -> int:
        archive = Entry.from_path(args.archive)
        into = Path(args.into) if args.into else archive.location.parent

        with ArchiveService.from_settings(self.settings) as service:
            future = service.extract(
                archive, into, on_progress=_progress_logger("Extracting")
            )
            result = future.result()
        return self._report_job(result, "Extracted")

    def _handle_package(self, args) -> int:
        application = Entry.from_path(args.application)
        into = Path(args.into) if args.into else application.location.parent

        with ArchiveService.from_settings(self.settings) as service:
            future = service.package_as_distributable(
                application, into, on_progress=_progress_logger("Packaging")
            )
            result = future.result()
        return self._report_job(result, "Packaged")

    # ------------------------------------------------------------------
    # Certificates

    def _handle_import_cert(self, args) -> int:
        validator = CertificateImportValidator.from_settings(self.settings)
        try:
            request = validator.prepare(args.container, args.password, args.name)
            attempts = 1
            while True:
                result = validator.submit(request).result()
                if not result.needs_password:
                    break
                if args.no_prompt or not sys.stdin.isatty():
                    break
                if attempts >= MAX_PASSWORD_ATTEMPTS:
                    break
                attempts += 1
                logger.warning("%s", result.message)
                request = request.with_password(
                    getpass.getpass(f"Password for {request.display_name}: ")
                )
        finally:
            validator.shutdown()

        if result.succeeded:
            logger.success("%s (%s)", result.message, result.display_name)
            return 0
        logger.error("%s", result.message)
        return 1


def main():
    """Main entry point for the CLI."""
    load_env_files()
    setup_colored_logging(level=logging.INFO)

    cli = FilesCLI()
    return cli.run()


if __name__ == "__main__":
    sys.exit(main())
