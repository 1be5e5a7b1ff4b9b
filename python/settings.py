import json
import logging
import os
import sys
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

ENV_PREFIX = "BUNDLE_FILES_"

DEFAULTS: Dict[str, Any] = {
    "max_workers": 4,
    "chunk_size": 64 * 1024,
    "ipa_compression_level": 6,
    "max_extracted_bytes": 20 * 1024 * 1024 * 1024,
    "max_extracted_entries": 200000,
    "min_free_space_margin_bytes": 64 * 1024 * 1024,
    "identity_store_directory": "~/.bundle-files/certificates",
    "log_level": "INFO",
    "log_file": "",
}


def _load_env_file(env_path: str) -> None:
    """
    Simple .env file parser that doesn't require external dependencies.
    Loads key=value pairs from .env file into os.environ.
    """
    if not os.path.isfile(env_path):
        return

    try:
        with open(env_path, "r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()

                # Skip empty lines and comments
                if not line or line.startswith("#") or "=" not in line:
                    continue

                key, value = line.split("=", 1)  # Split on first = only
                key = key.strip()
                value = value.strip()

                if (value.startswith('"') and value.endswith('"')) or (
                    value.startswith("'") and value.endswith("'")
                ):
                    value = value[1:-1]

                if key:
                    os.environ[key] = value

        logger.debug(".env file loaded from %s", env_path)

    except (OSError, UnicodeDecodeError) as e:
        logger.warning("Failed to load .env file: %s", e)


def load_env_files(paths=(".env", "../.env")) -> None:
    """Load the first .env file found among ``paths``."""
    for env_path in paths:
        if os.path.isfile(env_path):
            _load_env_file(env_path)
            break


def _coerce(value: str, default: Any) -> Any:
    """Convert an environment string to the type of the default value."""
    if isinstance(default, bool):
        return value.strip().lower() in ("1", "true", "yes", "on")
    if isinstance(default, int):
        return int(value)
    return value


class Settings:
    """
    Runtime configuration for the file, archive and certificate pipelines.

    Values come from a JSON file (when given), then ``BUNDLE_FILES_*``
    environment variables override them. Keys missing from both keep
    the defaults in ``DEFAULTS``.
    """

    def __init__(self, settings_file: Optional[str] = None) -> None:
        """
        :param settings_file: Path to a JSON settings file. When given, the
            file must exist and parse; otherwise the program exits.
        """
        self.raw: Dict[str, Any] = {}

        if settings_file is not None:
            if not os.path.isfile(settings_file):
                logger.critical(
                    "Settings file not found at '%s'. Exiting...", settings_file
                )
                sys.exit(1)

            loaded = self._load_json(settings_file)
            if not isinstance(loaded, dict):
                logger.critical(
                    "Settings file '%s' is empty or invalid. Exiting...", settings_file
                )
                sys.exit(1)
            self.raw = loaded

        values = dict(DEFAULTS)
        values.update({k: v for k, v in self.raw.items() if k in DEFAULTS})
        values.update(self._env_overrides())

        self.max_workers: int = max(1, min(int(values["max_workers"]), 32))
        self.chunk_size: int = max(1024, int(values["chunk_size"]))
        self.ipa_compression_level: int = min(
            9, max(0, int(values["ipa_compression_level"]))
        )
        self.max_extracted_bytes: int = int(values["max_extracted_bytes"])
        self.max_extracted_entries: int = int(values["max_extracted_entries"])
        self.min_free_space_margin_bytes: int = int(
            values["min_free_space_margin_bytes"]
        )
        self.identity_store_directory: str = os.path.expanduser(
            str(values["identity_store_directory"])
        )
        self.log_level: str = str(values["log_level"])
        self.log_file: str = str(values["log_file"] or "")

        if settings_file is not None:
            logger.info("Settings loaded from '%s'.", settings_file)

    @staticmethod
    def _env_overrides() -> Dict[str, Any]:
        overrides: Dict[str, Any] = {}
        for key, default in DEFAULTS.items():
            env_value = os.environ.get(ENV_PREFIX + key.upper())
            if env_value is None:
                continue
            try:
                overrides[key] = _coerce(env_value, default)
            except ValueError:
                logger.warning(
                    "Ignoring invalid value for %s%s: %r",
                    ENV_PREFIX,
                    key.upper(),
                    env_value,
                )
        return overrides

    def _load_json(self, path: str) -> Any:
        """
        Loads JSON from the given file path.

        :param path: The path to the JSON file.
        :return: The parsed JSON if valid, otherwise None.
        """
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.error("Error loading JSON file '%s': %s", path, e)
            return None
