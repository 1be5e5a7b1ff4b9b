"""
Authorization (provisioning) profile parsing.

A profile is a CMS-signed blob whose payload is an XML property list.
The signature is not verified here; the plist is located by its XML
markers and parsed with plistlib.
"""

import plistlib
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union
from xml.parsers.expat import ExpatError

from colored_logger import get_colored_logger

from .errors import InvalidFile, InvalidFileFormat, MissingProfileData

logger = get_colored_logger(__name__)

_PLIST_START = b"<?xml"
_PLIST_END = b"</plist>"


def extract_plist(data: bytes) -> Optional[bytes]:
    """Return the embedded XML plist, or None when the markers are missing."""
    start = data.find(_PLIST_START)
    if start < 0:
        return None
    end = data.find(_PLIST_END, start)
    if end < 0:
        return None
    return data[start : end + len(_PLIST_END)]


@dataclass(frozen=True)
class AuthorizationProfile:
    path: Path
    name: str
    uuid: str
    team_identifier: str
    expiration_date: Optional[datetime]
    developer_certificates: Tuple[bytes, ...]

    @classmethod
    def load(cls, path: Union[str, Path]) -> "AuthorizationProfile":
        """
        Read a .mobileprovision file.

        Raises:
            InvalidFile: The file cannot be read.
            InvalidFileFormat: No parseable property list inside.
            MissingProfileData: The profile lists no developer certificates.
        """
        path = Path(path)
        try:
            data = path.read_bytes()
        except OSError as e:
            logger.debug("Cannot read profile %s: %s", path, e)
            raise InvalidFile() from e

        payload = extract_plist(data)
        if payload is None:
            raise InvalidFileFormat()
        try:
            info = plistlib.loads(payload)
        except (plistlib.InvalidFileException, ExpatError, ValueError) as e:
            logger.debug("Cannot parse profile plist in %s: %s", path, e)
            raise InvalidFileFormat() from e
        if not isinstance(info, dict):
            raise InvalidFileFormat()

        return cls.from_dict(path, info)

    @classmethod
    def from_dict(cls, path: Path, info: Dict[str, Any]) -> "AuthorizationProfile":
        certificates = info.get("DeveloperCertificates") or []
        certificates = tuple(bytes(c) for c in certificates if isinstance(c, bytes))
        if not certificates:
            raise MissingProfileData()

        teams = info.get("TeamIdentifier") or []
        if isinstance(teams, str):
            teams = [teams]

        return cls(
            path=path,
            name=str(info.get("Name", path.stem)),
            uuid=str(info.get("UUID", "")),
            team_identifier=str(teams[0]) if teams else "",
            expiration_date=info.get("ExpirationDate"),
            developer_certificates=certificates,
        )

    def contains_certificate(self, certificate_der: bytes) -> bool:
        return certificate_der in self.developer_certificates

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expiration_date is None:
            return False
        expiration = self.expiration_date
        if expiration.tzinfo is None:
            expiration = expiration.replace(tzinfo=timezone.utc)
        return expiration <= (now or datetime.now(timezone.utc))
