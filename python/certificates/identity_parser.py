"""
PKCS#12 private-key container parsing.

``open`` never raises for a bad password or a damaged container; it
returns the ``WRONG_PASSWORD`` or ``MALFORMED`` outcome instead, so the
caller can ask for another password without treating it as a fault.
"""

import hashlib
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, List, Optional, Protocol, Union

from cryptography import x509
from cryptography.hazmat.primitives.serialization import Encoding, pkcs12
from cryptography.x509.oid import NameOID

from colored_logger import get_colored_logger

logger = get_colored_logger(__name__)


class ParseOutcome(Enum):
    WRONG_PASSWORD = "wrong_password"
    MALFORMED = "malformed"


WRONG_PASSWORD = ParseOutcome.WRONG_PASSWORD
MALFORMED = ParseOutcome.MALFORMED


@dataclass(frozen=True)
class SigningIdentity:
    """A private key with its certificate, as opened from a container."""

    source_path: Path
    common_name: str
    certificate_der: bytes
    private_key: Any = None
    certificate: Optional[x509.Certificate] = None

    @property
    def fingerprint(self) -> str:
        return hashlib.sha1(self.certificate_der).hexdigest().upper()


class IdentityParser(Protocol):
    def open(
        self, container_path: Union[str, Path], password: str
    ) -> Union[SigningIdentity, ParseOutcome]:
        ...


def _common_name(certificate: x509.Certificate) -> str:
    attributes = certificate.subject.get_attributes_for_oid(NameOID.COMMON_NAME)
    if attributes:
        return str(attributes[0].value)
    return certificate.subject.rfc4514_string()


class Pkcs12IdentityParser:
    """Opens .p12 containers with the cryptography library."""

    def open(
        self, container_path: Union[str, Path], password: str
    ) -> Union[SigningIdentity, ParseOutcome]:
        """Raises OSError only when the file itself cannot be read."""
        path = Path(container_path)
        data = path.read_bytes()

        # PKCS#12 is a DER SEQUENCE
        if not data or data[0] != 0x30:
            logger.debug("%s is not a DER container", path.name)
            return MALFORMED

        candidates: List[Optional[bytes]] = [password.encode("utf-8")]
        if not password:
            candidates.append(None)

        for candidate in candidates:
            try:
                key, certificate, _ = pkcs12.load_key_and_certificates(data, candidate)
            except ValueError as e:
                logger.debug("Could not open %s: %s", path.name, e)
                continue

            if key is None or certificate is None:
                logger.debug("%s has no key/certificate pair", path.name)
                return MALFORMED
            return SigningIdentity(
                source_path=path,
                common_name=_common_name(certificate),
                certificate_der=certificate.public_bytes(Encoding.DER),
                private_key=key,
                certificate=certificate,
            )

        return WRONG_PASSWORD
