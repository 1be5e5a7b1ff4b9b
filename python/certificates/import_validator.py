"""
Certificate Import Validator.

Pairs a .p12 private-key container with the single .mobileprovision
profile beside it, checks the password, and hands the verified identity
to a signing-identity store.

State machine::

    IDLE -> LOCATING_PROFILE -> VALIDATING_PASSWORD
         -> SUCCEEDED | AWAITING_PASSWORD | FAILED

A wrong password is an expected outcome: the result carries
``AWAITING_PASSWORD`` and the caller resubmits with
``request.with_password(...)``. Nothing is retried automatically.
"""

import dataclasses
import os
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Optional, Tuple, Union

from colored_logger import get_colored_logger
from core.dispatch import CompletionDispatcher, InlineDispatcher
from file_ops.catalog import (
    AUTHORIZATION_PROFILE_EXTENSIONS,
    PRIVATE_KEY_CONTAINER_EXTENSIONS,
    extension_of,
)

from .errors import (
    CertificateImportError,
    IdentityStoreError,
    ImportFailed,
    InvalidFile,
    InvalidFileFormat,
    InvalidPassword,
    MissingCertificateData,
    MultipleProfilesFound,
    NoProfileFound,
)
from .identity_parser import (
    MALFORMED,
    WRONG_PASSWORD,
    IdentityParser,
    Pkcs12IdentityParser,
    SigningIdentity,
)
from .identity_store import DirectoryIdentityStore, SigningIdentityStore
from .profile import AuthorizationProfile

logger = get_colored_logger(__name__)

PathLike = Union[str, Path]

SUCCESS_MESSAGE = "Certificate imported successfully"


class ImportState(Enum):
    IDLE = "idle"
    LOCATING_PROFILE = "locating_profile"
    VALIDATING_PASSWORD = "validating_password"
    SUCCEEDED = "succeeded"
    AWAITING_PASSWORD = "awaiting_password"
    FAILED = "failed"


@dataclass
class CertificateImportRequest:
    private_key_container_path: Path
    authorization_profile_path: Path
    password: str = ""
    display_name: str = ""
    consumed: bool = field(default=False, init=False, compare=False)

    def with_password(self, password: str) -> "CertificateImportRequest":
        """Fresh request for the same files, used after AWAITING_PASSWORD."""
        return dataclasses.replace(self, password=password)


@dataclass(frozen=True)
class ImportResult:
    state: ImportState
    display_name: str
    error: Optional[CertificateImportError] = None
    location: Optional[Path] = None

    @property
    def succeeded(self) -> bool:
        return self.state is ImportState.SUCCEEDED

    @property
    def needs_password(self) -> bool:
        return self.state is ImportState.AWAITING_PASSWORD

    @property
    def message(self) -> str:
        if self.error is not None:
            return str(self.error)
        return SUCCESS_MESSAGE


ImportCallback = Callable[[ImportResult], None]


def default_display_name(container_path: PathLike) -> str:
    """"Dev Cert.p12" -> "Dev Cert"."""
    return Path(container_path).name.replace(".p12", "")


class CertificateImportValidator:
    def __init__(
        self,
        parser: Optional[IdentityParser] = None,
        store: Optional[SigningIdentityStore] = None,
        dispatcher: Optional[CompletionDispatcher] = None,
        max_workers: int = 2,
    ):
        self.parser = parser or Pkcs12IdentityParser()
        self.store = store or DirectoryIdentityStore()
        self.dispatcher = dispatcher or InlineDispatcher()
        self._executor = ThreadPoolExecutor(
            max_workers=max(1, max_workers), thread_name_prefix="CertImport"
        )
        self._lock = threading.Lock()
        self._state = ImportState.IDLE

    @classmethod
    def from_settings(cls, settings, dispatcher: Optional[CompletionDispatcher] = None):
        return cls(
            store=DirectoryIdentityStore(settings.identity_store_directory),
            dispatcher=dispatcher,
        )

    @property
    def state(self) -> ImportState:
        with self._lock:
            return self._state

    def _set_state(self, state: ImportState) -> None:
        with self._lock:
            self._state = state
        logger.trace("Certificate import state: %s", state.value)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    # ------------------------------------------------------------------
    # Steps

    def locate_companion_profile(self, private_key_container_path: PathLike) -> Path:
        """
        Find the one .mobileprovision file next to the container.

        Raises:
            NoProfileFound: No profile in the directory.
            MultipleProfilesFound: More than one; the pairing would be a guess.
            ImportFailed: The directory cannot be listed.
        """
        directory = Path(private_key_container_path).parent
        try:
            names = os.listdir(directory)
        except OSError as e:
            raise ImportFailed(e.strerror or str(e)) from e

        profiles = sorted(
            directory / name
            for name in names
            if extension_of(name) in AUTHORIZATION_PROFILE_EXTENSIONS
        )
        if not profiles:
            raise NoProfileFound()
        if len(profiles) > 1:
            logger.warning(
                "Found %d profiles next to %s", len(profiles), directory
            )
            raise MultipleProfilesFound()
        return profiles[0]

    def _open_verified(
        self, container_path: PathLike, profile_path: PathLike, password: str
    ) -> Optional[Tuple[SigningIdentity, AuthorizationProfile]]:
        profile = AuthorizationProfile.load(profile_path)
        try:
            outcome = self.parser.open(container_path, password)
        except OSError as e:
            logger.debug("Cannot read %s: %s", container_path, e)
            raise InvalidFile() from e

        if outcome is WRONG_PASSWORD:
            return None
        if outcome is MALFORMED:
            raise InvalidFileFormat()
        if not profile.contains_certificate(outcome.certificate_der):
            raise MissingCertificateData()
        return outcome, profile

    def validate_password(
        self, private_key_container_path: PathLike, profile_path: PathLike, password: str
    ) -> bool:
        """True when the password opens the container and its certificate is in the profile."""
        return (
            self._open_verified(private_key_container_path, profile_path, password)
            is not None
        )

    def _install(
        self,
        identity: SigningIdentity,
        profile: AuthorizationProfile,
        display_name: str,
    ) -> Path:
        try:
            return self.store.install(identity, profile, display_name)
        except (IdentityStoreError, OSError) as e:
            raise ImportFailed(str(e)) from e

    def import_identity(
        self,
        private_key_container_path: PathLike,
        profile_path: PathLike,
        password: str,
        display_name: str,
    ) -> Path:
        """Install the identity; returns the store location or raises CertificateImportError."""
        verified = self._open_verified(private_key_container_path, profile_path, password)
        if verified is None:
            raise InvalidPassword()
        identity, profile = verified
        return self._install(identity, profile, display_name)

    # ------------------------------------------------------------------
    # Request flow

    def prepare(
        self,
        private_key_container_path: PathLike,
        password: str = "",
        display_name: Optional[str] = None,
    ) -> CertificateImportRequest:
        """
        Build a request for ``private_key_container_path``.

        Raises synchronously when the container is not a readable .p12 or
        its directory does not hold exactly one profile.
        """
        container = Path(private_key_container_path)
        self._set_state(ImportState.LOCATING_PROFILE)
        try:
            if extension_of(container.name) not in PRIVATE_KEY_CONTAINER_EXTENSIONS:
                raise InvalidFile()
            if not container.is_file():
                raise InvalidFile()
            profile_path = self.locate_companion_profile(container)
        except CertificateImportError as e:
            logger.warning("Cannot import %s: %s", container.name, e)
            self._set_state(ImportState.FAILED)
            raise

        return CertificateImportRequest(
            private_key_container_path=container,
            authorization_profile_path=profile_path,
            password=password,
            display_name=display_name or default_display_name(container),
        )

    def submit(
        self,
        request: CertificateImportRequest,
        on_complete: Optional[ImportCallback] = None,
    ) -> "Future[ImportResult]":
        """Validate the password and install off-thread; the result is delivered once."""
        with self._lock:
            if request.consumed:
                raise ValueError("Import request was already submitted")
            request.consumed = True

        future: "Future[ImportResult]" = Future()

        def run() -> None:
            self._set_state(ImportState.VALIDATING_PASSWORD)
            name = request.display_name
            try:
                verified = self._open_verified(
                    request.private_key_container_path,
                    request.authorization_profile_path,
                    request.password,
                )
                if verified is None:
                    result = ImportResult(
                        ImportState.AWAITING_PASSWORD, name, error=InvalidPassword()
                    )
                else:
                    location = self._install(verified[0], verified[1], name)
                    result = ImportResult(ImportState.SUCCEEDED, name, location=location)
            except CertificateImportError as e:
                result = ImportResult(ImportState.FAILED, name, error=e)
            except Exception as e:
                logger.exception("Unexpected error importing %s", name)
                self._set_state(ImportState.FAILED)
                future.set_exception(e)
                return

            self._set_state(result.state)
            if result.succeeded:
                logger.success("%s: %s", SUCCESS_MESSAGE, name)
            elif result.needs_password:
                logger.warning("Wrong password for %s", name)
            else:
                logger.failure("Import of %s failed: %s", name, result.message)

            if on_complete is not None:
                self.dispatcher.post(on_complete, result)
            future.set_result(result)

        self._executor.submit(run)
        return future
