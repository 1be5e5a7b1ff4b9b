from .errors import (
    CertificateImportError,
    InvalidFile,
    InvalidFileFormat,
    MissingProfileData,
    MissingCertificateData,
    InvalidPassword,
    MultipleProfilesFound,
    NoProfileFound,
    ImportFailed,
    IdentityStoreError,
)
from .profile import AuthorizationProfile
from .identity_parser import (
    MALFORMED,
    WRONG_PASSWORD,
    ParseOutcome,
    Pkcs12IdentityParser,
    SigningIdentity,
)
from .identity_store import DirectoryIdentityStore, SigningIdentityStore
from .import_validator import (
    CertificateImportRequest,
    CertificateImportValidator,
    ImportResult,
    ImportState,
    default_display_name,
)

__all__ = [
    # Errors
    "CertificateImportError",
    "InvalidFile",
    "InvalidFileFormat",
    "MissingProfileData",
    "MissingCertificateData",
    "InvalidPassword",
    "MultipleProfilesFound",
    "NoProfileFound",
    "ImportFailed",
    "IdentityStoreError",
    # Collaborators
    "AuthorizationProfile",
    "MALFORMED",
    "WRONG_PASSWORD",
    "ParseOutcome",
    "Pkcs12IdentityParser",
    "SigningIdentity",
    "DirectoryIdentityStore",
    "SigningIdentityStore",
    # Validator
    "CertificateImportRequest",
    "CertificateImportValidator",
    "ImportResult",
    "ImportState",
    "default_display_name",
]
