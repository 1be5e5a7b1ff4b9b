class CertificateImportError(Exception):
    """Base class for signing-identity import failures."""

    code = "certificate_import_error"
    default_message = "Certificate import failed"

    def __init__(self, message: str = ""):
        super().__init__(message or self.default_message)


class InvalidFile(CertificateImportError):
    code = "invalid_file"
    default_message = "Invalid or inaccessible file"


class InvalidFileFormat(CertificateImportError):
    code = "invalid_file_format"
    default_message = "Invalid file format"


class MissingProfileData(CertificateImportError):
    code = "missing_profile_data"
    default_message = "Missing provisioning profile data"


class MissingCertificateData(CertificateImportError):
    code = "missing_certificate_data"
    default_message = "Missing certificate data"


class InvalidPassword(CertificateImportError):
    code = "invalid_password"
    default_message = "Invalid certificate password"


class MultipleProfilesFound(CertificateImportError):
    code = "multiple_profiles_found"
    default_message = (
        "Multiple .mobileprovision files found. "
        "Please import certificate using the Settings > Certificates section."
    )


class NoProfileFound(CertificateImportError):
    code = "no_profile_found"
    default_message = "No .mobileprovision file found in the same directory"


class ImportFailed(CertificateImportError):
    """The identity store rejected the verified identity."""

    code = "import_failed"

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(f"Failed to import certificate: {detail}")


class IdentityStoreError(Exception):
    """Raised by identity stores; surfaced to callers as ImportFailed."""
