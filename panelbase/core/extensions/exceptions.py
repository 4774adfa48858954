"""Exception classes for the Extension system"""

from typing import Any, Optional


class ExtensionError(Exception):
    """Base exception for all extension-related errors"""
    pass


class FetchError(ExtensionError):
    """Raised when a manifest or asset cannot be retrieved from its source"""
    pass


class ParseError(ExtensionError):
    """Raised when a manifest is not well-formed"""
    pass


class ValidationError(ExtensionError):
    """Raised when a manifest violates the extension data model"""
    pass


class ExtensionExistsError(ExtensionError):
    """Raised when the exact source and version is already installed and force is off"""

    def __init__(self, message: str, local_id: Optional[str] = None):
        super().__init__(message)
        self.local_id = local_id


class ExtensionConflictError(ExtensionError):
    """Raised when an on-disk identity is claimed by a different extension"""
    pass


class SecurityError(ExtensionError):
    """Raised when a path would escape the extension base directory"""
    pass


class ChecksumMismatchError(ExtensionError):
    """Raised when a downloaded file does not match its expected SHA-256"""

    def __init__(self, path: str, expected: str, actual: str):
        super().__init__(
            f"checksum mismatch for '{path}': expected {expected}, got {actual}"
        )
        self.path = path
        self.expected = expected
        self.actual = actual


class NotFoundError(ExtensionError):
    """Raised when a local ID is not present in the state store"""
    pass


class InstallationError(ExtensionError):
    """Raised when extension files cannot be written or removed"""
    pass


class StateLoadError(ExtensionError):
    """Raised when a state file exists but cannot be read"""
    pass


class StateSaveError(ExtensionError):
    """Raised when files were installed but the state file could not be written.

    The manifest that ended up on disk is attached so callers can still
    report what was installed.
    """

    def __init__(self, message: str, manifest: Any = None):
        super().__init__(message)
        self.manifest = manifest
