"""PanelBase Extensions System

Package manager for the three extension kinds: themes, plugins and commands.

Core principles:
1. One engine per kind; install/update/remove are serialized per engine
2. Every path written is confined to the kind's base directory
3. Theme files are verified against SHA-256 checksums before use
4. The state file is the source of truth for what is installed

Components:
- engine: Install/update/remove/list/create orchestration
- kinds: Per-kind parsing, validation and ID rules
- codec: theme.yaml / plugin.yaml / command header codecs
- validator: Manifest validation
- fetcher: HTTP(S) and local source retrieval
- resolver: Install action resolution
- sandbox: Base directory confinement
- checksum: SHA-256 verification
- state: JSON state files
- models: Data models
- exceptions: Custom exceptions
"""

from panelbase.core.extensions.exceptions import (
    ExtensionError,
    FetchError,
    ParseError,
    ValidationError,
    ExtensionExistsError,
    ExtensionConflictError,
    SecurityError,
    ChecksumMismatchError,
    NotFoundError,
    InstallationError,
    StateLoadError,
    StateSaveError,
)
from panelbase.core.extensions.models import (
    ActionType,
    UpdateOutcome,
    UpdateResult,
    Leaf,
    Directory,
    Author,
    ExtensionManifest,
    PluginManifest,
    CommandManifest,
    EndpointConfig,
    InstalledEntry,
)
from panelbase.core.extensions.checksum import ChecksumVerifier
from panelbase.core.extensions.sandbox import DirectorySandbox
from panelbase.core.extensions.fetcher import SourceFetcher, FetchResult
from panelbase.core.extensions.state import StateStore
from panelbase.core.extensions.resolver import ActionResolver
from panelbase.core.extensions.validator import ManifestValidator
from panelbase.core.extensions.kinds import (
    ExtensionKind,
    ThemeKind,
    PluginKind,
    CommandKind,
    get_kind,
)
from panelbase.core.extensions.engine import ExtensionEngine

__all__ = [
    # Exceptions
    "ExtensionError",
    "FetchError",
    "ParseError",
    "ValidationError",
    "ExtensionExistsError",
    "ExtensionConflictError",
    "SecurityError",
    "ChecksumMismatchError",
    "NotFoundError",
    "InstallationError",
    "StateLoadError",
    "StateSaveError",
    # Models
    "ActionType",
    "UpdateOutcome",
    "UpdateResult",
    "Leaf",
    "Directory",
    "Author",
    "ExtensionManifest",
    "PluginManifest",
    "CommandManifest",
    "EndpointConfig",
    "InstalledEntry",
    # Kinds
    "ExtensionKind",
    "ThemeKind",
    "PluginKind",
    "CommandKind",
    "get_kind",
    # Engine
    "ExtensionEngine",
    # Components
    "ChecksumVerifier",
    "DirectorySandbox",
    "SourceFetcher",
    "FetchResult",
    "StateStore",
    "ActionResolver",
    "ManifestValidator",
]
