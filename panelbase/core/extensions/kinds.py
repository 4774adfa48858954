"""Extension kinds: the per-kind differences the engine is generic over.

A kind decides how manifests are parsed and validated, how the local ID is
obtained (generated or derived from the manifest), what is written next to
the installed files, and how a state entry is built.
"""

import logging
from pathlib import Path
from typing import Dict, List, Optional

from panelbase.core.extensions.codec import CommandCodec, PluginCodec, ThemeCodec
from panelbase.core.extensions.exceptions import ExtensionError, ParseError, ValidationError
from panelbase.core.extensions.fetcher import resolve_url
from panelbase.core.extensions.models import (
    Author,
    CommandManifest,
    Directory,
    ExtensionManifest,
    InstalledEntry,
    Leaf,
    PluginManifest,
)
from panelbase.core.extensions.validator import ManifestValidator
from panelbase.core.utils.idgen import PLUGIN_PREFIX, THEME_PREFIX

logger = logging.getLogger(__name__)


def resolve_structure_urls(node: Directory, base_url: Optional[str]) -> None:
    """Rewrite relative leaf URLs in place against ``base_url``."""
    if base_url is None:
        return
    for child in node.children.values():
        if isinstance(child, Leaf):
            child.url = resolve_url(base_url, child.url)
        else:
            resolve_structure_urls(child, base_url)


class ExtensionKind:
    """Capability set for one kind of extension"""

    plural: str = ""
    singular: str = ""
    id_prefix: Optional[str] = None
    id_field: str = "id"
    remote_manifest: str = ""
    local_manifest: Optional[str] = None
    skip_on_create: frozenset = frozenset()
    # Whether state entries carry installed_at / last_updated
    tracks_timestamps: bool = False
    # Installed as a single file instead of a directory tree
    single_file: bool = False
    supports_create: bool = False

    def parse(self, data: bytes, source: str) -> ExtensionManifest:
        raise NotImplementedError

    def validate(self, manifest: ExtensionManifest) -> None:
        raise NotImplementedError

    def resolve_urls(self, manifest: ExtensionManifest, base_url: Optional[str]) -> None:
        resolve_structure_urls(manifest.structure, base_url)

    def derive_key(self, manifest: ExtensionManifest) -> Optional[str]:
        """Local ID fixed by the manifest, or None when it is generated"""
        return None

    def normalize_id(self, local_id: str, state: Dict[str, InstalledEntry]) -> str:
        return local_id

    def check_update_identity(
        self,
        local_id: str,
        entry: InstalledEntry,
        manifest: ExtensionManifest
    ) -> None:
        """Reject a fetched manifest that does not describe the installed extension"""
        return None

    def dump_local(self, manifest: ExtensionManifest) -> str:
        raise NotImplementedError

    def load_local(self, path: Path) -> ExtensionManifest:
        raise NotImplementedError

    def dump_manifest(self, manifest: ExtensionManifest) -> str:
        """Serialize the shareable manifest written by create"""
        raise NotImplementedError

    def new_manifest(
        self,
        name: str,
        authors: List[str],
        version: str,
        description: str,
        source_link: str,
        structure: Directory,
        **extra
    ) -> ExtensionManifest:
        raise ExtensionError(f"creating {self.singular} manifests is not supported")

    def make_entry(
        self,
        local_id: str,
        manifest: ExtensionManifest,
        source_link: Optional[str] = None
    ) -> InstalledEntry:
        entry = InstalledEntry(
            id=local_id,
            name=manifest.name,
            version=manifest.version,
            source_link=source_link if source_link is not None else manifest.source_link,
        )
        if self.tracks_timestamps:
            entry.installed_at = manifest.installed_at
            entry.last_updated = manifest.last_updated_at
        return entry


def _read_local(path: Path) -> bytes:
    try:
        return path.read_bytes()
    except OSError as e:
        raise ParseError(f"failed to read local manifest '{path}': {e}") from e


class ThemeKind(ExtensionKind):
    """Themes: directory trees of checksummed static files"""

    plural = "themes"
    singular = "theme"
    id_prefix = THEME_PREFIX
    id_field = "thm_id"
    remote_manifest = "theme.yaml"
    local_manifest = "theme.json"
    skip_on_create = frozenset({"theme.yaml", "theme.yml"})
    tracks_timestamps = True
    supports_create = True

    def __init__(self):
        self.codec = ThemeCodec()

    def parse(self, data: bytes, source: str) -> ExtensionManifest:
        return self.codec.parse(data, source)

    def validate(self, manifest: ExtensionManifest) -> None:
        ManifestValidator.validate_theme(manifest)

    def dump_local(self, manifest: ExtensionManifest) -> str:
        return self.codec.dump_json(manifest)

    def load_local(self, path: Path) -> ExtensionManifest:
        return self.codec.parse_json(_read_local(path), str(path))

    def dump_manifest(self, manifest: ExtensionManifest) -> str:
        return self.codec.dump_yaml(manifest)

    def new_manifest(self, name, authors, version, description, source_link, structure, **extra):
        return ExtensionManifest(
            name=name,
            authors=[Author(name=a) for a in authors],
            version=version,
            description=description,
            source_link=source_link,
            structure=structure,
        )


class PluginKind(ExtensionKind):
    """Plugins: directory trees plus API version, endpoints and dependencies"""

    plural = "plugins"
    singular = "plugin"
    id_prefix = PLUGIN_PREFIX
    id_field = "plg_id"
    remote_manifest = "plugin.yaml"
    local_manifest = "plugin.yaml"
    skip_on_create = frozenset({"plugin.yaml", "plugin.yml"})
    supports_create = True

    def __init__(self):
        self.codec = PluginCodec()

    def parse(self, data: bytes, source: str) -> PluginManifest:
        return self.codec.parse(data, source)

    def validate(self, manifest: PluginManifest) -> None:
        ManifestValidator.validate_plugin(manifest)

    def dump_local(self, manifest: PluginManifest) -> str:
        return self.codec.dump_yaml(manifest)

    def load_local(self, path: Path) -> PluginManifest:
        return self.codec.parse(_read_local(path), str(path))

    def dump_manifest(self, manifest: PluginManifest) -> str:
        return self.codec.dump_yaml(manifest)

    def new_manifest(self, name, authors, version, description, source_link, structure, **extra):
        return PluginManifest(
            name=name,
            authors=[Author(name=a) for a in authors],
            version=version,
            description=description,
            source_link=source_link,
            structure=structure,
            api_version=extra.get("api_version") or "",
        )


class CommandKind(ExtensionKind):
    """Commands: single shell scripts keyed by ``<command>.sh``"""

    plural = "commands"
    singular = "command"
    id_field = "filename"
    single_file = True

    SCRIPT_SUFFIX = ".sh"

    def __init__(self):
        self.codec = CommandCodec()

    def parse(self, data: bytes, source: str) -> CommandManifest:
        return self.codec.parse(data, source)

    def validate(self, manifest: CommandManifest) -> None:
        ManifestValidator.validate_command(manifest)

    def resolve_urls(self, manifest, base_url):
        return None

    def derive_key(self, manifest: CommandManifest) -> str:
        return manifest.filename

    def normalize_id(self, local_id: str, state: Dict[str, InstalledEntry]) -> str:
        if local_id not in state and f"{local_id}{self.SCRIPT_SUFFIX}" in state:
            return f"{local_id}{self.SCRIPT_SUFFIX}"
        return local_id

    def check_update_identity(self, local_id, entry, manifest: CommandManifest) -> None:
        if manifest.filename != local_id:
            raise ValidationError(
                f"metadata mismatch: latest script defines command '{manifest.command}', "
                f"expected '{entry.name}'"
            )

    def load_local(self, path: Path) -> CommandManifest:
        return self.codec.parse(_read_local(path), str(path))


KINDS = {
    ThemeKind.plural: ThemeKind,
    PluginKind.plural: PluginKind,
    CommandKind.plural: CommandKind,
}


def get_kind(name: str) -> ExtensionKind:
    """Instantiate the kind registered under its plural name"""
    try:
        return KINDS[name]()
    except KeyError:
        raise ValueError(f"Unknown extension kind: {name}. Allowed: {sorted(KINDS)}")
