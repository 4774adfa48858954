"""
Extension Engine - install, update, remove and list extensions of one kind

One engine instance manages one extension kind (themes, plugins or
commands). It orchestrates the fetcher, codec, validator, action resolver,
sandbox, checksum verifier and state store, and is the single place that
narrates what happens through the log.

Consistency rules:
- Install/Update/Remove run end-to-end under one lock per engine.
- A failed *new* install removes what it created. A failed overwrite is
  left as is and reported; it needs manual intervention.
- Remove deletes the state entry before the files.
- A state file that cannot be saved after the files are in place raises
  StateSaveError carrying the installed manifest.
"""

import copy
import logging
import os
import posixpath
import shutil
import threading
from pathlib import Path
from typing import Dict, List, Optional, Tuple
from urllib.parse import quote, urljoin, urlparse, urlunparse

from panelbase.core.extensions.checksum import ChecksumVerifier
from panelbase.core.extensions.exceptions import (
    ChecksumMismatchError,
    ExtensionConflictError,
    ExtensionError,
    ExtensionExistsError,
    InstallationError,
    NotFoundError,
    StateLoadError,
    StateSaveError,
    ValidationError,
)
from panelbase.core.extensions.fetcher import FetchResult, SourceFetcher
from panelbase.core.extensions.kinds import ExtensionKind, get_kind
from panelbase.core.extensions.models import (
    ActionType,
    Directory,
    ExtensionManifest,
    InstalledEntry,
    Leaf,
    UpdateOutcome,
    UpdateResult,
    count_files,
)
from panelbase.core.extensions.resolver import ActionResolver
from panelbase.core.extensions.sandbox import DirectorySandbox
from panelbase.core.extensions.state import StateStore
from panelbase.core.extensions.validator import ManifestValidator
from panelbase.core.storage import paths
from panelbase.core.utils.clock import utc_now_iso
from panelbase.core.utils.idgen import IDGenerator
from panelbase.core.utils.versions import compare_versions

logger = logging.getLogger(__name__)

SCRIPT_MODE = 0o755


def normalize_base_url(source_link: str) -> str:
    """Turn a source link into a base for resolving relative asset paths.

    An empty path becomes "/". A path that does not end in "/" and whose
    last segment has no "." is treated as a directory and gets a trailing "/".
    """
    parsed = urlparse(source_link)
    path = parsed.path
    if not path:
        path = "/"
    elif not path.endswith("/") and "." not in posixpath.basename(path):
        path += "/"
    return urlunparse(parsed._replace(path=path))


class ExtensionEngine:
    """Package manager for one extension kind"""

    def __init__(
        self,
        kind: ExtensionKind,
        base_dir: Path,
        state_store: StateStore,
        id_generator: Optional[IDGenerator] = None,
        fetcher: Optional[SourceFetcher] = None,
        resolver: Optional[ActionResolver] = None
    ):
        """
        Initialize engine

        Args:
            kind: Extension kind capability set
            base_dir: Directory installs go under (e.g. ext/themes)
            state_store: State file for this kind
            id_generator: Local ID generator
            fetcher: Source fetcher
            resolver: Install action resolver
        """
        self.kind = kind
        self.base_dir = Path(base_dir)
        self.sandbox = DirectorySandbox(self.base_dir)
        self.state = state_store
        self.id_generator = id_generator or IDGenerator()
        self.fetcher = fetcher or SourceFetcher()
        self.resolver = resolver or ActionResolver()

        self._lock = threading.RLock()
        self._cache: Dict[str, ExtensionManifest] = {}

        self.base_dir.mkdir(parents=True, exist_ok=True)

    @classmethod
    def for_kind(
        cls,
        kind_name: str,
        home: Optional[Path] = None,
        id_generator: Optional[IDGenerator] = None,
        fetcher: Optional[SourceFetcher] = None
    ) -> "ExtensionEngine":
        """Build an engine using the standard ext/ and configs/ layout under ``home``"""
        kind = get_kind(kind_name)
        store = StateStore(paths.state_file(kind.plural, home), kind.plural, kind.id_field)
        return cls(
            kind=kind,
            base_dir=paths.ext_dir(kind.plural, home),
            state_store=store,
            id_generator=id_generator,
            fetcher=fetcher,
        )

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def install(self, source: str, force: bool = False) -> ExtensionManifest:
        """
        Install an extension from a URL or local path

        Args:
            source: Manifest URL or path (script URL or path for commands)
            force: Re-install when the exact source and version is present

        Returns:
            The installed manifest

        Raises:
            FetchError, ParseError, ValidationError: Bad source or manifest
            ExtensionExistsError: Exact match present and force is off
            ExtensionConflictError: Local ID claimed by another extension
            SecurityError: Target escapes the base directory
            ChecksumMismatchError: An asset failed verification
            StateSaveError: Files installed but the state file was not saved
        """
        with self._lock:
            label = self.kind.singular.capitalize()
            logger.info(f"Installing {self.kind.singular} from source '{source}'...")

            fetched, manifest = self._fetch_definition(source)

            state = self.state.load()
            derived_key = self.kind.derive_key(manifest)
            action, local_id = self.resolver.resolve(manifest, force, state, derived_key)

            if action == ActionType.ERROR_EXISTS:
                raise ExtensionExistsError(
                    f"{label} '{manifest.name}' version '{manifest.version}' already exists "
                    f"(ID: {local_id}). Use --force to overwrite",
                    local_id=local_id,
                )
            if action == ActionType.ERROR_CONFLICT:
                raise ExtensionConflictError(
                    f"{label} '{manifest.name}' cannot be installed: '{local_id}' is already "
                    f"used by '{state[local_id].name}' v{state[local_id].version} "
                    f"({state[local_id].source_link})"
                )

            return self._apply(manifest, fetched, action, local_id, state)

    def update(self, local_id: str) -> UpdateResult:
        """
        Update an installed extension from its recorded source link

        Args:
            local_id: State key of the installed extension

        Returns:
            UpdateResult; the outcome is UP_TO_DATE or REMOTE_OLDER when
            nothing was changed

        Raises:
            NotFoundError: If ``local_id`` is not installed
            ValidationError: If the entry has no source link, or the remote
                manifest does not describe the same extension
        """
        with self._lock:
            state = self.state.load()
            local_id = self.kind.normalize_id(local_id, state)
            entry = state.get(local_id)
            if entry is None:
                logger.info(f"{self.kind.singular.capitalize()} '{local_id}' not found in state, cannot update")
                raise NotFoundError(f"{self.kind.singular} with ID '{local_id}' not found")

            logger.info(f"Updating {self.kind.singular} '{entry.name}' (ID: {local_id})...")
            logger.info(f"  Current version: '{entry.version}', source: {entry.source_link}")

            if not entry.source_link.strip():
                raise ValidationError(
                    f"{self.kind.singular} '{entry.name}' (ID: {local_id}) has no source link, cannot update"
                )

            fetched, latest = self._fetch_definition(entry.source_link)
            self.kind.check_update_identity(local_id, entry, latest)

            order = compare_versions(latest.version, entry.version)
            if latest.version == entry.version or order == 0:
                logger.info(f"  Already at the latest version ('{entry.version}'). No update needed")
                return UpdateResult(UpdateOutcome.UP_TO_DATE, self._load_installed(local_id), local_id)

            if order < 0:
                logger.info(
                    f"  Available version '{latest.version}' is older than installed "
                    f"version '{entry.version}'. No update performed"
                )
                return UpdateResult(UpdateOutcome.REMOTE_OLDER, self._load_installed(local_id), local_id)

            logger.info(f"  Newer version '{latest.version}' found, updating from '{entry.version}'")
            manifest = self._apply(
                latest, fetched, ActionType.OVERWRITE, local_id, state,
                source_link=entry.source_link,
            )
            return UpdateResult(UpdateOutcome.UPDATED, manifest, local_id)

    def remove(self, local_id: str) -> InstalledEntry:
        """
        Remove an installed extension

        The state entry is deleted and saved before the files are removed.

        Returns:
            The removed state entry

        Raises:
            NotFoundError: If ``local_id`` is not installed
            StateSaveError: If the state file could not be written
            SecurityError: If the entry resolves outside or onto the base directory
            InstallationError: State updated but the files could not be deleted
        """
        with self._lock:
            state = self.state.load()
            local_id = self.kind.normalize_id(local_id, state)
            entry = state.pop(local_id, None)
            if entry is None:
                logger.info(f"{self.kind.singular.capitalize()} '{local_id}' not found in state. Nothing to remove")
                raise NotFoundError(f"{self.kind.singular} with ID '{local_id}' not found")

            logger.info(f"Removing {self.kind.singular} '{entry.name}' (ID: {local_id})...")
            target = self.sandbox.resolve_entry(local_id)
            try:
                self.state.save(state)
            except StateSaveError as e:
                logger.critical(
                    f"Failed to save state after removing '{local_id}' ({entry.name}): {e}. "
                    f"Manual correction may be needed"
                )
                raise
            logger.info("  Removed from state file")

            try:
                self._remove_path(target)
            except OSError as e:
                logger.error(f"  Failed to delete '{target}'. Manual cleanup may be required: {e}")
                raise InstallationError(
                    f"state for '{entry.name}' (ID: {local_id}) removed, but deleting '{target}' failed: {e}"
                ) from e
            logger.info(f"  Deleted '{target}'")

            self._discover_locked()
            logger.info(f"{self.kind.singular.capitalize()} '{entry.name}' (ID: {local_id}) removed")
            return entry

    def list(self) -> Dict[str, InstalledEntry]:
        """Return the persisted state map"""
        with self._lock:
            return self.state.load()

    def get(self, local_id: str) -> Tuple[ExtensionManifest, InstalledEntry]:
        """
        Get the manifest and state entry of one installed extension

        Raises:
            NotFoundError: If ``local_id`` is not installed
        """
        with self._lock:
            state = self.state.load()
            local_id = self.kind.normalize_id(local_id, state)
            entry = state.get(local_id)
            if entry is None:
                raise NotFoundError(f"{self.kind.singular} with ID '{local_id}' not found")
            cached = self._cache.get(local_id)
            if cached is not None:
                return copy.deepcopy(cached), entry
            return self._load_installed(local_id), entry

    def installed(self) -> Dict[str, ExtensionManifest]:
        """Snapshot of the discovery cache"""
        with self._lock:
            return copy.deepcopy(self._cache)

    def discover(self) -> int:
        """
        Rebuild the in-memory cache from disk

        Returns:
            Number of valid extensions found
        """
        with self._lock:
            return self._discover_locked()

    def create(
        self,
        directory: Path,
        name: str,
        authors: List[str],
        version: str,
        description: str,
        source_link: str,
        **extra
    ) -> ExtensionManifest:
        """
        Generate a manifest for an existing directory of files

        Every file is checksummed and given a URL relative to
        ``source_link``. The manifest is written into ``directory``; the
        state store and base directory are not touched.

        Args:
            directory: Directory to scan
            name: Extension name
            authors: Author names; blank entries are dropped
            version: Version string
            description: Short description
            source_link: http(s) URL the directory will be published under
            **extra: Kind-specific fields (``api_version`` for plugins)

        Returns:
            The written manifest
        """
        if not self.kind.supports_create:
            raise ExtensionError(f"creating {self.kind.singular} manifests is not supported")

        directory = Path(directory).absolute()
        logger.info(f"Creating {self.kind.singular} manifest in '{directory}' for '{name}'...")
        if not directory.is_dir():
            raise ValidationError(f"'{directory}' is not a directory")

        if not source_link or not source_link.strip():
            raise ValidationError("source_link cannot be empty when creating a manifest")
        if urlparse(source_link).scheme not in ("http", "https"):
            raise ValidationError(f"source_link '{source_link}' must use http or https scheme")

        base_url = normalize_base_url(source_link.strip())
        structure = self._scan_directory(directory, directory, base_url)

        manifest = self.kind.new_manifest(
            name=name,
            authors=[a.strip() for a in authors if a and a.strip()],
            version=version,
            description=description,
            source_link=urljoin(base_url, self.kind.remote_manifest),
            structure=structure,
            **extra
        )
        self.kind.validate(manifest)

        manifest_path = directory / self.kind.remote_manifest
        try:
            manifest_path.write_text(self.kind.dump_manifest(manifest), encoding="utf-8")
        except OSError as e:
            raise InstallationError(f"failed to write '{manifest_path}': {e}") from e

        logger.info(
            f"Manifest '{self.kind.remote_manifest}' created in '{directory}' "
            f"({count_files(structure)} files). Publish the directory at {manifest.source_link}"
        )
        return manifest

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _fetch_definition(self, source: str) -> Tuple[FetchResult, ExtensionManifest]:
        logger.info(f"  Fetching definition from '{source}'...")
        fetched = self.fetcher.fetch(source)

        logger.info(f"  Processing definition from '{fetched.display_name}'...")
        manifest = self.kind.parse(fetched.data, fetched.display_name)
        self.kind.resolve_urls(manifest, fetched.base_url)

        try:
            self.kind.validate(manifest)
            if not fetched.is_local:
                ManifestValidator.validate_remote_structure(manifest.structure)
        except ValidationError as e:
            logger.info(f"  Definition validation error: {e}")
            raise ValidationError(
                f"invalid {self.kind.singular} metadata from '{fetched.display_name}': {e}"
            ) from e

        logger.info(f"  Metadata validated: '{manifest.name}' (v{manifest.version})")
        return fetched, manifest

    def _apply(
        self,
        manifest: ExtensionManifest,
        fetched: FetchResult,
        action: ActionType,
        local_id: Optional[str],
        state: Dict[str, InstalledEntry],
        source_link: Optional[str] = None
    ) -> ExtensionManifest:
        is_new = action == ActionType.INSTALL_NEW
        now = utc_now_iso()

        if local_id is None:
            local_id = self.id_generator.generate(self.kind.id_prefix)
            logger.info(f"  New installation, generated ID '{local_id}'")

        target = self.sandbox.resolve_entry(local_id)

        if is_new:
            manifest.installed_at = now
        else:
            manifest.installed_at = self._original_installed_at(local_id, state, now)
        manifest.last_updated_at = now

        if not is_new:
            logger.info(f"  Re-installing into existing ID '{local_id}'")
            try:
                self._remove_path(target)
            except OSError as e:
                raise InstallationError(f"failed to remove existing '{target}': {e}") from e

        try:
            if self.kind.single_file:
                self._write_script(target, fetched.data)
            else:
                self._install_tree(local_id, target, manifest)
                self._write_local_manifest(local_id, manifest)
        except Exception:
            if is_new:
                logger.info(f"  Cleaning up '{target}' after failed install")
                try:
                    self._remove_path(target)
                except OSError as cleanup_error:
                    logger.warning(f"Failed to clean up {target}: {cleanup_error}")
            else:
                logger.error(
                    f"  '{target}' was partially overwritten and needs manual intervention"
                )
            raise

        state[local_id] = self.kind.make_entry(local_id, manifest, source_link)
        try:
            self.state.save(state)
        except StateSaveError as e:
            logger.critical(
                f"{self.kind.singular.capitalize()} '{manifest.name}' files installed to "
                f"'{target}', but FAILED TO SAVE STATE: {e}. Manual correction may be needed"
            )
            raise StateSaveError(
                f"{self.kind.singular} '{manifest.name}' installed to '{target}', "
                f"but failed to save state: {e}",
                manifest=manifest,
            ) from e
        logger.info(f"  State updated for ID '{local_id}'")

        self._discover_locked()

        verb = "installed" if is_new else "re-installed"
        logger.info(
            f"{self.kind.singular.capitalize()} '{manifest.name}' (v{manifest.version}) {verb} to '{target}'"
        )
        return manifest

    def _original_installed_at(
        self,
        local_id: str,
        state: Dict[str, InstalledEntry],
        now: str
    ) -> str:
        entry = state.get(local_id)
        if entry is not None and entry.installed_at:
            return entry.installed_at

        if self.kind.local_manifest:
            try:
                local = self._load_installed(local_id)
                if local.installed_at:
                    return local.installed_at
            except ExtensionError as e:
                logger.debug(f"No readable local manifest for '{local_id}': {e}")

        if self.kind.tracks_timestamps:
            logger.warning(
                f"  Original installed_at for '{local_id}' not found. Setting to current time"
            )
        return now

    def _install_tree(self, local_id: str, target: Path, manifest: ExtensionManifest) -> None:
        total = count_files(manifest.structure)
        logger.info(
            f"  Downloading {total} assets for {self.kind.singular} "
            f"'{manifest.name}' (v{manifest.version}):"
        )
        try:
            target.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise InstallationError(f"failed to create directory '{target}': {e}") from e

        counter = [0]
        self._install_node(local_id, (), manifest.structure, total, counter)
        logger.info(f"    All {total} assets downloaded")

    def _install_node(
        self,
        local_id: str,
        parts: Tuple[str, ...],
        node: Directory,
        total: int,
        counter: List[int]
    ) -> None:
        for name in sorted(node.children):
            child = node.children[name]
            child_parts = parts + (name,)
            rel = "/".join(child_parts)
            path = self.sandbox.resolve(Path(local_id, *child_parts))

            if isinstance(child, Directory):
                try:
                    path.mkdir(parents=True, exist_ok=True)
                except OSError as e:
                    raise InstallationError(f"failed to create directory '{path}': {e}") from e
                self._install_node(local_id, child_parts, child, total, counter)
                continue

            counter[0] += 1
            logger.info(f"    [{counter[0]}/{total}] Downloading '{rel}'...")
            self.fetcher.download(child.url, path)
            if child.sum is not None:
                try:
                    ChecksumVerifier.verify(path, child.sum)
                except ChecksumMismatchError as e:
                    logger.info(
                        f"    [{counter[0]}/{total}] Checksum mismatch for '{rel}'. "
                        f"Expected: {e.expected}, Got: {e.actual}"
                    )
                    path.unlink(missing_ok=True)
                    raise ChecksumMismatchError(rel, e.expected, e.actual) from e
                logger.info(f"    [{counter[0]}/{total}] Verified '{rel}'")

    def _write_local_manifest(self, local_id: str, manifest: ExtensionManifest) -> None:
        path = self.sandbox.resolve(Path(local_id, self.kind.local_manifest))
        try:
            path.write_text(self.kind.dump_local(manifest), encoding="utf-8")
        except OSError as e:
            raise InstallationError(f"failed to write local manifest '{path}': {e}") from e
        logger.info(f"  Local {self.kind.local_manifest} written")

    def _write_script(self, target: Path, data: bytes) -> None:
        logger.info(f"  Writing script to '{target}'")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
            os.chmod(target, SCRIPT_MODE)
        except OSError as e:
            raise InstallationError(f"failed to write script '{target}': {e}") from e

    def _load_installed(self, local_id: str) -> ExtensionManifest:
        if self.kind.single_file:
            path = self.sandbox.resolve(local_id)
        else:
            path = self.sandbox.resolve(Path(local_id, self.kind.local_manifest))
        return self.kind.load_local(path)

    @staticmethod
    def _remove_path(path: Path) -> None:
        """Delete a file or directory tree; a missing path is not an error."""
        if path.is_dir() and not path.is_symlink():
            shutil.rmtree(path)
        elif path.exists() or path.is_symlink():
            path.unlink()

    def _scan_directory(self, current: Path, root: Path, base_url: str) -> Directory:
        children = {}
        for entry in sorted(current.iterdir()):
            name = entry.name
            if name.startswith("."):
                continue
            if entry.is_dir():
                sub = self._scan_directory(entry, root, base_url)
                if not sub.is_empty():
                    children[name] = sub
            elif entry.is_file():
                if name in self.kind.skip_on_create:
                    continue
                relative = entry.relative_to(root).as_posix()
                children[name] = Leaf(
                    url=urljoin(base_url, quote(relative)),
                    sum=ChecksumVerifier.calculate_sha256(entry),
                )
        return Directory(children=children)

    def _discover_locked(self) -> int:
        try:
            state = self.state.load()
        except StateLoadError as e:
            logger.error(f"Error loading {self.kind.plural} state: {e}. Discovery will be incomplete")
            state = {}

        cache: Dict[str, ExtensionManifest] = {}
        if self.kind.single_file:
            self._discover_files(state, cache)
        else:
            self._discover_directories(state, cache)

        self._cache = cache
        logger.info(
            f"{self.kind.plural.capitalize()} discovery complete: "
            f"{len(cache)} valid in '{self.base_dir}'"
        )
        return len(cache)

    def _discover_directories(
        self,
        state: Dict[str, InstalledEntry],
        cache: Dict[str, ExtensionManifest]
    ) -> None:
        if not self.base_dir.is_dir():
            return
        for child in sorted(self.base_dir.iterdir()):
            if not child.is_dir() or child.name.startswith("."):
                continue
            if child.name not in state:
                logger.debug(f"Skipping '{child.name}': not present in {self.kind.plural} state")
                continue
            manifest_path = child / self.kind.local_manifest
            if not manifest_path.is_file():
                logger.warning(f"  Skipping '{child.name}': {self.kind.local_manifest} not found")
                continue
            try:
                manifest = self.kind.load_local(manifest_path)
                self.kind.validate(manifest)
            except ExtensionError as e:
                logger.warning(f"  Skipping '{child.name}': invalid {self.kind.local_manifest}: {e}")
                continue
            cache[child.name] = manifest

        for local_id in state:
            if local_id not in cache and not (self.base_dir / local_id).exists():
                logger.warning(f"  '{local_id}' is in {self.kind.plural} state but missing on disk")

    def _discover_files(
        self,
        state: Dict[str, InstalledEntry],
        cache: Dict[str, ExtensionManifest]
    ) -> None:
        for filename, entry in state.items():
            try:
                path = self.sandbox.resolve(filename)
            except ExtensionError as e:
                logger.warning(f"  Skipping '{filename}': {e}")
                continue
            if not path.is_file():
                logger.warning(f"  Script '{path}' referenced in state does not exist. Skipping")
                continue
            try:
                manifest = self.kind.load_local(path)
                self.kind.validate(manifest)
            except ExtensionError as e:
                logger.warning(f"  Skipping '{filename}': {e}")
                continue
            if (manifest.name, manifest.version, manifest.source_link) != (
                entry.name, entry.version, entry.source_link
            ):
                logger.warning(
                    f"  Metadata mismatch for '{filename}'. State: ({entry.name}, v{entry.version}, "
                    f"{entry.source_link}), script: ({manifest.name}, v{manifest.version}, "
                    f"{manifest.source_link}). Using data from script"
                )
            cache[filename] = manifest
