"""Decides what an install request should do given the current state"""

import logging
from typing import Dict, Optional, Tuple

from panelbase.core.extensions.models import ActionType, ExtensionManifest, InstalledEntry

logger = logging.getLogger(__name__)


class ActionResolver:
    """Maps (manifest, force, state) to an ActionType.

    Kinds whose local ID is generated (themes, plugins) match on
    (source_link, version). Kinds whose local ID is derived from the
    manifest (commands) check the derived key first: a key claimed by a
    different source or version is a conflict regardless of force.
    """

    def resolve(
        self,
        manifest: ExtensionManifest,
        force: bool,
        state: Dict[str, InstalledEntry],
        derived_key: Optional[str] = None
    ) -> Tuple[ActionType, Optional[str]]:
        """
        Resolve the install action

        Args:
            manifest: Validated manifest being installed
            force: Whether an exact match may be overwritten
            state: Current state map, freshly loaded
            derived_key: Local ID fixed by the manifest, if the kind has one

        Returns:
            Tuple of (action, local ID). The ID is None for a new install
            with a generated ID.
        """
        if derived_key is not None:
            return self._resolve_derived(manifest, force, state, derived_key)

        for local_id, entry in state.items():
            if entry.source_link == manifest.source_link and entry.version == manifest.version:
                if not force:
                    logger.info(
                        f"'{manifest.name}' v{manifest.version} already installed as '{local_id}' "
                        f"and force is not enabled"
                    )
                    return ActionType.ERROR_EXISTS, local_id
                logger.info(
                    f"'{manifest.name}' v{manifest.version} already installed as '{local_id}'. "
                    f"Force enabled, re-installing"
                )
                return ActionType.OVERWRITE, local_id

        if any(entry.source_link == manifest.source_link for entry in state.values()):
            logger.info(
                f"Other versions of '{manifest.name}' ({manifest.source_link}) found. "
                f"Installing v{manifest.version} alongside them"
            )
        else:
            logger.info(f"No existing install from '{manifest.source_link}'. Installing as new")
        return ActionType.INSTALL_NEW, None

    def _resolve_derived(
        self,
        manifest: ExtensionManifest,
        force: bool,
        state: Dict[str, InstalledEntry],
        key: str
    ) -> Tuple[ActionType, Optional[str]]:
        entry = state.get(key)
        if entry is None:
            logger.info(f"'{key}' not found locally. Installing as new")
            return ActionType.INSTALL_NEW, key

        if entry.source_link == manifest.source_link and entry.version == manifest.version:
            if not force:
                logger.info(f"'{key}' v{manifest.version} already installed and force is not enabled")
                return ActionType.ERROR_EXISTS, key
            logger.info(f"'{key}' v{manifest.version} already installed. Force enabled, re-installing")
            return ActionType.OVERWRITE, key

        if entry.source_link == manifest.source_link:
            logger.info(
                f"Conflict: '{key}' is installed at v{entry.version}; "
                f"cannot install v{manifest.version} under the same name"
            )
        else:
            logger.info(
                f"Conflict: '{key}' is already used by '{entry.name}' ({entry.source_link}); "
                f"cannot install '{manifest.name}' ({manifest.source_link})"
            )
        return ActionType.ERROR_CONFLICT, key
