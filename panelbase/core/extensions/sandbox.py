"""Path confinement for extension base directories"""

import logging
from pathlib import Path
from typing import Union

from panelbase.core.extensions.exceptions import SecurityError

logger = logging.getLogger(__name__)


class DirectorySandbox:
    """Resolves paths under a fixed base directory.

    Any path that would resolve outside ``base_dir`` (through ``..``,
    absolute components or symlinks) is rejected with ``SecurityError``.
    """

    def __init__(self, base_dir: Union[str, Path]):
        self.base_dir = Path(base_dir)

    def resolve(self, relative_name: Union[str, Path]) -> Path:
        """
        Resolve ``relative_name`` under the base directory

        Args:
            relative_name: Local ID, file name or relative path

        Returns:
            Absolute path inside the base directory

        Raises:
            SecurityError: If the target escapes the base directory
        """
        base_resolved = self.base_dir.resolve()
        target_resolved = (self.base_dir / relative_name).resolve()

        try:
            target_resolved.relative_to(base_resolved)
        except ValueError:
            logger.error(
                f"Blocked path '{relative_name}': resolves to {target_resolved}, "
                f"outside of {base_resolved}"
            )
            raise SecurityError(
                f"target '{relative_name}' resolves outside of base directory '{base_resolved}'"
            )

        return target_resolved

    def resolve_entry(self, local_id: Union[str, Path]) -> Path:
        """
        Resolve the top-level path owned by one installed extension

        Raises:
            SecurityError: If the target escapes the base directory or is
                the base directory itself
        """
        target = self.resolve(local_id)
        if target == self.base_dir.resolve():
            logger.error(f"Blocked path '{local_id}': resolves to the base directory itself")
            raise SecurityError(f"target '{local_id}' resolves to the base directory itself")
        return target
