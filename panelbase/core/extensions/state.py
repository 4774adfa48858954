"""Persistent record of installed extensions, one JSON file per kind.

File layout::

    {
      "themes": {
        "thm_ab12cd34ef56": {
          "thm_id": "thm_ab12cd34ef56",
          "name": "Dark",
          "version": "1.0.0",
          "source_link": "https://example.com/dark/theme.yaml",
          "installed_at": "2024-05-01T10:00:00Z",
          "last_updated": "2024-05-01T10:00:00Z"
        }
      }
    }
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict

from pydantic import ValidationError as PydanticValidationError

from panelbase.core.extensions.exceptions import StateLoadError, StateSaveError
from panelbase.core.extensions.models import InstalledEntry

logger = logging.getLogger(__name__)


class StateStore:
    """Loads and saves ``{local_id: InstalledEntry}`` for one extension kind"""

    def __init__(self, path: Path, root_key: str, id_field: str):
        """
        Initialize state store

        Args:
            path: JSON state file (e.g. configs/themes.json)
            root_key: Top-level wrapper key ("themes", "plugins", "commands")
            id_field: Name of the ID field inside each entry ("thm_id", ...)
        """
        self.path = Path(path)
        self.root_key = root_key
        self.id_field = id_field

    def load(self) -> Dict[str, InstalledEntry]:
        """
        Load the state map

        A missing or empty file is an empty map. A bare map without the
        wrapper key is accepted as well.

        Raises:
            StateLoadError: If the file cannot be read or decoded
        """
        if not self.path.exists():
            return {}

        try:
            raw = self.path.read_text(encoding="utf-8")
        except OSError as e:
            raise StateLoadError(f"failed to read state file '{self.path}': {e}") from e

        if not raw.strip():
            return {}

        try:
            doc = json.loads(raw)
        except ValueError as e:
            raise StateLoadError(f"failed to parse state file '{self.path}': {e}") from e

        if not isinstance(doc, dict):
            raise StateLoadError(f"state file '{self.path}' must contain a JSON object")

        entries = doc.get(self.root_key)
        if entries is None:
            logger.debug(f"No '{self.root_key}' wrapper in {self.path}, reading as a direct map")
            entries = doc
        if not isinstance(entries, dict):
            raise StateLoadError(f"'{self.root_key}' in '{self.path}' must be a JSON object")

        result = {}
        for key, data in entries.items():
            if not isinstance(data, dict):
                raise StateLoadError(f"entry '{key}' in '{self.path}' must be a JSON object")
            try:
                result[key] = self._entry_from_dict(key, data)
            except PydanticValidationError as e:
                raise StateLoadError(f"invalid entry '{key}' in '{self.path}': {e}") from e
        return result

    def save(self, entries: Dict[str, InstalledEntry]) -> None:
        """
        Rewrite the whole state file

        Raises:
            StateSaveError: If the file cannot be written
        """
        doc = {
            self.root_key: {
                key: self._entry_to_dict(entry) for key, entry in entries.items()
            }
        }
        temp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(temp_path, "w", encoding="utf-8") as f:
                json.dump(doc, f, indent=2)
                f.write("\n")
            os.replace(temp_path, self.path)
        except OSError as e:
            raise StateSaveError(f"failed to save state file '{self.path}': {e}") from e
        logger.debug(f"Saved {len(entries)} {self.root_key} entries to {self.path}")

    def _entry_from_dict(self, key: str, data: Dict[str, Any]) -> InstalledEntry:
        fields = dict(data)
        fields["id"] = fields.pop(self.id_field, None) or key
        return InstalledEntry(**fields)

    def _entry_to_dict(self, entry: InstalledEntry) -> Dict[str, Any]:
        data = entry.model_dump(exclude_none=True)
        data = {self.id_field: data.pop("id"), **data}
        return data
