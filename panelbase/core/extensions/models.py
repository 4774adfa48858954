"""Data models for the Extension system"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

from pydantic import BaseModel, Field


class ActionType(str, Enum):
    """Outcome of resolving an install request against the current state"""
    INSTALL_NEW = "install_new"
    OVERWRITE = "overwrite"
    ERROR_EXISTS = "error_exists"
    ERROR_CONFLICT = "error_conflict"


class UpdateOutcome(str, Enum):
    """What an update call ended up doing"""
    UPDATED = "updated"
    UP_TO_DATE = "up_to_date"
    REMOTE_OLDER = "remote_older"


@dataclass
class Leaf:
    """One file of an extension: where to fetch it and its expected SHA-256."""

    url: str
    sum: Optional[str] = None


@dataclass
class Directory:
    """A subdirectory of an extension, keyed by entry name."""

    children: Dict[str, "StructureNode"] = field(default_factory=dict)

    def is_empty(self) -> bool:
        return not self.children


StructureNode = Union[Leaf, Directory]


def iter_leaves(
    node: StructureNode,
    prefix: Tuple[str, ...] = ()
) -> Iterator[Tuple[Tuple[str, ...], Leaf]]:
    """Walk a structure tree depth-first, yielding (path parts, leaf)."""
    if isinstance(node, Leaf):
        yield prefix, node
        return
    for name in sorted(node.children):
        yield from iter_leaves(node.children[name], prefix + (name,))


def count_files(node: StructureNode) -> int:
    return sum(1 for _ in iter_leaves(node))


@dataclass
class Author:
    """Extension author"""

    name: str
    email: Optional[str] = None
    url: Optional[str] = None


@dataclass
class ExtensionManifest:
    """Declarative description of one extension.

    Fields shared by every extension kind. ``installed_at`` is set once on
    first install; ``last_updated_at`` changes on every install or update.
    """

    name: str
    authors: List[Author]
    version: str
    description: str
    source_link: str
    structure: Directory = field(default_factory=Directory)
    installed_at: Optional[str] = None
    last_updated_at: Optional[str] = None

    @property
    def author_names(self) -> List[str]:
        return [a.name for a in self.authors]


@dataclass
class EndpointConfig:
    """HTTP endpoint exposed by a plugin"""

    methods: List[str] = field(default_factory=list)
    description: Optional[str] = None
    input: Optional[Dict[str, Any]] = None
    output: Optional[Dict[str, Any]] = None


@dataclass
class PluginManifest(ExtensionManifest):
    """plugin.yaml schema"""

    api_version: str = ""
    dependencies: Dict[str, str] = field(default_factory=dict)
    endpoints: Dict[str, EndpointConfig] = field(default_factory=dict)


@dataclass
class CommandManifest(ExtensionManifest):
    """Metadata read from the ``# @@key: value`` header of a command script"""

    command: str = ""
    pkg_managers: List[str] = field(default_factory=list)
    dependencies: List[str] = field(default_factory=list)

    @property
    def filename(self) -> str:
        return f"{self.command}.sh"


class InstalledEntry(BaseModel):
    """One row of a kind's state file"""
    id: str = Field(description="Local ID; also the directory or file name under the kind's base dir")
    name: str
    version: str
    source_link: str = ""
    installed_at: Optional[str] = None
    last_updated: Optional[str] = None


@dataclass
class UpdateResult:
    """Result of ExtensionEngine.update"""

    outcome: UpdateOutcome
    manifest: ExtensionManifest
    local_id: str
