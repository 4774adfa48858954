"""Manifest parsing and serialization.

Themes and plugins are described by a YAML document (``theme.yaml`` /
``plugin.yaml``). Commands carry their manifest inline, as ``# @@key: value``
comment lines at the top of the shell script.

Structure trees are decoded into explicit ``Leaf``/``Directory`` nodes:

- a string value is a leaf holding only a URL
- a mapping whose ``url`` key holds a string is a leaf (``sum`` optional)
- any other mapping is a subdirectory

A leaf-shaped mapping with wrong types or unexpected keys is a parse error
rather than being reinterpreted as a directory.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import yaml

from panelbase.core.extensions.exceptions import ParseError
from panelbase.core.extensions.models import (
    Author,
    CommandManifest,
    Directory,
    EndpointConfig,
    ExtensionManifest,
    Leaf,
    PluginManifest,
    StructureNode,
)

logger = logging.getLogger(__name__)

# Command script header
METADATA_PREFIX = "# @@"
MAX_METADATA_LINES = 20

LEAF_KEYS = {"url", "sum"}

_NUMERIC_TAGS = ("tag:yaml.org,2002:int", "tag:yaml.org,2002:float")


class ManifestLoader(yaml.SafeLoader):
    """SafeLoader that keeps unquoted numbers as strings.

    ``version: 1.10`` must stay "1.10" instead of becoming the float 1.1.
    """


ManifestLoader.yaml_implicit_resolvers = {
    first: [(tag, regexp) for tag, regexp in resolvers if tag not in _NUMERIC_TAGS]
    for first, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
}


def load_yaml_document(data: bytes, source: str = "<manifest>") -> Dict[str, Any]:
    """Decode a YAML mapping, raising ParseError on anything else."""
    try:
        doc = yaml.load(data, Loader=ManifestLoader)
    except yaml.YAMLError as e:
        raise ParseError(f"failed to parse YAML from '{source}': {e}") from e

    if not isinstance(doc, dict):
        raise ParseError(f"manifest from '{source}' must be a YAML mapping")
    return doc


def _format_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _scalar(data: Dict[str, Any], key: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if isinstance(value, datetime):
        return _format_timestamp(value)
    if isinstance(value, bool) or isinstance(value, (dict, list)):
        raise ParseError(f"field '{key}' must be a string")
    return str(value)


def _optional_scalar(data: Dict[str, Any], key: str) -> Optional[str]:
    value = _scalar(data, key)
    return value or None


def _parse_authors(raw: Any) -> List[Author]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ParseError("field 'authors' must be a list")

    authors = []
    for i, item in enumerate(raw):
        if isinstance(item, str):
            authors.append(Author(name=item))
        elif isinstance(item, dict):
            authors.append(Author(
                name=_scalar(item, "name"),
                email=_optional_scalar(item, "email"),
                url=_optional_scalar(item, "url"),
            ))
        else:
            raise ParseError(f"authors[{i}] must be a string or a mapping")
    return authors


def parse_structure(raw: Any, path: str = "structure") -> Directory:
    """Decode a nested structure mapping into a Directory node."""
    if raw is None:
        return Directory()
    if not isinstance(raw, dict):
        raise ParseError(f"{path}: expected a mapping of names to files or directories")

    children: Dict[str, StructureNode] = {}
    for key, value in raw.items():
        name = str(key)
        child_path = f"{path}/{name}"
        if isinstance(value, str):
            children[name] = Leaf(url=value)
        elif isinstance(value, dict) and isinstance(value.get("url"), str):
            extra = set(str(k) for k in value) - LEAF_KEYS
            if extra:
                raise ParseError(f"{child_path}: unexpected keys in file entry: {sorted(extra)}")
            checksum = value.get("sum")
            if checksum is not None and not isinstance(checksum, str):
                raise ParseError(f"{child_path}: 'sum' must be a string")
            children[name] = Leaf(url=value["url"], sum=checksum)
        elif isinstance(value, dict):
            children[name] = parse_structure(value, child_path)
        else:
            raise ParseError(
                f"{child_path}: expected a URL, a {{url, sum}} mapping or a subdirectory"
            )
    return Directory(children=children)


def dump_structure(node: Directory, plain_leaves: bool = False) -> Dict[str, Any]:
    result: Dict[str, Any] = {}
    for name, child in node.children.items():
        if isinstance(child, Leaf):
            if plain_leaves and child.sum is None:
                result[name] = child.url
            else:
                entry = {"url": child.url}
                if child.sum is not None:
                    entry["sum"] = child.sum
                result[name] = entry
        else:
            result[name] = dump_structure(child, plain_leaves)
    return result


def _dump_timestamps(manifest: ExtensionManifest, data: Dict[str, Any]) -> None:
    if manifest.installed_at:
        data["installed_at"] = manifest.installed_at
    if manifest.last_updated_at:
        data["last_updated_at"] = manifest.last_updated_at


class ThemeCodec:
    """theme.yaml / theme.json codec"""

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> ExtensionManifest:
        return ExtensionManifest(
            name=_scalar(data, "name"),
            authors=_parse_authors(data.get("authors")),
            version=_scalar(data, "version"),
            description=_scalar(data, "description"),
            source_link=_scalar(data, "source_link"),
            structure=parse_structure(data.get("structure")),
            installed_at=_optional_scalar(data, "installed_at"),
            last_updated_at=_optional_scalar(data, "last_updated_at"),
        )

    @staticmethod
    def to_dict(manifest: ExtensionManifest) -> Dict[str, Any]:
        authors = []
        for author in manifest.authors:
            entry = {"name": author.name}
            if author.email:
                entry["email"] = author.email
            if author.url:
                entry["url"] = author.url
            authors.append(entry)

        data: Dict[str, Any] = {
            "name": manifest.name,
            "authors": authors,
            "version": manifest.version,
            "description": manifest.description,
            "source_link": manifest.source_link,
            "structure": dump_structure(manifest.structure),
        }
        _dump_timestamps(manifest, data)
        return data

    def parse(self, data: bytes, source: str = "<manifest>") -> ExtensionManifest:
        return self.from_dict(load_yaml_document(data, source))

    def parse_json(self, data: bytes, source: str = "<manifest>") -> ExtensionManifest:
        try:
            doc = json.loads(data)
        except ValueError as e:
            raise ParseError(f"failed to parse JSON from '{source}': {e}") from e
        if not isinstance(doc, dict):
            raise ParseError(f"manifest from '{source}' must be a JSON object")
        return self.from_dict(doc)

    def dump_yaml(self, manifest: ExtensionManifest) -> str:
        return yaml.safe_dump(
            self.to_dict(manifest),
            indent=2,
            sort_keys=False,
            allow_unicode=True,
        )

    def dump_json(self, manifest: ExtensionManifest) -> str:
        return json.dumps(self.to_dict(manifest), indent=2, ensure_ascii=False)


class PluginCodec(ThemeCodec):
    """plugin.yaml codec"""

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> PluginManifest:
        dependencies = data.get("dependencies") or {}
        if not isinstance(dependencies, dict):
            raise ParseError("field 'dependencies' must be a mapping of module to version")

        raw_endpoints = data.get("endpoints") or {}
        if not isinstance(raw_endpoints, dict):
            raise ParseError("field 'endpoints' must be a mapping of path to endpoint config")

        endpoints = {}
        for path, cfg in raw_endpoints.items():
            cfg = cfg or {}
            if not isinstance(cfg, dict):
                raise ParseError(f"endpoint '{path}' must be a mapping")
            methods = cfg.get("methods") or []
            if not isinstance(methods, list):
                raise ParseError(f"endpoint '{path}': 'methods' must be a list")
            endpoints[str(path)] = EndpointConfig(
                methods=["" if m is None else str(m) for m in methods],
                description=cfg.get("description"),
                input=cfg.get("input"),
                output=cfg.get("output"),
            )

        return PluginManifest(
            name=_scalar(data, "name"),
            authors=_parse_authors(data.get("authors")),
            version=_scalar(data, "version"),
            description=_scalar(data, "description"),
            source_link=_scalar(data, "source_link"),
            structure=parse_structure(data.get("structure")),
            installed_at=_optional_scalar(data, "installed_at"),
            last_updated_at=_optional_scalar(data, "last_updated_at"),
            api_version=_scalar(data, "api_version"),
            dependencies={
                str(k): "" if v is None else str(v) for k, v in dependencies.items()
            },
            endpoints=endpoints,
        )

    @staticmethod
    def to_dict(manifest: PluginManifest) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "name": manifest.name,
            "authors": manifest.author_names,
            "version": manifest.version,
            "description": manifest.description,
            "source_link": manifest.source_link,
            "api_version": manifest.api_version,
            "structure": dump_structure(manifest.structure, plain_leaves=True),
        }
        if manifest.dependencies:
            data["dependencies"] = dict(manifest.dependencies)
        if manifest.endpoints:
            endpoints = {}
            for path, cfg in manifest.endpoints.items():
                entry: Dict[str, Any] = {"methods": list(cfg.methods)}
                if cfg.description:
                    entry["description"] = cfg.description
                if cfg.input is not None:
                    entry["input"] = cfg.input
                if cfg.output is not None:
                    entry["output"] = cfg.output
                endpoints[path] = entry
            data["endpoints"] = endpoints
        _dump_timestamps(manifest, data)
        return data


def _split_list(value: str) -> List[str]:
    return [part.strip() for part in value.split(",") if part.strip()]


class CommandCodec:
    """Reads the ``# @@key: value`` header of a command script"""

    LIST_KEYS = {"pkg_managers", "dependencies", "authors"}
    SCALAR_KEYS = {"command", "version", "description", "source_link"}

    def parse(self, data: bytes, source: str = "<script>") -> CommandManifest:
        try:
            text = data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ParseError(f"command script from '{source}' is not valid UTF-8: {e}") from e

        fields: Dict[str, Any] = {}
        for line in text.splitlines()[:MAX_METADATA_LINES]:
            line = line.strip()
            if not line.startswith(METADATA_PREFIX):
                continue
            key, sep, value = line[len(METADATA_PREFIX):].partition(":")
            if not sep:
                continue
            key = key.strip()
            value = value.strip()
            if key in self.LIST_KEYS:
                fields[key] = _split_list(value)
            elif key in self.SCALAR_KEYS:
                fields[key] = value
            else:
                logger.debug(f"Ignoring unknown metadata key '{key}' in '{source}'")

        if not fields:
            raise ParseError(
                f"no '@@' metadata found in the first {MAX_METADATA_LINES} lines of '{source}'"
            )

        command = fields.get("command", "")
        return CommandManifest(
            name=command,
            authors=[Author(name=a) for a in fields.get("authors", [])],
            version=fields.get("version", ""),
            description=fields.get("description", ""),
            source_link=fields.get("source_link", ""),
            command=command,
            pkg_managers=fields.get("pkg_managers", []),
            dependencies=fields.get("dependencies", []),
        )
