"""Validator for extension manifests"""

import logging
import os
import re
from typing import Iterable
from urllib.parse import urlparse

from panelbase.core.extensions.exceptions import ValidationError
from panelbase.core.extensions.models import (
    CommandManifest,
    Directory,
    ExtensionManifest,
    Leaf,
    PluginManifest,
)

logger = logging.getLogger(__name__)

SHA256_PATTERN = re.compile(r"^[a-f0-9]{64}$")

# Characters that may never appear in a structure entry name
FORBIDDEN_NAME_CHARS = {"/", "\\", os.sep, "\x00"}
if os.altsep:
    FORBIDDEN_NAME_CHARS.add(os.altsep)


def _blank(value: str) -> bool:
    return not value or not value.strip()


class ManifestValidator:
    """Validator for extension manifests and their structure trees"""

    @staticmethod
    def validate_entry_name(name: str, path: str) -> None:
        """
        Check a single structure entry name

        Args:
            name: File or directory name
            path: Tree path used in the error message

        Raises:
            ValidationError: If the name is empty, contains a path separator,
                or is '.' / '..'
        """
        if _blank(name):
            raise ValidationError(f"{path}: file/directory name cannot be empty")
        if any(c in name for c in FORBIDDEN_NAME_CHARS) or name in (".", ".."):
            raise ValidationError(
                f"{path}: invalid file/directory name '{name}'. "
                "It cannot contain path separators or be '.' or '..'"
            )

    @staticmethod
    def validate_leaf_url(url: str, path: str) -> None:
        if _blank(url):
            raise ValidationError(f"{path}: URL cannot be empty")
        parsed = urlparse(url)
        if not parsed.scheme:
            raise ValidationError(f"{path}: URL '{url}' is not absolute (missing scheme)")
        if parsed.scheme != "file" and not parsed.netloc:
            raise ValidationError(f"{path}: URL '{url}' is missing a host")

    @classmethod
    def validate_remote_structure(cls, node: Directory, path: str = "structure") -> None:
        """
        Reject local file leaves in a manifest that was fetched over HTTP(S)

        Raises:
            ValidationError: If any leaf URL does not use http or https
        """
        for name, child in node.children.items():
            child_path = f"{path}/{name}"
            if isinstance(child, Leaf):
                scheme = urlparse(child.url).scheme
                if scheme not in ("http", "https"):
                    raise ValidationError(
                        f"{child_path}: URL '{child.url}' must use http or https "
                        "when the manifest is fetched from a remote source"
                    )
            else:
                cls.validate_remote_structure(child, child_path)

    @staticmethod
    def validate_checksum(checksum: str, path: str) -> None:
        if not checksum or not SHA256_PATTERN.match(checksum):
            raise ValidationError(
                f"{path}: invalid checksum '{checksum}', "
                "expected 64 lowercase hex characters (SHA-256)"
            )

    @classmethod
    def validate_structure(
        cls,
        node: Directory,
        require_checksum: bool,
        path: str = "structure"
    ) -> None:
        """
        Recursively validate a structure tree

        Args:
            node: Directory node to validate
            require_checksum: Whether every leaf must carry a SHA-256
            path: Tree path of ``node``; errors report the deepest failing path

        Raises:
            ValidationError: On the first invalid entry
        """
        for name, child in node.children.items():
            child_path = f"{path}/{name}"
            cls.validate_entry_name(name, child_path)
            if isinstance(child, Leaf):
                cls.validate_leaf_url(child.url, child_path)
                if require_checksum or child.sum is not None:
                    cls.validate_checksum(child.sum or "", child_path)
            else:
                cls.validate_structure(child, require_checksum, child_path)

    @staticmethod
    def validate_source_link(link: str, http_only: bool) -> None:
        if _blank(link):
            raise ValidationError("source_link is required and cannot be empty")
        parsed = urlparse(link)
        if not parsed.scheme:
            raise ValidationError(f"source_link '{link}' is not an absolute URL")
        if http_only:
            if parsed.scheme not in ("http", "https"):
                raise ValidationError(f"source_link '{link}' must use http or https scheme")
            if not parsed.netloc:
                raise ValidationError(f"source_link '{link}' is missing a host")

    @staticmethod
    def validate_required(fields: Iterable) -> None:
        for label, value in fields:
            if _blank(value):
                raise ValidationError(f"{label} is required and cannot be empty")

    @staticmethod
    def validate_authors(manifest: ExtensionManifest) -> None:
        if not manifest.authors:
            raise ValidationError("authors are required")
        for i, author in enumerate(manifest.authors):
            if _blank(author.name):
                raise ValidationError(f"author at index {i} cannot be empty")

    @classmethod
    def validate_theme(cls, manifest: ExtensionManifest) -> None:
        """Validate a theme manifest. Every leaf must carry a checksum."""
        cls.validate_required([
            ("name", manifest.name),
            ("version", manifest.version),
            ("description", manifest.description),
        ])
        cls.validate_authors(manifest)
        cls.validate_source_link(manifest.source_link, http_only=True)
        if manifest.structure.is_empty():
            raise ValidationError("structure is required and cannot be empty")
        cls.validate_structure(manifest.structure, require_checksum=True)

    @classmethod
    def validate_plugin(cls, manifest: PluginManifest) -> None:
        """Validate a plugin manifest, including endpoints and dependencies."""
        cls.validate_required([
            ("name", manifest.name),
            ("version", manifest.version),
            ("description", manifest.description),
        ])
        cls.validate_authors(manifest)
        cls.validate_source_link(manifest.source_link, http_only=False)
        cls.validate_required([("api_version", manifest.api_version)])
        if manifest.structure.is_empty():
            raise ValidationError("structure is required and cannot be empty")
        cls.validate_structure(manifest.structure, require_checksum=False)

        for path, endpoint in manifest.endpoints.items():
            if _blank(path) or not path.startswith("/"):
                raise ValidationError(
                    f"invalid endpoint path '{path}': must not be empty and must start with '/'"
                )
            if not endpoint.methods:
                raise ValidationError(f"endpoint '{path}' must have at least one HTTP method defined")
            for method in endpoint.methods:
                if _blank(method):
                    raise ValidationError(f"endpoint '{path}' has an empty HTTP method")

        for module, version in manifest.dependencies.items():
            if _blank(module):
                raise ValidationError("dependency module path cannot be empty")
            if _blank(version):
                raise ValidationError(f"dependency version for module '{module}' cannot be empty")

    @classmethod
    def validate_command(cls, manifest: CommandManifest) -> None:
        """Validate the header of a command script."""
        cls.validate_required([
            ("command", manifest.command),
            ("version", manifest.version),
            ("description", manifest.description),
        ])
        if not manifest.pkg_managers:
            raise ValidationError("pkg_managers must list at least one package manager")
        cls.validate_source_link(manifest.source_link, http_only=False)
        if any(c in manifest.filename for c in FORBIDDEN_NAME_CHARS) or manifest.command in (".", ".."):
            raise ValidationError(
                f"invalid command name '{manifest.command}': cannot contain path separators"
            )
