from __future__ import annotations

import hashlib
from pathlib import Path
from typing import Callable, Dict, Optional

import pytest
import yaml

from panelbase.core.extensions.engine import ExtensionEngine
from panelbase.core.extensions.fetcher import SourceFetcher

THEME_LINK = "https://example.com/themes/dark/theme.yaml"
THEME_BASE = "https://example.com/themes/dark/"

DEFAULT_THEME_FILES = {
    "index.css": b"body { color: #eee; }\n",
    "img/logo.svg": b"<svg xmlns='http://www.w3.org/2000/svg'/>\n",
}

FIXED_TIME = "2024-05-01T10:00:00Z"


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


class FakeResponse:
    def __init__(self, status_code: int = 200, body: bytes = b""):
        self.status_code = status_code
        self.headers: Dict[str, str] = {}
        self._body = body
        self.closed = False

    def iter_content(self, chunk_size: int = 1):
        for i in range(0, len(self._body), chunk_size):
            yield self._body[i:i + chunk_size]

    def close(self) -> None:
        self.closed = True


class FakeSession:
    """Stands in for requests.Session; unknown URLs answer 404."""

    def __init__(self, routes: Optional[Dict[str, object]] = None):
        self.routes: Dict[str, object] = dict(routes or {})
        self.calls = []

    def get(self, url, stream=False, timeout=None, headers=None):
        self.calls.append({"url": url, "stream": stream, "timeout": timeout, "headers": headers})
        route = self.routes.get(url)
        if route is None:
            return FakeResponse(404)
        if isinstance(route, Exception):
            raise route
        if isinstance(route, tuple):
            return FakeResponse(route[0], route[1])
        return FakeResponse(200, route)

    def close(self) -> None:
        pass


def build_structure(files: Dict[str, bytes], sums: bool = True, base: str = "") -> dict:
    """Nested structure mapping with relative leaf URLs (prefixed by ``base``)."""
    structure: dict = {}
    for rel, data in sorted(files.items()):
        parts = rel.split("/")
        node = structure
        for part in parts[:-1]:
            node = node.setdefault(part, {})
        url = base + rel
        node[parts[-1]] = {"url": url, "sum": sha256_hex(data)} if sums else url
    return structure


def theme_document(
    version: str = "1.0.0",
    files: Optional[Dict[str, bytes]] = None,
    name: str = "Dark",
    source_link: str = THEME_LINK,
) -> dict:
    return {
        "name": name,
        "authors": ["Ada"],
        "version": version,
        "description": "A dark theme",
        "source_link": source_link,
        "structure": build_structure(files if files is not None else DEFAULT_THEME_FILES),
    }


def dump(doc: dict) -> bytes:
    return yaml.safe_dump(doc, sort_keys=False).encode("utf-8")


@pytest.fixture
def fixed_time(monkeypatch: pytest.MonkeyPatch) -> Callable[[str], None]:
    """Pin the engine clock; call the returned function to move it."""
    def set_time(value: str) -> None:
        monkeypatch.setattr("panelbase.core.extensions.engine.utc_now_iso", lambda: value)

    set_time(FIXED_TIME)
    return set_time


@pytest.fixture
def session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def make_engine(tmp_path: Path, session: FakeSession) -> Callable[[str], ExtensionEngine]:
    def factory(kind: str, **kwargs) -> ExtensionEngine:
        return ExtensionEngine.for_kind(
            kind,
            home=tmp_path / "home",
            fetcher=SourceFetcher(session=session),
            **kwargs
        )
    return factory


@pytest.fixture
def write_theme_source(tmp_path: Path):
    """Write theme.yaml plus its files into a local source directory."""
    def factory(
        version: str = "1.0.0",
        files: Optional[Dict[str, bytes]] = None,
        subdir: str = "src",
        **kwargs
    ) -> Path:
        files = files if files is not None else DEFAULT_THEME_FILES
        root = tmp_path / subdir
        for rel, data in files.items():
            target = root / rel
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        manifest_path = root / "theme.yaml"
        manifest_path.write_bytes(dump(theme_document(version, files, **kwargs)))
        return manifest_path
    return factory


@pytest.fixture
def publish_theme(session: FakeSession):
    """Serve theme.yaml and its files from the fake session."""
    def publish(
        version: str = "1.0.0",
        files: Optional[Dict[str, bytes]] = None,
        **kwargs
    ) -> str:
        files = files if files is not None else DEFAULT_THEME_FILES
        for rel, data in files.items():
            session.routes[THEME_BASE + rel] = data
        session.routes[THEME_LINK] = dump(theme_document(version, files, **kwargs))
        return THEME_LINK
    return publish
