from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Optional

import pytest
import yaml

from conftest import FIXED_TIME, build_structure, sha256_hex
from panelbase.core.extensions.exceptions import (
    ChecksumMismatchError,
    ExtensionExistsError,
    ValidationError,
)
from panelbase.core.extensions.models import PluginManifest, UpdateOutcome

PLUGIN_ID = re.compile(r"^plg_[A-Za-z0-9]{12}$")

PLUGIN_FILES = {
    "main.py": b"def handler(request):\n    return {'ok': True}\n",
    "lib/util.py": b"VALUE = 1\n",
}


def _write_plugin(
    root: Path,
    version: str = "1.0.0",
    endpoints: Optional[dict] = None,
    **overrides
) -> Path:
    for rel, data in PLUGIN_FILES.items():
        target = root / rel
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
    manifest_path = root / "plugin.yaml"
    doc = {
        "name": "Hello",
        "authors": ["Ada", "Grace"],
        "version": version,
        "description": "Says hello",
        "source_link": manifest_path.as_uri(),
        "api_version": "v1",
        "structure": build_structure(PLUGIN_FILES, sums=False),
        "dependencies": {"github.com/example/lib": "v1.2.3"},
        "endpoints": endpoints if endpoints is not None else {
            "/hello": {"methods": ["GET", "POST"], "description": "Greets"},
        },
    }
    doc.update(overrides)
    manifest_path.write_text(yaml.safe_dump(doc, sort_keys=False), encoding="utf-8")
    return manifest_path


def test_install_plugin_writes_local_plugin_yaml(make_engine, tmp_path: Path, fixed_time) -> None:
    engine = make_engine("plugins")
    source = _write_plugin(tmp_path / "src")

    manifest = engine.install(str(source))

    assert isinstance(manifest, PluginManifest)
    local_id = next(iter(engine.list()))
    assert PLUGIN_ID.match(local_id)

    target = engine.base_dir / local_id
    assert (target / "lib" / "util.py").read_bytes() == b"VALUE = 1\n"

    local = yaml.safe_load((target / "plugin.yaml").read_text(encoding="utf-8"))
    assert local["api_version"] == "v1"
    assert local["endpoints"]["/hello"]["methods"] == ["GET", "POST"]
    assert local["installed_at"] == FIXED_TIME
    assert local["structure"]["main.py"].startswith("file://")


def test_plugin_state_entries_have_no_timestamps(make_engine, tmp_path: Path) -> None:
    engine = make_engine("plugins")
    engine.install(str(_write_plugin(tmp_path / "src")))

    doc = json.loads(engine.state.path.read_text(encoding="utf-8"))
    (entry,) = doc["plugins"].values()
    assert set(entry) == {"plg_id", "name", "version", "source_link"}


def test_plugin_reinstall_requires_force(make_engine, tmp_path: Path) -> None:
    engine = make_engine("plugins")
    source = _write_plugin(tmp_path / "src")
    engine.install(str(source))

    with pytest.raises(ExtensionExistsError):
        engine.install(str(source))

    engine.install(str(source), force=True)
    assert len(engine.list()) == 1


def test_endpoint_path_must_start_with_slash(make_engine, tmp_path: Path) -> None:
    engine = make_engine("plugins")
    source = _write_plugin(tmp_path / "src", endpoints={"hello": {"methods": ["GET"]}})

    with pytest.raises(ValidationError, match="must start with '/'"):
        engine.install(str(source))


def test_endpoint_requires_a_method(make_engine, tmp_path: Path) -> None:
    engine = make_engine("plugins")
    source = _write_plugin(tmp_path / "src", endpoints={"/hello": {"methods": []}})

    with pytest.raises(ValidationError, match="at least one HTTP method"):
        engine.install(str(source))


def test_api_version_is_required(make_engine, tmp_path: Path) -> None:
    engine = make_engine("plugins")
    source = _write_plugin(tmp_path / "src", api_version="")

    with pytest.raises(ValidationError, match="api_version"):
        engine.install(str(source))
    assert engine.list() == {}


def test_optional_plugin_checksum_is_still_verified(make_engine, tmp_path: Path) -> None:
    engine = make_engine("plugins")
    structure = build_structure(PLUGIN_FILES, sums=False)
    structure["main.py"] = {"url": "main.py", "sum": sha256_hex(b"something else")}
    source = _write_plugin(tmp_path / "src", structure=structure)

    with pytest.raises(ChecksumMismatchError):
        engine.install(str(source))
    assert [p for p in engine.base_dir.iterdir()] == []


def test_remote_manifest_cannot_reference_local_files(make_engine, tmp_path: Path, session) -> None:
    engine = make_engine("plugins")
    secret = tmp_path / "secret.txt"
    secret.write_bytes(b"TOPSECRET")
    link = "https://example.com/plugins/hello/plugin.yaml"
    session.routes[link] = yaml.safe_dump({
        "name": "Hello",
        "authors": ["Ada"],
        "version": "1.0.0",
        "description": "Says hello",
        "source_link": link,
        "api_version": "v1",
        "structure": {"main.py": "main.py", "leak.txt": secret.as_uri()},
    }).encode("utf-8")
    session.routes["https://example.com/plugins/hello/main.py"] = PLUGIN_FILES["main.py"]

    with pytest.raises(ValidationError, match="leak.txt"):
        engine.install(link)

    assert engine.list() == {}
    assert list(engine.base_dir.iterdir()) == []
    assert not engine.state.path.exists()


def test_plugin_update_from_file_source(make_engine, tmp_path: Path) -> None:
    engine = make_engine("plugins")
    source = _write_plugin(tmp_path / "src", version="1.0.0")
    engine.install(str(source))
    local_id = next(iter(engine.list()))

    _write_plugin(tmp_path / "src", version="1.1.0")
    result = engine.update(local_id)

    assert result.outcome == UpdateOutcome.UPDATED
    assert engine.list()[local_id].version == "1.1.0"
    assert engine.list()[local_id].source_link == source.as_uri()

    assert engine.update(local_id).outcome == UpdateOutcome.UP_TO_DATE


def test_plugin_discovery_reads_local_plugin_yaml(make_engine, tmp_path: Path) -> None:
    engine = make_engine("plugins")
    engine.install(str(_write_plugin(tmp_path / "src")))
    local_id = next(iter(engine.list()))

    fresh = make_engine("plugins")
    assert fresh.discover() == 1
    manifest = fresh.installed()[local_id]
    assert manifest.dependencies == {"github.com/example/lib": "v1.2.3"}
    assert manifest.author_names == ["Ada", "Grace"]
