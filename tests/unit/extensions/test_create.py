from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from conftest import sha256_hex
from panelbase.core.extensions.engine import normalize_base_url
from panelbase.core.extensions.exceptions import ExtensionError, ValidationError


def _theme_dir(root: Path) -> Path:
    files = {
        "index.css": b"body {}\n",
        "img/logo.svg": b"<svg/>\n",
        "my file.css": b"p {}\n",
        ".hidden": b"secret",
        ".git/config": b"[core]",
        "theme.yaml": b"old manifest",
        "nested/theme.yml": b"old manifest",
    }
    for rel, data in files.items():
        target = root / rel
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
    (root / "empty").mkdir()
    return root


@pytest.mark.parametrize(
    "link, expected",
    [
        ("https://example.com", "https://example.com/"),
        ("https://example.com/dark", "https://example.com/dark/"),
        ("https://example.com/dark/", "https://example.com/dark/"),
        ("https://example.com/dark/theme.yaml", "https://example.com/dark/theme.yaml"),
    ],
)
def test_normalize_base_url(link: str, expected: str) -> None:
    assert normalize_base_url(link) == expected


def test_create_theme_manifest(make_engine, tmp_path: Path) -> None:
    engine = make_engine("themes")
    directory = _theme_dir(tmp_path / "dark")

    manifest = engine.create(
        directory,
        name="Dark",
        authors=["Ada", "  ", "Grace "],
        version="1.0.0",
        description="A dark theme",
        source_link="https://example.com/dark",
    )

    assert manifest.source_link == "https://example.com/dark/theme.yaml"
    assert manifest.author_names == ["Ada", "Grace"]

    children = manifest.structure.children
    assert sorted(children) == ["img", "index.css", "my file.css"]
    assert children["index.css"].url == "https://example.com/dark/index.css"
    assert children["index.css"].sum == sha256_hex(b"body {}\n")
    assert children["my file.css"].url == "https://example.com/dark/my%20file.css"
    assert children["img"].children["logo.svg"].url == "https://example.com/dark/img/logo.svg"

    written = yaml.safe_load((directory / "theme.yaml").read_text(encoding="utf-8"))
    assert written["name"] == "Dark"
    assert written["source_link"] == "https://example.com/dark/theme.yaml"
    assert written["structure"]["img"]["logo.svg"]["sum"] == sha256_hex(b"<svg/>\n")
    assert "installed_at" not in written


def test_create_does_not_touch_state(make_engine, tmp_path: Path) -> None:
    engine = make_engine("themes")
    directory = _theme_dir(tmp_path / "dark")

    engine.create(directory, name="Dark", authors=["Ada"], version="1.0.0",
                  description="d", source_link="https://example.com/dark/")

    assert not engine.state.path.exists()
    assert list(engine.base_dir.iterdir()) == []


def test_create_requires_http_source_link(make_engine, tmp_path: Path) -> None:
    engine = make_engine("themes")
    directory = _theme_dir(tmp_path / "dark")

    with pytest.raises(ValidationError):
        engine.create(directory, name="Dark", authors=["Ada"], version="1.0.0",
                      description="d", source_link="ftp://example.com/dark/")
    with pytest.raises(ValidationError):
        engine.create(directory, name="Dark", authors=["Ada"], version="1.0.0",
                      description="d", source_link="")


def test_create_requires_existing_directory(make_engine, tmp_path: Path) -> None:
    engine = make_engine("themes")
    with pytest.raises(ValidationError):
        engine.create(tmp_path / "missing", name="Dark", authors=["Ada"], version="1.0.0",
                      description="d", source_link="https://example.com/dark/")


def test_create_validates_result(make_engine, tmp_path: Path) -> None:
    engine = make_engine("themes")
    directory = _theme_dir(tmp_path / "dark")

    with pytest.raises(ValidationError, match="authors"):
        engine.create(directory, name="Dark", authors=[], version="1.0.0",
                      description="d", source_link="https://example.com/dark/")
    assert (directory / "theme.yaml").read_bytes() == b"old manifest"


def test_create_plugin_manifest(make_engine, tmp_path: Path) -> None:
    engine = make_engine("plugins")
    directory = tmp_path / "hello"
    (directory / "lib").mkdir(parents=True)
    (directory / "main.py").write_text("print('hi')\n", encoding="utf-8")
    (directory / "lib" / "util.py").write_text("X = 1\n", encoding="utf-8")

    manifest = engine.create(
        directory,
        name="Hello",
        authors=["Ada"],
        version="0.1.0",
        description="Says hello",
        source_link="https://example.com/plugins/hello/",
        api_version="v1",
    )

    assert manifest.api_version == "v1"
    written = yaml.safe_load((directory / "plugin.yaml").read_text(encoding="utf-8"))
    assert written["api_version"] == "v1"
    assert written["source_link"] == "https://example.com/plugins/hello/plugin.yaml"
    assert written["structure"]["lib"]["util.py"]["url"] == "https://example.com/plugins/hello/lib/util.py"


def test_created_theme_can_be_installed_once_published(
    make_engine, tmp_path: Path, session
) -> None:
    engine = make_engine("themes")
    directory = _theme_dir(tmp_path / "dark")
    base = "https://cdn.example.com/dark/"
    engine.create(directory, name="Dark", authors=["Ada"], version="1.0.0",
                  description="d", source_link=base)

    for path in directory.rglob("*"):
        if path.is_file():
            session.routes[base + path.relative_to(directory).as_posix().replace(" ", "%20")] = path.read_bytes()

    manifest = engine.install(base + "theme.yaml")

    local_id = next(iter(engine.list()))
    assert manifest.version == "1.0.0"
    assert (engine.base_dir / local_id / "my file.css").read_bytes() == b"p {}\n"
    assert not (engine.base_dir / local_id / ".hidden").exists()


def test_commands_cannot_be_created(make_engine, tmp_path: Path) -> None:
    engine = make_engine("commands")
    with pytest.raises(ExtensionError):
        engine.create(tmp_path, name="x", authors=["Ada"], version="1",
                      description="d", source_link="https://example.com/")
