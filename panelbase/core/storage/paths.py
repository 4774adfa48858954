# panelbase/core/storage/paths.py
from __future__ import annotations
from pathlib import Path
import os

# Every extension kind gets its own directory under ext/ and its own
# state file under configs/
KNOWN_KINDS = {"themes", "plugins", "commands"}

HOME_ENV = "PANELBASE_HOME"


def panelbase_home() -> Path:
    """Base directory: $PANELBASE_HOME if set, otherwise the working directory"""
    override = os.environ.get(HOME_ENV)
    if override:
        return Path(override).expanduser()
    return Path.cwd()


def configs_dir(home: Path | None = None) -> Path:
    return (home or panelbase_home()) / "configs"


def config_file(home: Path | None = None) -> Path:
    return configs_dir(home) / "config.yaml"


def logs_dir(home: Path | None = None) -> Path:
    return (home or panelbase_home()) / "logs"


def ext_dir(kind: str, home: Path | None = None) -> Path:
    """Base install directory for one extension kind, e.g. ext/themes"""
    if kind not in KNOWN_KINDS:
        raise ValueError(f"Unknown extension kind: {kind}. Allowed: {sorted(KNOWN_KINDS)}")
    return (home or panelbase_home()) / "ext" / kind


def state_file(kind: str, home: Path | None = None) -> Path:
    """State file for one extension kind, e.g. configs/themes.json"""
    if kind not in KNOWN_KINDS:
        raise ValueError(f"Unknown extension kind: {kind}. Allowed: {sorted(KNOWN_KINDS)}")
    return configs_dir(home) / f"{kind}.json"


def ensure_layout(home: Path | None = None) -> Path:
    """Create configs/, logs/ and ext/<kind>/ under the base directory"""
    root = home or panelbase_home()
    configs_dir(root).mkdir(parents=True, exist_ok=True)
    logs_dir(root).mkdir(parents=True, exist_ok=True)
    for kind in sorted(KNOWN_KINDS):
        ext_dir(kind, root).mkdir(parents=True, exist_ok=True)
    return root


def containers_dir(home: Path | None = None) -> Path:
    """Container directories, each holding a container.yaml"""
    return (home or panelbase_home()) / "containers"
