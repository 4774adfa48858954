"""
Container runtime contract.

Containers themselves are served by a separate runtime; this module only
describes what PanelBase needs from it and starts the containers marked as
running when the process comes up.
"""

import logging
import threading
from enum import Enum
from pathlib import Path
from typing import Iterable, List, Protocol

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)

METADATA_FILE = "container.yaml"


class ContainerStatus(str, Enum):
    """Desired/last known container status"""
    RUNNING = "running"
    STOPPED = "stopped"


class ContainerMeta(BaseModel):
    """Persistent container metadata"""
    id: str = Field(description="Container ID, e.g. ctr_xxxx")
    name: str = ""
    port: int
    status: ContainerStatus

    @field_validator("port")
    @classmethod
    def _check_port(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("port must be positive")
        return v


class ContainerRuntime(Protocol):
    def start(self, container_id: str) -> None: ...

    def stop(self, container_id: str) -> None: ...


def _start_one(runtime: ContainerRuntime, meta: ContainerMeta) -> None:
    try:
        runtime.start(meta.id)
        logger.info(f"Container '{meta.id}' started on port {meta.port}")
    except Exception as e:
        logger.error(f"Failed to start container '{meta.id}': {e}", exc_info=True)


def autostart(runtime: ContainerRuntime, containers: Iterable[ContainerMeta]) -> List[threading.Thread]:
    """
    Start every container whose status is running

    Each start runs on its own daemon thread. A failing start is logged and
    does not affect the others.

    Args:
        runtime: Container runtime
        containers: Known containers

    Returns:
        The started threads
    """
    threads = []
    for meta in containers:
        if meta.status != ContainerStatus.RUNNING:
            logger.debug(f"Container '{meta.id}' is {meta.status.value}, not starting")
            continue
        thread = threading.Thread(
            target=_start_one,
            args=(runtime, meta),
            name=f"autostart-{meta.id}",
            daemon=True,
        )
        thread.start()
        threads.append(thread)
    logger.info(f"Autostart launched {len(threads)} container(s)")
    return threads


def load_containers(containers_dir: Path) -> List[ContainerMeta]:
    """
    Read ``<id>/container.yaml`` for every container directory

    Unreadable or invalid metadata, and metadata whose ID does not match its
    directory name, is logged and skipped.
    """
    containers_dir = Path(containers_dir)
    if not containers_dir.is_dir():
        logger.debug(f"No containers directory at '{containers_dir}'")
        return []

    containers = []
    for child in sorted(containers_dir.iterdir()):
        if not child.is_dir():
            continue
        meta_path = child / METADATA_FILE
        try:
            with open(meta_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
            meta = ContainerMeta(**(data or {}))
        except (OSError, yaml.YAMLError, TypeError, ValidationError) as e:
            logger.warning(f"Skipping container '{child.name}': invalid {METADATA_FILE}: {e}")
            continue
        if meta.id != child.name:
            logger.warning(
                f"Skipping container '{child.name}': {METADATA_FILE} declares ID '{meta.id}'"
            )
            continue
        containers.append(meta)

    logger.info(f"Loaded {len(containers)} container(s) from '{containers_dir}'")
    return containers
