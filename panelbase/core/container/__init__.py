"""Container runtime contract and startup autostart"""

from panelbase.core.container.runtime import (
    ContainerMeta,
    ContainerRuntime,
    ContainerStatus,
    autostart,
    load_containers,
)

__all__ = ["ContainerMeta", "ContainerRuntime", "ContainerStatus", "autostart", "load_containers"]
