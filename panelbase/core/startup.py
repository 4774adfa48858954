"""Process startup: discover installed extensions and bring containers up"""

import logging
from pathlib import Path
from typing import Dict, Optional

from panelbase.core.container import ContainerRuntime, autostart, load_containers
from panelbase.core.extensions.engine import ExtensionEngine
from panelbase.core.extensions.kinds import KINDS
from panelbase.core.storage import paths
from panelbase.core.utils.idgen import IDGenerator

logger = logging.getLogger(__name__)


def bootstrap(
    home: Optional[Path] = None,
    id_generator: Optional[IDGenerator] = None,
    runtime: Optional[ContainerRuntime] = None
) -> Dict[str, ExtensionEngine]:
    """
    Build and discover one engine per extension kind, then autostart containers

    Container starts run on background threads and never fail startup.

    Args:
        home: Base directory (default: $PANELBASE_HOME or the working directory)
        id_generator: Local ID generator shared by the engines
        runtime: Container runtime; autostart is skipped when None

    Returns:
        Engines keyed by kind name (themes, plugins, commands)
    """
    root = home or paths.panelbase_home()
    engines = {}
    for kind_name in sorted(KINDS):
        engine = ExtensionEngine.for_kind(kind_name, home=root, id_generator=id_generator)
        engine.discover()
        engines[kind_name] = engine

    if runtime is None:
        logger.debug("No container runtime configured, skipping autostart")
    else:
        autostart(runtime, load_containers(paths.containers_dir(root)))
    return engines
