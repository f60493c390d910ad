# plugins/core_archive/__init__.py
import logging

from backend.core.contracts import Container, HookManager
from .archiver import SceneArchiver, scene_name
from .container import ArchiveReader, ArchiveWriter
from .models import (
    FilePickerInterface, LoadResult, ResourceOutcome, SavableInterface,
    SavableKind, SaveReport, SceneFragment,
)

logger = logging.getLogger(__name__)

__all__ = [
    "ArchiveReader", "ArchiveWriter", "FilePickerInterface", "LoadResult",
    "ResourceOutcome", "SavableInterface", "SavableKind", "SaveReport",
    "SceneArchiver", "SceneFragment", "register_plugin", "scene_name",
]


def _create_scene_archiver(container: Container) -> SceneArchiver:
    # 每次解析都绑定到当前打开项目的 Library
    session = container.resolve("project_session")
    return SceneArchiver(session.current.library_path)


def register_plugin(container: Container, hook_manager: HookManager):
    logger.info("--> Registering [core_archive] plugin...")
    container.register("scene_archiver", _create_scene_archiver, singleton=False)
    logger.info("Plugin [core_archive] registered.")
