# plugins/core_assets/__init__.py
import logging

from backend.core.contracts import Container, HookManager
from .previews import ThumbnailRenderer, preview_size_from_env
from .project import Project, ProjectSession
from .index import AssetIndex
from .models import AssetRecord, AssetType, ProjectRecord, ScanReport

logger = logging.getLogger(__name__)

__all__ = [
    "AssetIndex", "AssetRecord", "AssetType", "Project", "ProjectRecord",
    "ProjectSession", "ScanReport", "ThumbnailRenderer", "register_plugin",
]


def _create_preview_renderer() -> ThumbnailRenderer:
    return ThumbnailRenderer(size=preview_size_from_env())


def _create_project_session(container: Container) -> ProjectSession:
    return ProjectSession(
        renderer=container.resolve("preview_renderer"),
        hook_manager=container.resolve("hook_manager"),
    )


def rescan_on_activate(container: Container) -> None:
    """钩子实现: 编辑器重新获得焦点时重新扫描当前项目。"""
    session: ProjectSession = container.resolve("project_session")
    report = session.rescan()
    if report is not None and report.outcomes:
        logger.info(f"Re-scan after activation synchronized {len(report.outcomes)} assets.")


def register_plugin(container: Container, hook_manager: HookManager):
    logger.info("--> Registering [core_assets] plugin...")
    container.register("preview_renderer", _create_preview_renderer, singleton=True)
    container.register("project_session", _create_project_session, singleton=True)
    hook_manager.add_implementation(
        "editor_activated", rescan_on_activate, plugin_name="core_assets"
    )
    logger.info("Plugin [core_assets] registered.")
