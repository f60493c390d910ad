# backend/app.py
import os
import logging
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from backend.container import Container
from backend.core.hooks import HookManager
from backend.core.loader import PluginLoader

logger = logging.getLogger(__name__)


def bootstrap(project_dir: Optional[Path] = None, load_env: bool = True) -> Container:
    """
    组装编辑器核心：容器、钩子系统、插件。
    返回已完成注册的容器；如果给出了项目目录（或设置了 ULTRA_PROJECT_DIR），
    会在启动结束时打开该项目。
    """
    if load_env:
        load_dotenv()

    container = Container()
    hook_manager = HookManager(container)

    # 1. 注册平台核心服务
    container.register("container", lambda: container)
    container.register("hook_manager", lambda: hook_manager)

    # 2. 加载插件（同步注册）
    loader = PluginLoader(container, hook_manager)
    loader.load_plugins()
    hook_manager.trigger("services_post_register", container=container)

    project_dir = project_dir or _env_project_dir()
    if project_dir is not None:
        session = container.resolve("project_session")
        session.open(project_dir)

    logger.info("--- Editor core assembled ---")
    return container


def _env_project_dir() -> Optional[Path]:
    value = os.getenv("ULTRA_PROJECT_DIR")
    return Path(value) if value else None
