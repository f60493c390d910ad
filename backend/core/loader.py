# backend/core/loader.py

import json
import logging
import importlib
import importlib.resources
from typing import List, Dict

from backend.core.contracts import Container, HookManager, PluginRegisterFunc

# 在模块级别获取 logger
logger = logging.getLogger(__name__)


class PluginLoader:
    def __init__(self, container: Container, hook_manager: HookManager, package: str = "plugins"):
        self._container = container
        self._hook_manager = hook_manager
        self._package = package

    def load_plugins(self) -> List[str]:
        """执行插件加载的全过程：发现、排序、注册。返回已注册插件的名称。"""
        # 阶段一：发现
        all_plugins = self._discover_plugins()
        if not all_plugins:
            logger.warning(f"No plugins discovered in package '{self._package}'.")
            return []

        # 阶段二：排序
        sorted_plugins = sorted(all_plugins, key=lambda p: (p['manifest'].get('priority', 100), p['name']))

        # 阶段三：注册
        self._register_plugins(sorted_plugins)

        names = [p['name'] for p in sorted_plugins]
        logger.info(f"Plugins loaded in order: {', '.join(names)}")
        return names

    def _discover_plugins(self) -> List[Dict]:
        """扫描插件包，读取所有子包中的 manifest.json 文件。"""
        discovered = []
        try:
            plugins_package_path = importlib.resources.files(self._package)
        except ModuleNotFoundError:
            return discovered

        for plugin_path in plugins_package_path.iterdir():
            if not plugin_path.is_dir() or plugin_path.name.startswith(('__', '.')):
                continue

            manifest_path = plugin_path / "manifest.json"
            if not manifest_path.is_file():
                continue

            try:
                manifest = json.loads(manifest_path.read_text(encoding='utf-8'))
            except json.JSONDecodeError as e:
                logger.warning(f"Skipping plugin '{plugin_path.name}' with unreadable manifest: {e}")
                continue

            discovered.append({
                "name": manifest.get('name', plugin_path.name),
                "manifest": manifest,
                "import_path": f"{self._package}.{plugin_path.name}",
            })

        return discovered

    def _register_plugins(self, plugins: List[Dict]):
        """按顺序导入并调用每个插件的注册函数。"""
        for plugin_info in plugins:
            plugin_name = plugin_info['name']
            import_path = plugin_info['import_path']

            try:
                plugin_module = importlib.import_module(import_path)
                register_func: PluginRegisterFunc = getattr(plugin_module, "register_plugin")
                register_func(self._container, self._hook_manager)
            except Exception as e:
                # 插件依赖可能被破坏，这里选择停止加载
                logger.critical(f"Failed to load plugin '{plugin_name}' ({import_path}): {e}", exc_info=e)
                raise RuntimeError(f"Unable to load plugin {plugin_name}") from e
