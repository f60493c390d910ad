# backend/container.py

import inspect
import logging
from typing import Dict, Any, Callable, List

from backend.core.contracts import Container as ContainerInterface

logger = logging.getLogger(__name__)


class Container(ContainerInterface):
    """一个简单的、通用的依赖注入容器，带循环依赖检测。"""
    def __init__(self):
        self._factories: Dict[str, Callable] = {}
        self._singletons: Dict[str, bool] = {}
        self._instances: Dict[str, Any] = {}
        # 编辑器核心是单线程的，一个解析栈就够了
        self._resolution_stack: List[str] = []

    def register(self, name: str, factory: Callable, singleton: bool = True) -> None:
        """注册一个服务工厂。"""
        if name in self._factories:
            logger.warning(f"Overwriting service registration for '{name}'")
            self._instances.pop(name, None)
        self._factories[name] = factory
        self._singletons[name] = singleton

    def resolve(self, name: str) -> Any:
        """
        解析（获取）一个服务实例。
        工厂可以接收容器本身作为参数，也可以不接收参数。
        """
        if name in self._resolution_stack:
            path = " -> ".join(self._resolution_stack + [name])
            raise RuntimeError(f"Circular dependency detected: {path}")

        self._resolution_stack.append(name)
        try:
            is_singleton = self._singletons.get(name, True)
            if is_singleton and name in self._instances:
                return self._instances[name]

            if name not in self._factories:
                raise ValueError(f"Service '{name}' not found in container.")

            instance = self._build(self._factories[name])
            if is_singleton:
                logger.debug(f"Resolved service '{name}'. Singleton: True")
                self._instances[name] = instance
            return instance
        finally:
            self._resolution_stack.pop()

    def _build(self, factory: Callable) -> Any:
        try:
            params = inspect.signature(factory).parameters
        except (TypeError, ValueError):
            params = {}
        if params:
            return factory(self)
        return factory()
