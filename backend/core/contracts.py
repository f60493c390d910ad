# backend/core/contracts.py

from __future__ import annotations
from typing import Any, Callable
from abc import ABC, abstractmethod

# 插件注册函数的标准签名
PluginRegisterFunc = Callable[['Container', 'HookManager'], None]


# 插件不应直接导入实现，而应依赖这些接口
class Container(ABC):
    @abstractmethod
    def register(self, name: str, factory: Callable, singleton: bool = True) -> None: raise NotImplementedError
    @abstractmethod
    def resolve(self, name: str) -> Any: raise NotImplementedError


class HookManager(ABC):
    @abstractmethod
    def add_implementation(self, hook_name: str, implementation: Callable, priority: int = 10, plugin_name: str = "<unknown>"): raise NotImplementedError
    @abstractmethod
    def trigger(self, hook_name: str, **kwargs: Any) -> None: raise NotImplementedError
