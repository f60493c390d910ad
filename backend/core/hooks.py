# backend/core/hooks.py
import logging
import inspect
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

# 从平台核心导入最基础的接口
from backend.core.contracts import HookManager as HookManagerInterface, Container

logger = logging.getLogger(__name__)

# 定义钩子函数的通用签名
HookCallable = Callable[..., Any]


@dataclass(order=True)
class HookImplementation:
    """封装一个钩子实现及其元数据。"""
    priority: int
    func: HookCallable = field(compare=False)
    plugin_name: str = field(compare=False, default="<unknown>")


class HookManager(HookManagerInterface):
    """
    一个中心化的、上下文感知的服务，负责注册和调度所有钩子实现。
    所有钩子都是同步调用的：编辑器核心只在用户操作时运行，没有后台任务。
    它能自动将上下文注入到钩子函数中。
    """
    def __init__(self, container: Optional[Container] = None):
        self._hooks: Dict[str, List[HookImplementation]] = defaultdict(list)
        self._shared_context: Dict[str, Any] = {"hook_manager": self}
        if container is not None:
            self._shared_context["container"] = container
        logger.debug("HookManager initialized.")

    def add_shared_context(self, name: str, service: Any) -> None:
        """允许在启动过程中向钩子系统添加更多的共享服务。"""
        if name in self._shared_context:
            logger.warning(f"Overwriting shared context for hooks: '{name}'")
        self._shared_context[name] = service

    def hook_names(self) -> List[str]:
        return sorted(name for name, impls in self._hooks.items() if impls)

    def _prepare_hook_kwargs(self, func: HookCallable, call_context: Dict[str, Any]) -> Dict[str, Any]:
        """只传递钩子函数签名中声明过的上下文参数。"""
        params = inspect.signature(func).parameters
        if any(p.kind == p.VAR_KEYWORD for p in params.values()):
            return dict(call_context)
        return {name: call_context[name] for name in params if name in call_context}

    def add_implementation(
        self,
        hook_name: str,
        implementation: HookCallable,
        priority: int = 10,
        plugin_name: str = "<core>"
    ):
        """向管理器注册一个钩子实现。"""
        if inspect.iscoroutinefunction(implementation):
            raise TypeError(f"Hook implementation for '{hook_name}' must be a regular function, not a coroutine.")

        hook_impl = HookImplementation(priority=priority, func=implementation, plugin_name=plugin_name)
        self._hooks[hook_name].append(hook_impl)
        self._hooks[hook_name].sort()  # 保持列表按优先级排序（从小到大）
        logger.debug(f"Registered hook '{hook_name}' from plugin '{plugin_name}' with priority {priority}.")

    def trigger(self, hook_name: str, **kwargs: Any) -> None:
        """
        触发一个“通知型”钩子。按优先级依次执行，忽略返回值。
        单个实现抛出的异常只会被记录，不会影响其他实现或调用方。
        """
        if hook_name not in self._hooks:
            return

        call_context = {**self._shared_context, **kwargs}
        for impl in list(self._hooks[hook_name]):
            try:
                impl.func(**self._prepare_hook_kwargs(impl.func, call_context))
            except Exception as e:
                logger.error(
                    f"Error in NOTIFICATION hook '{hook_name}' from plugin '{impl.plugin_name}': {e}",
                    exc_info=e
                )
