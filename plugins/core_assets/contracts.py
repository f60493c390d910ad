# plugins/core_assets/contracts.py

from __future__ import annotations
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from .models import AssetType


class PreviewRendererInterface(ABC):
    """
    渲染协作者：为资产生成固定尺寸的预览图。
    返回的句柄归资产索引所有，渲染器不得在调用结束后保留它。
    """

    @abstractmethod
    def render(self, asset_type: AssetType, path: Path) -> Any:
        """为 Library 中位于 ``path`` 的副本生成预览句柄。"""
        raise NotImplementedError

    @abstractmethod
    def release(self, handle: Any) -> None:
        """释放之前由 :meth:`render` 返回的句柄。"""
        raise NotImplementedError
