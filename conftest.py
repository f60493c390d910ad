# conftest.py

import os
from pathlib import Path
from typing import Any, Callable, List, Tuple

import pytest

from backend.app import bootstrap
from backend.container import Container
from backend.core.hooks import HookManager
from plugins.core_assets.contracts import PreviewRendererInterface
from plugins.core_assets.models import AssetType


class FakeRenderer(PreviewRendererInterface):
    """记录所有 render/release 调用的渲染器替身。句柄是简单的元组。"""

    def __init__(self, fail_on: Tuple[str, ...] = ()):
        self.fail_on = fail_on
        self.rendered: List[Tuple[AssetType, Path]] = []
        self.released: List[Any] = []

    def render(self, asset_type: AssetType, path: Path) -> Any:
        if Path(path).suffix.lower() in self.fail_on:
            raise RuntimeError(f"cannot render {path}")
        self.rendered.append((asset_type, Path(path)))
        return ("preview", asset_type, Path(path).name)

    def release(self, handle: Any) -> None:
        self.released.append(handle)


@pytest.fixture
def fake_renderer() -> FakeRenderer:
    return FakeRenderer()


@pytest.fixture
def hook_manager() -> HookManager:
    return HookManager()


@pytest.fixture
def project_root(tmp_path: Path) -> Path:
    """一个空的项目目录（尚未创建数据库）。"""
    root = tmp_path / "project"
    root.mkdir()
    return root


@pytest.fixture
def make_file() -> Callable[..., Path]:
    """
    在目录中写入一个文件并返回其路径。
    可以指定纳秒级的修改时间，以避免依赖文件系统的时间精度。
    """
    def _make(root: Path, relative: str, content: bytes = b"data", mtime_ns: int = None) -> Path:
        path = Path(root) / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)
        if mtime_ns is not None:
            os.utime(path, ns=(mtime_ns, mtime_ns))
        return path
    return _make


@pytest.fixture
def app_container(monkeypatch) -> Container:
    """完整启动编辑器核心（不读取 .env，不自动打开项目）。"""
    monkeypatch.delenv("ULTRA_PROJECT_DIR", raising=False)
    container = bootstrap(load_env=False)
    yield container
    container.resolve("project_session").close()
