# plugins/core_assets/project.py

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import ValidationError

from backend.core.contracts import HookManager
from backend.core.errors import DatabaseValidationError, FormatError, IOFailure
from backend.core.utils import write_atomic
from .contracts import PreviewRendererInterface
from .index import AssetIndex
from .models import DATABASE_CONTEXT, DATABASE_FILENAME, AssetRecord, AssetType, ProjectRecord, ScanReport

logger = logging.getLogger(__name__)


class Project:
    """
    一个已打开项目的显式上下文对象：数据库路径、资产索引和预览缓存。
    生命周期为 Unloaded -> Loaded -> Unloaded；close() 之后对象不可再用。
    """

    def __init__(
        self,
        root: Path,
        name: str,
        renderer: Optional[PreviewRendererInterface] = None,
        hook_manager: Optional[HookManager] = None,
    ):
        self.root = Path(root).resolve()
        self.name = name
        self.index = AssetIndex(self.root, renderer=renderer, hook_manager=hook_manager)
        self.last_scan: Optional[ScanReport] = None
        self._loaded = True

    # --- 生命周期 ---

    @classmethod
    def new(
        cls,
        name: str,
        path: Path,
        create_directory: bool = True,
        renderer: Optional[PreviewRendererInterface] = None,
        hook_manager: Optional[HookManager] = None,
    ) -> "Project":
        path = Path(path)
        if not path.exists():
            raise IOFailure("Failed to create new project since selected path doesn't exist.", path)

        project_path = path / name if create_directory else path
        if create_directory:
            try:
                project_path.mkdir(exist_ok=True)
            except OSError as e:
                raise IOFailure(f"Failed to create project directory: {e}", project_path) from e

        project = cls(project_path, name, renderer=renderer, hook_manager=hook_manager)
        if not project.save(name) or not project.database_path.exists():
            raise IOFailure("Error initializing new project database.", project.database_path)

        logger.info("New project successfully created!")
        project.scan()
        return project

    @classmethod
    def load(
        cls,
        path: Path,
        renderer: Optional[PreviewRendererInterface] = None,
        hook_manager: Optional[HookManager] = None,
    ) -> "Project":
        database_path = Path(path) / DATABASE_FILENAME
        if not database_path.is_file():
            raise IOFailure("Failed to load project since it doesn't seem to exist.", database_path)

        record = read_database(database_path)
        project = cls(path, record.name, renderer=renderer, hook_manager=hook_manager)
        project.index.build_index(record)
        logger.info(f"Loaded project '{record.name}' with {len(record.assets)} assets.")
        project.scan()
        return project

    @property
    def is_loaded(self) -> bool:
        return self._loaded

    def close(self) -> None:
        if not self._loaded:
            return
        self.index.release_previews()
        self._loaded = False
        logger.info(f"Closed project '{self.name}'.")

    def __enter__(self) -> "Project":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # --- 路径约定 ---

    @property
    def database_path(self) -> Path:
        return self.root / DATABASE_FILENAME

    @property
    def library_path(self) -> Path:
        return self.index.library_path

    def library_path_for(self, record: AssetRecord) -> Path:
        return self.index.library_path_for(record)

    # --- 操作 ---

    def save(self, name: Optional[str] = None) -> bool:
        """把索引写入项目数据库；不触碰 Library 文件。未给出名称时沿用现有名称。"""
        self._ensure_loaded()
        if name:
            self.name = name

        record = self.index.to_record(self.name)
        try:
            write_atomic(self.database_path, record.model_dump_json(indent=1).encode("utf-8"))
        except OSError as e:
            logger.error(f"Failed to write project database {self.database_path}: {e}")
            return False
        logger.debug(f"Persisted project '{self.name}' to {self.database_path}")
        return True

    def scan(self) -> ScanReport:
        self._ensure_loaded()
        self.last_scan = self.index.scan()
        return self.last_scan

    def get_asset(self, asset_id: UUID) -> Optional[AssetRecord]:
        self._ensure_loaded()
        return self.index.get_asset(asset_id)

    def assets(self, asset_type: Optional[AssetType] = None) -> List[AssetRecord]:
        self._ensure_loaded()
        return self.index.assets(asset_type)

    def previews(
        self, asset_type: AssetType, renderer: Optional[PreviewRendererInterface] = None
    ) -> Dict[UUID, Optional[Any]]:
        if not self._loaded:
            return {}
        return self.index.previews(asset_type, renderer)

    def _ensure_loaded(self) -> None:
        if not self._loaded:
            raise RuntimeError(f"Project '{self.name}' has been closed.")


def read_database(database_path: Path) -> ProjectRecord:
    try:
        content = database_path.read_text(encoding="utf-8")
    except OSError as e:
        raise IOFailure(f"Failed to read project database: {e}", database_path) from e

    try:
        payload = json.loads(content)
    except json.JSONDecodeError as e:
        raise FormatError(f"Project database is not valid JSON: {e}", database_path) from e

    try:
        return ProjectRecord.model_validate(payload, context=DATABASE_CONTEXT)
    except ValidationError as e:
        raise DatabaseValidationError(
            "Failed to load project since it doesn't seem to be valid.", database_path
        ) from e


class ProjectSession:
    """
    容器持有的服务，最多持有一个打开的项目。
    打开新项目之前会先关闭当前项目。
    """

    def __init__(
        self,
        renderer: Optional[PreviewRendererInterface] = None,
        hook_manager: Optional[HookManager] = None,
    ):
        self._renderer = renderer
        self._hook_manager = hook_manager
        self._current: Optional[Project] = None

    @property
    def is_loaded(self) -> bool:
        return self._current is not None and self._current.is_loaded

    @property
    def current(self) -> Project:
        if not self.is_loaded:
            raise RuntimeError("No project is currently loaded.")
        return self._current

    def create(self, name: str, path: Path, create_directory: bool = True) -> Project:
        self.close()
        self._current = Project.new(
            name, path, create_directory=create_directory,
            renderer=self._renderer, hook_manager=self._hook_manager,
        )
        return self._current

    def open(self, path: Path) -> Project:
        self.close()
        self._current = Project.load(path, renderer=self._renderer, hook_manager=self._hook_manager)
        return self._current

    def close(self) -> None:
        if self._current is not None:
            self._current.close()
            self._current = None

    def rescan(self) -> Optional[ScanReport]:
        """编辑器重新获得焦点时调用；没有打开的项目时什么也不做。"""
        if not self.is_loaded:
            return None
        return self._current.scan()
