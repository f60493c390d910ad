# plugins/core_assets/models.py

from enum import Enum
from pathlib import PurePath
from typing import Any, List, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, ValidationInfo, model_validator

# --- 文件约定 ---
DATABASE_FILENAME = "db.ultra"
LIBRARY_DIRNAME = "Library"
# 从数据库读取时使用的校验上下文：所有持久化字段都必须显式给出
DATABASE_CONTEXT = {"database": True}


def _require_stored_fields(data: Any, info: ValidationInfo, fields: tuple) -> Any:
    if info.context and info.context.get("database") and isinstance(data, dict):
        missing = [name for name in fields if name not in data]
        if missing:
            raise ValueError(f"Missing required database fields: {', '.join(missing)}")
    return data


class AssetType(str, Enum):
    UNKNOWN = "unknown"
    MODEL = "model"
    TEXTURE = "texture"


MODEL_EXTENSIONS = frozenset({".3ds", ".fbx", ".dae", ".x", ".stl", ".wrl", ".obj"})
TEXTURE_EXTENSIONS = frozenset({".png", ".jpg", ".bmp", ".tga"})

# 索引遍历类型桶的固定顺序
TRACKED_TYPES = (AssetType.MODEL, AssetType.TEXTURE)


def detect_asset_type(path: PurePath) -> AssetType:
    """按扩展名（不区分大小写）判断文件的资产类型。"""
    suffix = path.suffix.lower()
    if suffix in MODEL_EXTENSIONS:
        return AssetType.MODEL
    if suffix in TEXTURE_EXTENSIONS:
        return AssetType.TEXTURE
    return AssetType.UNKNOWN


class AssetRecord(BaseModel):
    """
    一个被项目追踪的模型或纹理文件。
    id 一旦分配就不再改变；Library 中的副本总是 `<id><原扩展名>`。
    """
    id: UUID = Field(default_factory=uuid4, frozen=True)
    type: AssetType
    source_path: str = Field(..., min_length=1, description="相对于项目根目录的 POSIX 路径")
    last_modified: int = Field(default=0, description="文件系统修改时间（纳秒）")
    # 扫描纪元只存在于内存中，不写入数据库
    purge_generation: int = Field(default=0, exclude=True)

    @model_validator(mode="before")
    @classmethod
    def check_stored_fields(cls, data: Any, info: ValidationInfo) -> Any:
        return _require_stored_fields(data, info, ("id", "type", "source_path", "last_modified"))

    @property
    def extension(self) -> str:
        return PurePath(self.source_path).suffix

    @property
    def library_filename(self) -> str:
        return f"{self.id}{self.extension}"


class ProjectRecord(BaseModel):
    """项目数据库 (db.ultra) 的序列化形式。"""
    name: str = Field(..., min_length=1)
    version: int = Field(default=1, ge=1)
    assets: List[AssetRecord] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def check_stored_fields(cls, data: Any, info: ValidationInfo) -> Any:
        return _require_stored_fields(data, info, ("name", "version", "assets"))


class SyncAction(str, Enum):
    ADDED = "added"
    UPDATED = "updated"
    REMOVED = "removed"


class SyncOutcome(BaseModel):
    """一次扫描中单个资产的处理结果。"""
    action: SyncAction
    asset_type: AssetType
    source_path: str
    asset_id: UUID
    ok: bool = True
    reason: Optional[str] = None


class ScanReport(BaseModel):
    epoch: int
    outcomes: List[SyncOutcome] = Field(default_factory=list)

    def _with_action(self, action: SyncAction) -> List[SyncOutcome]:
        return [o for o in self.outcomes if o.action == action]

    @property
    def added(self) -> List[SyncOutcome]:
        return self._with_action(SyncAction.ADDED)

    @property
    def updated(self) -> List[SyncOutcome]:
        return self._with_action(SyncAction.UPDATED)

    @property
    def removed(self) -> List[SyncOutcome]:
        return self._with_action(SyncAction.REMOVED)

    @property
    def failures(self) -> List[SyncOutcome]:
        return [o for o in self.outcomes if not o.ok]
