# plugins/core_archive/models.py

from abc import ABC, abstractmethod
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

# --- 文件约定 ---
SCENE_ENTRY_NAME = "scene.json"
SCENE_EXTENSION = ".ultra"
MODELS_KEY = "models"
RESOURCES_KEY = "resources"
# ustar 头部中名称字段的长度
MAX_ENTRY_NAME_BYTES = 100


def validate_entry_name(name: str) -> str:
    """归档条目名称必须是一个不含路径分隔符的普通文件名。"""
    if not name or name in (".", ".."):
        raise ValueError(f"Invalid archive entry name: {name!r}")
    if "/" in name or "\\" in name or "\0" in name:
        raise ValueError(f"Archive entry name must not contain path separators: {name!r}")
    if len(name.encode("utf-8")) > MAX_ENTRY_NAME_BYTES:
        raise ValueError(f"Archive entry name is longer than {MAX_ENTRY_NAME_BYTES} bytes: {name!r}")
    return name


class ArchiveEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    size: int = Field(..., ge=0)
    payload: bytes

    @model_validator(mode="after")
    def check_size_matches_payload(self) -> "ArchiveEntry":
        if len(self.payload) != self.size:
            raise ValueError(f"Entry '{self.name}' declares {self.size} bytes but carries {len(self.payload)}.")
        return self


# --- 可保存对象（外部协作者） ---

class SavableKind(str, Enum):
    EDITOR = "editor"
    MODEL = "model"


class SceneFragment(BaseModel):
    """
    一个可保存对象贡献的文档片段。
    editor 片段以 name 为键合并到根文档；model 片段追加到 models 数组。
    """
    kind: SavableKind
    name: Optional[str] = None
    document: Dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def check_editor_fragment_has_name(self) -> "SceneFragment":
        if self.kind == SavableKind.EDITOR and not self.name:
            raise ValueError("Editor fragments need a name to be merged into the scene document.")
        if self.kind == SavableKind.EDITOR and self.name == MODELS_KEY:
            raise ValueError(f"'{MODELS_KEY}' is reserved for model fragments.")
        return self


class SavableInterface(ABC):
    @abstractmethod
    def save(self) -> SceneFragment:
        raise NotImplementedError

    @abstractmethod
    def get_resources(self) -> Dict[str, str]:
        """返回每个附带资源文件的 ``{角色: 源文件绝对路径}``。"""
        raise NotImplementedError


class FilePickerInterface(ABC):
    """文件对话框协作者。返回 None 或抛出 UserCancelled 表示用户取消。"""

    @abstractmethod
    def pick(self, title: str, extension: str) -> Optional[Path]:
        raise NotImplementedError


# --- 批处理结果 ---

class ResourceOutcome(BaseModel):
    role: str
    filename: str
    path: Optional[str] = None
    ok: bool = True
    reason: Optional[str] = None


class SaveReport(BaseModel):
    path: Path
    success: bool
    outcomes: List[ResourceOutcome] = Field(default_factory=list)

    @property
    def failures(self) -> List[ResourceOutcome]:
        return [o for o in self.outcomes if not o.ok]

    def __bool__(self) -> bool:
        return self.success


class LoadResult(BaseModel):
    document: Dict[str, Any]
    outcomes: List[ResourceOutcome] = Field(default_factory=list)

    @property
    def failures(self) -> List[ResourceOutcome]:
        return [o for o in self.outcomes if not o.ok]
