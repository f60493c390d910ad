# backend/core/errors.py

from typing import Optional
from pathlib import Path


class UltraEdError(Exception):
    """所有项目核心异常的基类。"""

    def __init__(self, message: str, path: Optional[Path] = None):
        super().__init__(message)
        self.path = path

    def __str__(self):
        if self.path is not None:
            return f"{super().__str__()} (path: {self.path})"
        return super().__str__()


class UserCancelled(UltraEdError):
    """用户关闭了文件对话框。调用方把它当作无操作，而不是失败。"""


class IOFailure(UltraEdError):
    """打开、读取或写入文件失败。"""


class FormatError(UltraEdError):
    """归档条目缺失，或文档无法解析。"""


class CorruptData(UltraEdError):
    """解压没有产生数据，或产生的字节数不对。"""


class DatabaseValidationError(UltraEdError):
    """项目数据库缺少必需字段或包含非法值。"""
