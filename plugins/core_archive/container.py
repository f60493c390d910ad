# plugins/core_archive/container.py

import io
import logging
import tarfile
from typing import List, Optional, Set

from backend.core.errors import FormatError
from .models import ArchiveEntry, validate_entry_name

logger = logging.getLogger(__name__)


class ArchiveWriter:
    """
    把命名的二进制块依次写入一个 ustar 流。
    不做目录、不做逐条压缩；压缩在整个归档完成后统一进行。
    """

    def __init__(self):
        self._buffer = io.BytesIO()
        self._tar = tarfile.open(fileobj=self._buffer, mode="w", format=tarfile.USTAR_FORMAT)
        self._names: Set[str] = set()
        self._finalized: Optional[bytes] = None

    def __contains__(self, name: str) -> bool:
        return name in self._names

    def add(self, name: str, payload: bytes) -> None:
        if self._finalized is not None:
            raise RuntimeError("Archive has already been finalized.")
        validate_entry_name(name)
        if name in self._names:
            raise ValueError(f"Archive already contains an entry named '{name}'.")

        info = tarfile.TarInfo(name=name)
        info.size = len(payload)
        info.mode = 0o644
        info.mtime = 0
        self._tar.addfile(info, io.BytesIO(payload))
        self._names.add(name)

    def finalize(self) -> bytes:
        """结束归档并返回完整的字节流；重复调用返回同一结果。"""
        if self._finalized is None:
            self._tar.close()
            self._finalized = self._buffer.getvalue()
        return self._finalized


class ArchiveReader:
    def __init__(self, data: bytes):
        try:
            self._tar = tarfile.open(fileobj=io.BytesIO(data), mode="r:")
        except tarfile.TarError as e:
            raise FormatError(f"Archive could not be read: {e}") from e

    def find(self, name: str) -> Optional[ArchiveEntry]:
        """
        顺序扫描条目头直到名称匹配或流结束。
        找不到时返回 None；存在重名时返回第一个匹配项。
        """
        try:
            for member in self._tar:
                if member.isfile() and member.name == name:
                    return self._read(member)
        except tarfile.TarError as e:
            raise FormatError(f"Archive is damaged while looking up '{name}': {e}") from e
        return None

    def names(self) -> List[str]:
        try:
            return [member.name for member in self._tar if member.isfile()]
        except tarfile.TarError as e:
            raise FormatError(f"Archive is damaged: {e}") from e

    def _read(self, member: tarfile.TarInfo) -> ArchiveEntry:
        stream = self._tar.extractfile(member)
        payload = stream.read() if stream is not None else b""
        if len(payload) != member.size:
            raise FormatError(f"Archive entry '{member.name}' is truncated.")
        return ArchiveEntry(name=member.name, size=member.size, payload=payload)

    def close(self) -> None:
        self._tar.close()

    def __enter__(self) -> "ArchiveReader":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
