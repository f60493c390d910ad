# backend/core/utils.py

import os
import stat
import tempfile
from pathlib import Path


def _current_umask() -> int:
    # 读取 umask 只能先设置再恢复；编辑器核心是单线程的
    mask = os.umask(0)
    os.umask(mask)
    return mask


def write_atomic(path: Path, data: bytes) -> None:
    """
    先写入同目录下的临时文件，再一次性替换目标文件。
    写入失败时，目标路径上原有的文件保持不变。
    目标已存在时沿用它的权限位，否则按 umask 使用普通新文件的权限。
    """
    path = Path(path)
    try:
        mode = stat.S_IMODE(path.stat().st_mode)
    except FileNotFoundError:
        mode = 0o666 & ~_current_umask()

    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        # mkstemp 总是以 0600 创建文件
        os.chmod(tmp_name, mode)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
