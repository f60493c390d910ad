# plugins/core_archive/codec.py
"""
带长度头的整块压缩。

格式：4 字节小端无符号原始长度，后接一个 zlib 流。
压缩作用于整个归档而不是单个条目，条目之间的冗余可以共享。
"""

import struct
import zlib

from backend.core.errors import CorruptData

SIZE_HEADER = struct.Struct("<I")
MAX_INPUT_SIZE = 0xFFFFFFFF


def encode(data: bytes, level: int = 6) -> bytes:
    """压缩 ``data``。结果可能比输入更大。"""
    if len(data) > MAX_INPUT_SIZE:
        raise ValueError(f"Cannot encode {len(data)} bytes; the size header holds at most {MAX_INPUT_SIZE}.")
    return SIZE_HEADER.pack(len(data)) + zlib.compress(data, level)


def decode(blob: bytes) -> bytes:
    """把 :func:`encode` 产生的数据解压为与原始输入完全一致的字节。"""
    if len(blob) < SIZE_HEADER.size:
        raise CorruptData(f"Compressed data is truncated: {len(blob)} bytes is shorter than the size header.")

    (expected,) = SIZE_HEADER.unpack_from(blob)
    decompressor = zlib.decompressobj()
    try:
        # 多留一个字节：比长度头更长的流会表现为长度不符
        data = decompressor.decompress(blob[SIZE_HEADER.size:], expected + 1)
    except zlib.error as e:
        raise CorruptData(f"Compressed data could not be decompressed: {e}") from e

    if expected and not data:
        raise CorruptData("Decompression produced no data.")
    if len(data) != expected:
        raise CorruptData(f"Decompressed size mismatch: expected {expected} bytes, got {len(data)}.")
    if not decompressor.eof or decompressor.unconsumed_tail:
        raise CorruptData("Compressed stream is truncated or longer than its size header.")
    if decompressor.unused_data:
        raise CorruptData(f"Found {len(decompressor.unused_data)} unexpected bytes after the compressed stream.")
    return data
