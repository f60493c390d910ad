# plugins/core_assets/previews.py

import os
import logging
from pathlib import Path

from PIL import Image, ImageDraw, ImageOps

from .contracts import PreviewRendererInterface
from .models import AssetType

logger = logging.getLogger(__name__)

DEFAULT_PREVIEW_SIZE = 128
# 预览画布的背景色
BACKGROUND_COLOR = (50, 50, 50, 255)
LABEL_COLOR = (220, 220, 220, 255)


def preview_size_from_env() -> int:
    value = os.getenv("ULTRA_PREVIEW_SIZE")
    if not value:
        return DEFAULT_PREVIEW_SIZE
    try:
        size = int(value)
    except ValueError:
        logger.warning(f"Ignoring invalid ULTRA_PREVIEW_SIZE={value!r}")
        return DEFAULT_PREVIEW_SIZE
    return size if size > 0 else DEFAULT_PREVIEW_SIZE


class ThumbnailRenderer(PreviewRendererInterface):
    """
    基于 Pillow 的默认渲染器。
    纹理被缩放并居中到固定尺寸的正方形画布上；模型解析不在核心范围内，
    因此模型预览是一个带扩展名标签的占位图块。
    """

    def __init__(self, size: int = DEFAULT_PREVIEW_SIZE):
        self.size = size

    def render(self, asset_type: AssetType, path: Path) -> Image.Image:
        if asset_type == AssetType.TEXTURE:
            return self._render_texture(Path(path))
        return self._render_placeholder(Path(path))

    def release(self, handle: Image.Image) -> None:
        handle.close()

    def _canvas(self) -> Image.Image:
        return Image.new("RGBA", (self.size, self.size), BACKGROUND_COLOR)

    def _render_texture(self, path: Path) -> Image.Image:
        with Image.open(path) as source:
            image = ImageOps.contain(source.convert("RGBA"), (self.size, self.size))
        canvas = self._canvas()
        offset = ((self.size - image.width) // 2, (self.size - image.height) // 2)
        canvas.paste(image, offset, image)
        image.close()
        return canvas

    def _render_placeholder(self, path: Path) -> Image.Image:
        canvas = self._canvas()
        draw = ImageDraw.Draw(canvas)
        label = path.suffix.lstrip(".").upper() or "?"
        left, top, right, bottom = draw.textbbox((0, 0), label)
        position = ((self.size - (right - left)) // 2, (self.size - (bottom - top)) // 2)
        draw.text(position, label, fill=LABEL_COLOR)
        return canvas
