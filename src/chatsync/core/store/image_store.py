"""ImageStore 文件系统实现

对象存储协作方的本地实现：在创建消息之前把上传的图片解析为持久引用。
- http(s) URL：已是持久引用，原样返回
- data:image/...;base64,...：解码后写入 media 目录，返回 /media/<file>
"""

import base64
import binascii
import hashlib
from pathlib import Path

import structlog
from ulid import ULID

from ..config import MEDIA_URL_PREFIX
from ..exceptions import ValidationError

log = structlog.get_logger()

# 支持的图片 MIME -> 文件扩展名
_IMAGE_EXTENSIONS: dict[str, str] = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/gif": "gif",
    "image/webp": "webp",
}


def compute_hash_and_size(content: bytes) -> tuple[str, int]:
    """计算 SHA-256 hash 和内容大小

    Args:
        content: 原始内容字节

    Returns:
        (sha256_hex, size_bytes) 元组
    """
    return hashlib.sha256(content).hexdigest(), len(content)


def parse_data_url(data_url: str) -> tuple[str, bytes]:
    """解析 base64 data URL

    Returns:
        (mime, content) 元组

    Raises:
        ValidationError: 格式错误、非图片或 base64 无法解码
    """
    header, sep, encoded = data_url.partition(",")
    if not sep or not header.startswith("data:") or not header.endswith(";base64"):
        raise ValidationError("Image must be a URL or a base64 data URL")

    mime = header[len("data:") : -len(";base64")].lower()
    if mime not in _IMAGE_EXTENSIONS:
        raise ValidationError(f"Unsupported image type: {mime or 'unknown'}")

    try:
        content = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValidationError("Image payload is not valid base64") from e
    if not content:
        raise ValidationError("Image payload is empty")
    return mime, content


class ImageStore:
    """图片存储的文件系统实现"""

    def __init__(self, media_dir: Path) -> None:
        self._media_dir = media_dir

    @property
    def media_dir(self) -> Path:
        return self._media_dir

    async def resolve(self, image: str) -> str:
        """把客户端提交的图片解析为持久引用

        Args:
            image: http(s) URL 或 base64 data URL

        Returns:
            持久引用（URL 或 /media/<file>）
        """
        if image.startswith(("http://", "https://")):
            return image

        mime, content = parse_data_url(image)
        hash_hex, size = compute_hash_and_size(content)

        filename = f"{ULID()}.{_IMAGE_EXTENSIONS[mime]}"
        file_path = self._media_dir / filename
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_path.write_bytes(content)

        log.info(
            "image_stored",
            filename=filename,
            mime=mime,
            size=size,
            sha256=hash_hex,
        )
        return f"{MEDIA_URL_PREFIX}/{filename}"

    def get_image_path(self, reference: str) -> Path | None:
        """把 /media/<file> 引用映射回本地文件路径；外部 URL 返回 None"""
        prefix = f"{MEDIA_URL_PREFIX}/"
        if not reference.startswith(prefix):
            return None
        name = reference[len(prefix) :]
        # 只接受单层文件名
        if not name or "/" in name or name.startswith("."):
            return None
        return self._media_dir / name

    def discard(self, reference: str) -> bool:
        """删除 resolve 写入的本地文件；外部 URL 不处理

        Returns:
            是否删除了文件
        """
        path = self.get_image_path(reference)
        if path is None or not path.is_file():
            return False
        path.unlink()
        log.info("image_discarded", filename=path.name)
        return True
