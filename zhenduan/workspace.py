"""工作区文件读取"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Union

logger = logging.getLogger(__name__)


class FileProviderError(Exception):
    """文件不存在、不可读或位于工作区之外"""

    def __init__(self, path: str, reason: str):
        super().__init__(f"{reason}: {path}")
        self.path = path
        self.reason = reason


class WorkspaceFileProvider:
    """按工作区相对路径读取文本文件

    读取原始字节再按 UTF-8 解码，不做换行转换。
    """

    def __init__(self, workspace_dir: Union[str, Path] = "."):
        self.workspace_dir = Path(workspace_dir).resolve()

    def resolve(self, path: str) -> Path:
        """解析为绝对路径，拒绝工作区之外的路径"""
        if not path:
            raise FileProviderError(path, "Empty path")

        candidate = Path(path)
        if not candidate.is_absolute():
            candidate = self.workspace_dir / candidate
        resolved = candidate.resolve()

        if resolved != self.workspace_dir and self.workspace_dir not in resolved.parents:
            raise FileProviderError(path, "Path is outside the workspace")

        return resolved

    def read(self, path: str) -> str:
        file_path = self.resolve(path)

        if not file_path.exists():
            raise FileProviderError(path, "File not found")
        if not file_path.is_file():
            raise FileProviderError(path, "Not a file")

        try:
            return file_path.read_bytes().decode("utf-8")
        except UnicodeDecodeError:
            raise FileProviderError(path, "File is not valid UTF-8 text")
        except OSError as e:
            logger.warning(f"读取文件失败 {file_path}: {e}")
            raise FileProviderError(path, f"Cannot read file ({e.strerror or e})")

    __call__ = read
