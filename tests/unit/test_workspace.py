"""工作区文件读取测试"""

import os
from pathlib import Path

import pytest

from zhenduan.workspace import FileProviderError, WorkspaceFileProvider


class TestWorkspaceFileProvider:
    """WorkspaceFileProvider 测试"""

    @pytest.fixture
    def provider(self, workspace_dir):
        return WorkspaceFileProvider(workspace_dir)

    def test_read_relative(self, provider, sample_ts_file):
        """测试读取相对路径"""
        assert provider.read("a.ts") == Path(sample_ts_file).read_text(encoding="utf-8")

    def test_callable(self, provider, sample_ts_file):
        """测试可直接作为 provider 调用"""
        assert provider("a.ts") == provider.read("a.ts")

    def test_read_nested(self, provider, workspace_dir):
        """测试读取子目录文件"""
        nested = Path(workspace_dir) / "src" / "lib"
        nested.mkdir(parents=True)
        (nested / "util.py").write_text("def f():\n    pass\n", encoding="utf-8")
        assert provider.read("src/lib/util.py") == "def f():\n    pass\n"

    def test_crlf_preserved(self, provider, workspace_dir):
        """测试换行符原样保留"""
        (Path(workspace_dir) / "win.txt").write_bytes(b"line1\r\nline2\r\n")
        assert provider.read("win.txt") == "line1\r\nline2\r\n"

    def test_missing_file(self, provider):
        """测试文件不存在"""
        with pytest.raises(FileProviderError) as exc_info:
            provider.read("missing.ts")
        assert exc_info.value.path == "missing.ts"
        assert "missing.ts" in str(exc_info.value)

    def test_directory_rejected(self, provider, workspace_dir):
        """测试目录不能读取"""
        os.mkdir(os.path.join(workspace_dir, "src"))
        with pytest.raises(FileProviderError, match="Not a file"):
            provider.read("src")

    def test_parent_escape_rejected(self, provider):
        """测试 .. 越出工作区"""
        with pytest.raises(FileProviderError, match="outside the workspace"):
            provider.read("../secret.txt")

    def test_absolute_outside_rejected(self, provider, tmp_path):
        """测试工作区外的绝对路径"""
        outside = tmp_path / "outside.txt"
        outside.write_text("secret")
        with pytest.raises(FileProviderError, match="outside the workspace"):
            provider.read(str(outside))

    def test_absolute_inside_allowed(self, provider, sample_ts_file):
        """测试工作区内的绝对路径"""
        assert "console.log" in provider.read(sample_ts_file)

    def test_empty_path(self, provider):
        """测试空路径"""
        with pytest.raises(FileProviderError):
            provider.read("")

    def test_binary_file_rejected(self, provider, workspace_dir):
        """测试非 UTF-8 文件"""
        (Path(workspace_dir) / "blob.bin").write_bytes(b"\xff\xfe\x00\x81")
        with pytest.raises(FileProviderError, match="UTF-8"):
            provider.read("blob.bin")
