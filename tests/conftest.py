"""pytest 配置"""

import sys
from pathlib import Path

import pytest

# 添加项目根目录到 Python 路径
ROOT_DIR = Path(__file__).parent.parent
sys.path.insert(0, str(ROOT_DIR))

from zhenduan import DiagnosticsStore, ToolRegistry, WorkspaceFileProvider, server_info  # noqa: E402


def lsp_diagnostic(line, character, message, severity=1, source=None):
    """构造 LSP Diagnostic 字典"""
    diag = {
        "range": {
            "start": {"line": line, "character": character},
            "end": {"line": line, "character": character + 1},
        },
        "message": message,
        "severity": severity,
    }
    if source:
        diag["source"] = source
    return diag


@pytest.fixture
def make_diagnostic():
    """LSP Diagnostic 构造函数"""
    return lsp_diagnostic


@pytest.fixture
def workspace_dir(tmp_path):
    """创建临时工作目录"""
    workspace = tmp_path / "workspace"
    workspace.mkdir()
    return str(workspace)


@pytest.fixture
def sample_ts_file(workspace_dir):
    """创建示例 TypeScript 文件"""
    file_path = Path(workspace_dir) / "a.ts"
    file_path.write_text("const y = 1;\n\n\nconsole.log(x);\n", encoding="utf-8")
    return str(file_path)


@pytest.fixture
def diagnostics_store(workspace_dir):
    """包含一个错误和一个警告的诊断存储"""
    store = DiagnosticsStore(workspace_root=workspace_dir)
    store.publish(
        f"file://{workspace_dir}/a.ts",
        [lsp_diagnostic(3, 1, "x is undefined", severity=1, source="ts")],
    )
    store.publish(
        f"file://{workspace_dir}/b.ts",
        [lsp_diagnostic(10, 0, "unused var", severity=2)],
    )
    return store


@pytest.fixture
def registry(diagnostics_store, workspace_dir):
    """绑定示例诊断和临时工作区的工具注册表"""
    return ToolRegistry(
        diagnostics_provider=diagnostics_store,
        file_provider=WorkspaceFileProvider(workspace_dir),
    )


@pytest.fixture
def info():
    return server_info()
