"""
诊断 (zhenduan) - 编辑器诊断 MCP 服务

把编辑器 Problems 面板里的错误、警告和提示通过 MCP 暴露给外部 Agent。
只读：查询诊断、读取文件、获取修复提示词。
"""

__version__ = "0.1.0"

from .config import Config, client_config
from .diagnostics import (
    DiagnosticItem,
    DiagnosticsStore,
    Severity,
    SnapshotDiagnosticsProvider,
)
from .events import EventBroker, EventType
from .mcp import (
    Implementation,
    ProtocolSession,
    SSEServer,
    StdioServerTransport,
    ToolRegistry,
)
from .workspace import FileProviderError, WorkspaceFileProvider

SERVER_NAME = "zhenduan"


def server_info() -> Implementation:
    """本服务的 MCP 实现信息"""
    return Implementation(name=SERVER_NAME, version=__version__)


__all__ = [
    "__version__",
    "Config",
    "client_config",
    "DiagnosticItem",
    "DiagnosticsStore",
    "Severity",
    "SnapshotDiagnosticsProvider",
    "EventBroker",
    "EventType",
    "Implementation",
    "ProtocolSession",
    "SSEServer",
    "StdioServerTransport",
    "ToolRegistry",
    "FileProviderError",
    "WorkspaceFileProvider",
    "server_info",
]
