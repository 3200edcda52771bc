"""诊断数据模型与诊断来源

DiagnosticItem 是对外暴露的唯一诊断形态：每次查询时从编辑器当前状态
重新构建，不缓存、不持久化。编辑器侧以 LSP publishDiagnostics 的形式
喂入诊断，这里负责转换成四级严重程度和工作区相对路径。
"""

from __future__ import annotations

import json
import logging
import os
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Union
from urllib.parse import unquote, urlparse

from pydantic import BaseModel, ConfigDict, NonNegativeInt

from .events import DiagnosticsChangedEvent, EventBroker

logger = logging.getLogger(__name__)


class Severity(str, Enum):
    """诊断严重程度 (封闭枚举)"""

    ERROR = "error"
    WARNING = "warning"
    INFO = "info"
    HINT = "hint"


# LSP DiagnosticSeverity: 1=Error 2=Warning 3=Information 4=Hint
_LSP_SEVERITY = {
    1: Severity.ERROR,
    2: Severity.WARNING,
    3: Severity.INFO,
    4: Severity.HINT,
}


def uri_to_path(uri: str) -> str:
    """file:// URI 转文件系统路径，其他字符串原样返回"""
    parsed = urlparse(uri)
    if parsed.scheme != "file":
        return uri
    path = unquote(parsed.path)
    # Windows: /c:/foo -> c:/foo
    if len(path) >= 3 and path[0] == "/" and path[2] == ":":
        path = path[1:]
    return path


def relative_to_workspace(path: str, workspace_root: str) -> str:
    """去掉工作区根目录前缀 (同时处理 / 和 \\ 分隔符)"""
    if not workspace_root:
        return path
    root = workspace_root.rstrip("/\\")
    for sep in ("/", "\\"):
        prefix = root + sep
        if path.startswith(prefix):
            return path[len(prefix):]
    return path


class DiagnosticItem(BaseModel):
    """一条诊断"""

    model_config = ConfigDict(frozen=True)

    file: str
    line: NonNegativeInt
    character: NonNegativeInt
    severity: Severity
    source: Optional[str] = None
    message: str

    @classmethod
    def from_lsp(cls, uri: str, diagnostic: Dict[str, Any], workspace_root: str = "") -> "DiagnosticItem":
        """从 LSP Diagnostic 构建

        severity 缺省按 hint 处理，与编辑器 Problems 面板一致。
        """
        start = diagnostic["range"]["start"]
        return cls(
            file=relative_to_workspace(uri_to_path(uri), workspace_root),
            line=start["line"],
            character=start["character"],
            severity=_LSP_SEVERITY.get(diagnostic.get("severity"), Severity.HINT),
            source=diagnostic.get("source"),
            message=diagnostic["message"],
        )

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


def serialize_diagnostics(items: Sequence[DiagnosticItem]) -> str:
    """序列化诊断列表 (保持顺序，不增删)"""
    return json.dumps([item.to_dict() for item in items], indent=2, ensure_ascii=False)


# 协作方函数签名
DiagnosticsProvider = Callable[[], Sequence[DiagnosticItem]]
FileProvider = Callable[[str], str]


class DiagnosticsStore:
    """内存诊断存储

    按 URI 保存最近一次 publishDiagnostics 的原始诊断，查询时才转换成
    DiagnosticItem。可作为 DiagnosticsProvider 直接传给工具注册表。
    """

    def __init__(self, workspace_root: str = "", broker: Optional[EventBroker] = None):
        self.workspace_root = workspace_root
        self._broker = broker
        self._by_uri: Dict[str, List[Dict[str, Any]]] = {}

    def publish(self, uri: str, diagnostics: List[Dict[str, Any]]) -> None:
        """替换某个文件的诊断，空列表表示清除"""
        if diagnostics:
            self._by_uri[uri] = list(diagnostics)
        else:
            self._by_uri.pop(uri, None)

        logger.debug(f"诊断更新: {uri} ({len(diagnostics)} 条)")

        if self._broker is not None:
            self._broker.publish(DiagnosticsChangedEvent(uris=[uri], total=self.count()))

    def publish_params(self, params: Dict[str, Any]) -> None:
        """接收 textDocument/publishDiagnostics 通知参数"""
        self.publish(params["uri"], params.get("diagnostics", []))

    def clear(self) -> None:
        uris = list(self._by_uri)
        self._by_uri.clear()
        if self._broker is not None and uris:
            self._broker.publish(DiagnosticsChangedEvent(uris=uris, total=0))

    def count(self) -> int:
        return sum(len(diags) for diags in self._by_uri.values())

    def list_diagnostics(self) -> List[DiagnosticItem]:
        return [
            DiagnosticItem.from_lsp(uri, diag, self.workspace_root)
            for uri, diags in self._by_uri.items()
            for diag in diags
        ]

    __call__ = list_diagnostics


class SnapshotDiagnosticsProvider:
    """从 JSON 快照文件读取诊断

    文件内容为 publishDiagnostics 参数列表，或 {uri: [diagnostic, ...]} 映射。
    每次调用都重新读取文件；文件不存在视为没有诊断。
    """

    def __init__(self, path: Union[str, Path], workspace_root: str = ""):
        self.path = Path(path)
        self.workspace_root = workspace_root or os.getcwd()

    def __call__(self) -> List[DiagnosticItem]:
        if not self.path.exists():
            return []

        data = json.loads(self.path.read_text(encoding="utf-8") or "[]")

        if isinstance(data, dict):
            entries = [{"uri": uri, "diagnostics": diags} for uri, diags in data.items()]
        else:
            entries = data

        return [
            DiagnosticItem.from_lsp(entry["uri"], diag, self.workspace_root)
            for entry in entries
            for diag in entry.get("diagnostics", [])
        ]
