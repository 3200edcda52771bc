"""工具基类"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class ToolError(Exception):
    """工具执行失败，会话保持打开"""

    pass


class ToolInputError(ToolError):
    """参数不满足 inputSchema"""

    def __init__(self, tool_name: str, field: str, reason: str):
        super().__init__(f"Invalid arguments for {tool_name}: {field}: {reason}")
        self.tool_name = tool_name
        self.field = field


class Tool(ABC):
    """只读工具抽象基类"""

    @property
    @abstractmethod
    def name(self) -> str:
        """工具名称"""
        pass

    @property
    @abstractmethod
    def description(self) -> str:
        """工具描述 (给调用方 Agent 看)"""
        pass

    @property
    def parameters(self) -> dict[str, Any]:
        """参数 JSON Schema"""
        return {"type": "object", "properties": {}}

    @abstractmethod
    def execute(self, **kwargs) -> str:
        """执行工具，返回文本结果"""
        pass
