"""工具注册表

固定暴露三个工具，按名称分发。参数在分发前用 inputSchema 校验。
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List

from jsonschema import Draft7Validator
from jsonschema.exceptions import ValidationError, best_match

from ..diagnostics import DiagnosticsProvider, FileProvider
from ..tools import (
    GetDiagnosticsTool,
    GetFileContextTool,
    GetFixPromptTool,
    Tool,
    ToolError,
    ToolInputError,
)
from .protocol import MCPTool, MCPToolResult

logger = logging.getLogger(__name__)


class UnknownToolError(Exception):
    """请求的工具不存在"""

    def __init__(self, name: str):
        super().__init__(f"Unknown tool: {name}")
        self.name = name


def _error_field(error: ValidationError) -> str:
    """定位出错字段，缺失的必填字段返回字段名本身"""
    if error.validator == "required" and isinstance(error.instance, dict):
        missing = [key for key in error.validator_value if key not in error.instance]
        if missing:
            return ".".join([*map(str, error.path), missing[0]])
    return ".".join(str(p) for p in error.path) if error.path else "arguments"


class ToolRegistry:
    """诊断工具注册表

    工具列表在构造时确定，之后不可变。
    """

    def __init__(self, diagnostics_provider: DiagnosticsProvider, file_provider: FileProvider):
        tools: List[Tool] = [
            GetDiagnosticsTool(diagnostics_provider),
            GetFileContextTool(file_provider),
            GetFixPromptTool(),
        ]
        self._tools: Dict[str, Tool] = {tool.name: tool for tool in tools}
        self._descriptors = tuple(
            MCPTool(name=tool.name, description=tool.description, inputSchema=tool.parameters)
            for tool in tools
        )
        self._validators = {
            tool.name: Draft7Validator(tool.parameters) for tool in tools
        }

    def list_tools(self) -> List[MCPTool]:
        """全部工具描述，顺序固定"""
        return list(self._descriptors)

    def get(self, name: str) -> Tool:
        tool = self._tools.get(name)
        if tool is None:
            raise UnknownToolError(name)
        return tool

    def validate(self, name: str, arguments: Any) -> None:
        if not isinstance(arguments, dict):
            raise ToolInputError(name, "arguments", f"{arguments!r} is not of type 'object'")
        error = best_match(self._validators[name].iter_errors(arguments))
        if error is not None:
            raise ToolInputError(name, _error_field(error), error.message)

    def call_tool(self, name: str, arguments: Any = None) -> MCPToolResult:
        """调用工具

        工具自身的失败 (参数错误、文件不可读等) 转为 isError 结果返回；
        未知工具名抛出 UnknownToolError，由会话转成协议级错误。
        """
        tool = self.get(name)
        if arguments is None:
            arguments = {}

        try:
            self.validate(name, arguments)
            text = tool.execute(**arguments)
        except ToolError as e:
            logger.warning(f"工具 {name} 执行失败: {e}")
            return MCPToolResult.error(str(e))
        except Exception as e:
            logger.exception(f"工具 {name} 执行异常: {e}")
            return MCPToolResult.error(f"Tool {name} failed: {e}")

        logger.debug(f"工具 {name} 返回 {len(text)} 字符")
        return MCPToolResult.text(text)
