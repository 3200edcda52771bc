"""工具模块"""

from .base import Tool, ToolError, ToolInputError
from .diagnostic_tools import (
    FIX_PROMPT,
    FIX_PROMPT_VERSION,
    GetDiagnosticsTool,
    GetFileContextTool,
    GetFixPromptTool,
)

__all__ = [
    "Tool",
    "ToolError",
    "ToolInputError",
    "GetDiagnosticsTool",
    "GetFileContextTool",
    "GetFixPromptTool",
    "FIX_PROMPT",
    "FIX_PROMPT_VERSION",
]
