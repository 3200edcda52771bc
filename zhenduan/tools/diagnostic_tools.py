"""诊断相关的三个只读工具"""

from __future__ import annotations

from typing import Any

from ..diagnostics import DiagnosticsProvider, FileProvider, serialize_diagnostics
from .base import Tool, ToolError

FIX_PROMPT_VERSION = "1"

FIX_PROMPT = """You are a diagnostics-driven code fixer.

You must only act based on diagnostics explicitly provided
by the get_diagnostics tool.

Rules:
- Do not guess missing context.
- Do not refactor or redesign.
- Do not change public APIs unless diagnostics require it.
- Do not suppress errors by disabling checks or using unsafe shortcuts.
- The goal is to make the diagnostics disappear.

Workflow:
1. Call get_diagnostics.
2. Select which diagnostics to fix.
3. If needed, call get_file_context.
4. Produce a fix.

Output:
- Output git unified diff only.
- No explanations unless explicitly requested.
"""


class GetDiagnosticsTool(Tool):
    """返回编辑器当前全部诊断"""

    def __init__(self, provider: DiagnosticsProvider):
        self._provider = provider

    @property
    def name(self) -> str:
        return "get_diagnostics"

    @property
    def description(self) -> str:
        return """Get all current diagnostics (errors, warnings, hints)
from the active editor workspace.

The diagnostics are directly provided by language servers
and reflect the exact content shown in the editor's Problems panel.

No filtering or interpretation is applied.
The caller must decide which diagnostics to act on."""

    def execute(self, **kwargs) -> str:
        return serialize_diagnostics(self._provider())


class GetFileContextTool(Tool):
    """读取工作区内的源文件"""

    def __init__(self, provider: FileProvider):
        self._provider = provider

    @property
    def name(self) -> str:
        return "get_file_context"

    @property
    def description(self) -> str:
        return """Retrieve the full content of a source file
from the current editor workspace.

This tool should be used only when diagnostics
reference a file and code context is required."""

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "path": {"type": "string"},
            },
            "required": ["path"],
        }

    def execute(self, path: str, **kwargs) -> str:
        try:
            return self._provider(path)
        except ToolError:
            raise
        except Exception as e:
            raise ToolError(f"Failed to read '{path}': {e}") from e


class GetFixPromptTool(Tool):
    """返回内置的修复提示词"""

    @property
    def name(self) -> str:
        return "get_fix_prompt"

    @property
    def description(self) -> str:
        return f"Get the built-in diagnostics fixing prompt (v{FIX_PROMPT_VERSION})."

    def execute(self, **kwargs) -> str:
        return FIX_PROMPT
