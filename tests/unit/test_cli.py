"""CLI 测试"""

import json
from pathlib import Path

import pytest

from zhenduan.cli import build_parser, create_registry, main
from zhenduan.config import Config
from zhenduan.tools import FIX_PROMPT


class TestParser:
    """参数解析测试"""

    def test_serve_defaults(self):
        args = build_parser().parse_args(["serve"])
        assert args.transport == "stdio"
        assert args.port is None
        assert args.verbose is False

    def test_serve_sse(self):
        args = build_parser().parse_args(["serve", "-t", "sse", "-p", "8765", "-w", "/srv/proj"])
        assert args.transport == "sse"
        assert args.port == 8765
        assert args.workspace == "/srv/proj"

    def test_invalid_port(self):
        """测试非法端口被拒绝"""
        with pytest.raises(SystemExit):
            build_parser().parse_args(["serve", "-p", "99999"])

    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])


class TestCommands:
    """子命令测试"""

    def test_config_sse(self, capsys):
        """测试输出 SSE 客户端配置"""
        assert main(["config", "-p", "8765"]) == 0
        data = json.loads(capsys.readouterr().out)
        assert data["mcpServers"]["editor-diagnostics"]["url"] == "http://127.0.0.1:8765/sse"

    def test_config_stdio(self, capsys):
        """测试输出 stdio 客户端配置"""
        assert main(["config"]) == 0
        data = json.loads(capsys.readouterr().out)
        assert data["mcpServers"]["editor-diagnostics"]["command"] == "zhenduan"

    def test_prompt(self, capsys):
        """测试输出修复提示词"""
        assert main(["prompt"]) == 0
        assert capsys.readouterr().out == FIX_PROMPT

    def test_serve_missing_config(self, tmp_path):
        """测试指定的配置文件不存在"""
        assert main(["serve", "-c", str(tmp_path / "nope.yaml")]) == 1


class TestCreateRegistry:
    """注册表装配测试"""

    def test_reads_workspace(self, tmp_path):
        """测试按工作区读取快照和文件"""
        (tmp_path / ".zhenduan").mkdir()
        (tmp_path / ".zhenduan" / "diagnostics.json").write_text(json.dumps({
            f"file://{tmp_path}/a.ts": [{
                "range": {"start": {"line": 3, "character": 1}, "end": {"line": 3, "character": 2}},
                "severity": 1,
                "source": "ts",
                "message": "x is undefined",
            }],
        }))
        (tmp_path / "a.ts").write_text("console.log(x);\n", encoding="utf-8")

        config = Config()
        config.workspace.root = str(tmp_path)
        registry = create_registry(config)

        diagnostics = json.loads(registry.call_tool("get_diagnostics").content[0].text)
        assert diagnostics == [
            {"file": "a.ts", "line": 3, "character": 1, "severity": "error", "source": "ts", "message": "x is undefined"},
        ]
        assert registry.call_tool("get_file_context", {"path": "a.ts"}).content[0].text == "console.log(x);\n"

    def test_custom_diagnostics_file(self, tmp_path):
        """测试自定义快照路径"""
        snapshot = Path(tmp_path) / "problems.json"
        snapshot.write_text("[]")

        config = Config()
        config.workspace.root = str(tmp_path)
        config.workspace.diagnostics_file = str(snapshot)

        result = create_registry(config).call_tool("get_diagnostics")
        assert json.loads(result.content[0].text) == []
