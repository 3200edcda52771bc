"""配置管理"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

SERVER_KEY = "editor-diagnostics"
SERVER_DESCRIPTION = "Expose editor Problems as diagnostics-only MCP service"


def parse_port(value: Any) -> int:
    """校验端口，0 表示由系统分配"""
    try:
        port = int(value)
    except (TypeError, ValueError):
        raise ValueError(f"端口必须是整数: {value!r}")
    if isinstance(value, bool) or not 0 <= port <= 65535:
        raise ValueError(f"端口超出范围 0-65535: {value!r}")
    return port


@dataclass
class ServerConfig:
    """HTTP 服务配置 (监听地址固定为 127.0.0.1)"""

    port: int = 0
    keepalive_interval: float = 15.0


@dataclass
class WorkspaceConfig:
    """工作区配置"""

    root: str = "."
    diagnostics_file: Optional[str] = None


@dataclass
class Config:
    """主配置"""

    server: ServerConfig = field(default_factory=ServerConfig)
    workspace: WorkspaceConfig = field(default_factory=WorkspaceConfig)

    @classmethod
    def load(cls, config_path: str | Path | None = None) -> "Config":
        """加载配置

        显式指定的文件必须存在；未指定时按搜索路径查找，找不到则使用默认值。
        环境变量 ZHENDUAN_PORT / ZHENDUAN_WORKSPACE 优先于文件。
        """
        if config_path is not None:
            if not Path(config_path).exists():
                raise FileNotFoundError(f"配置文件不存在: {config_path}")
            config = cls.from_yaml(config_path)
        else:
            found = cls.find_config_file()
            config = cls.from_yaml(found) if found else cls()

        config.apply_env()
        return config

    @staticmethod
    def find_config_file() -> Path | None:
        """查找配置文件"""
        # 优先级: 当前目录 > 用户目录
        search_paths = [
            Path.cwd() / "config" / "zhenduan.yaml",
            Path.home() / ".zhenduan" / "config.yaml",
        ]

        for path in search_paths:
            if path.exists():
                return path

        return None

    @classmethod
    def from_yaml(cls, config_path: str | Path) -> "Config":
        """从 YAML 文件加载配置"""
        with open(config_path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ValueError(f"配置文件格式错误: {config_path}")

        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Config":
        server_data = data.get("server") or {}
        workspace_data = data.get("workspace") or {}

        keepalive = float(server_data.get("keepalive_interval", 15.0))
        if keepalive <= 0:
            raise ValueError(f"keepalive_interval 必须大于 0: {keepalive}")

        return cls(
            server=ServerConfig(
                port=parse_port(server_data.get("port", 0) or 0),
                keepalive_interval=keepalive,
            ),
            workspace=WorkspaceConfig(
                root=str(workspace_data.get("root", ".")),
                diagnostics_file=workspace_data.get("diagnostics_file"),
            ),
        )

    def apply_env(self) -> None:
        """应用环境变量覆盖"""
        port = os.environ.get("ZHENDUAN_PORT")
        if port:
            self.server.port = parse_port(port)

        workspace = os.environ.get("ZHENDUAN_WORKSPACE")
        if workspace:
            self.workspace.root = workspace


def client_config(port: Optional[int] = None) -> Dict[str, Any]:
    """生成 MCP 客户端配置片段

    服务运行中 (已知端口) 时给出 SSE 地址，否则给出 stdio 启动命令。
    """
    if port:
        entry: Dict[str, Any] = {
            "url": f"http://127.0.0.1:{port}/sse",
            "transport": {"type": "sse"},
        }
    else:
        entry = {
            "command": "zhenduan",
            "args": ["serve", "--transport", "stdio"],
            "transport": {"type": "stdio"},
        }
    entry["description"] = SERVER_DESCRIPTION

    return {"mcpServers": {SERVER_KEY: entry}}
