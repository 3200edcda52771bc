"""
诊断 CLI 入口

- serve:  以 stdio 或 HTTP+SSE 方式运行 MCP 服务
- config: 输出 MCP 客户端配置片段
- prompt: 输出内置修复提示词
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

from . import __version__, server_info
from .config import Config, client_config, parse_port
from .diagnostics import SnapshotDiagnosticsProvider
from .mcp import SSEServer, StdioServerTransport, ToolRegistry
from .tools import FIX_PROMPT
from .workspace import WorkspaceFileProvider

logger = logging.getLogger(__name__)

# stdout 留给 stdio 传输，所有人类可读输出走 stderr
console = Console(stderr=True)

DEFAULT_DIAGNOSTICS_FILE = ".zhenduan/diagnostics.json"


def setup_logging(verbose: bool = False) -> None:
    """配置日志输出到 stderr"""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False, rich_tracebacks=True)],
        force=True,
    )


def create_registry(config: Config) -> ToolRegistry:
    """根据配置创建工具注册表"""
    workspace = Path(config.workspace.root).resolve()
    diagnostics_file = Path(config.workspace.diagnostics_file or DEFAULT_DIAGNOSTICS_FILE)
    if not diagnostics_file.is_absolute():
        diagnostics_file = workspace / diagnostics_file

    logger.debug(f"工作区: {workspace}, 诊断快照: {diagnostics_file}")

    return ToolRegistry(
        diagnostics_provider=SnapshotDiagnosticsProvider(diagnostics_file, str(workspace)),
        file_provider=WorkspaceFileProvider(workspace),
    )


async def serve_stdio(config: Config) -> None:
    transport = StdioServerTransport(create_registry(config), server_info())
    await transport.run()


async def serve_sse(config: Config) -> None:
    server = SSEServer(
        create_registry(config),
        server_info(),
        port=config.server.port,
        keepalive_interval=config.server.keepalive_interval,
    )
    port = await server.start()
    console.print(f"[green]✓[/green] MCP 诊断服务已启动: {server.url}/sse (端口 {port})")
    try:
        await server.wait_closed()
    finally:
        await server.stop()


def load_config(args: argparse.Namespace) -> Config:
    config = Config.load(args.config)
    if args.port is not None:
        config.server.port = args.port
    if getattr(args, "workspace", None):
        config.workspace.root = args.workspace
    if getattr(args, "diagnostics", None):
        config.workspace.diagnostics_file = args.diagnostics
    return config


def cmd_serve(args: argparse.Namespace) -> int:
    setup_logging(args.verbose)

    try:
        config = load_config(args)
    except (FileNotFoundError, ValueError) as e:
        logger.error(f"配置错误: {e}")
        return 1

    try:
        if args.transport == "stdio":
            asyncio.run(serve_stdio(config))
        else:
            asyncio.run(serve_sse(config))
    except OSError as e:
        logger.error(f"启动 MCP 服务失败: {e}")
        return 1
    except KeyboardInterrupt:
        pass

    return 0


def cmd_config(args: argparse.Namespace) -> int:
    print(json.dumps(client_config(args.port), indent=2))
    return 0


def cmd_prompt(args: argparse.Namespace) -> int:
    sys.stdout.write(FIX_PROMPT)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="zhenduan",
        description="诊断 - 编辑器诊断 MCP 服务",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
示例:
  zhenduan serve                       # stdio 模式 (由 MCP 客户端启动)
  zhenduan serve -t sse -p 8765        # HTTP+SSE 模式
  zhenduan config -p 8765              # 输出客户端配置
  zhenduan prompt                      # 输出修复提示词
        """,
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"zhenduan v{__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="运行 MCP 服务")
    serve.add_argument(
        "-t", "--transport",
        choices=["stdio", "sse"],
        default="stdio",
        help="传输方式 (默认: stdio)",
    )
    serve.add_argument(
        "-p", "--port",
        type=parse_port,
        default=None,
        help="HTTP 监听端口，0 为随机端口",
    )
    serve.add_argument(
        "-w", "--workspace",
        type=str,
        help="工作区根目录 (默认: 当前目录)",
    )
    serve.add_argument(
        "-d", "--diagnostics",
        type=str,
        help=f"诊断快照文件 (默认: <workspace>/{DEFAULT_DIAGNOSTICS_FILE})",
    )
    serve.add_argument(
        "-c", "--config",
        type=str,
        help="配置文件路径",
    )
    serve.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="输出调试日志",
    )
    serve.set_defaults(func=cmd_serve)

    config = subparsers.add_parser("config", help="输出 MCP 客户端配置")
    config.add_argument(
        "-p", "--port",
        type=parse_port,
        default=None,
        help="SSE 服务端口 (不指定则输出 stdio 配置)",
    )
    config.set_defaults(func=cmd_config)

    prompt = subparsers.add_parser("prompt", help="输出修复提示词")
    prompt.set_defaults(func=cmd_prompt)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """主入口"""
    parser = build_parser()
    args = parser.parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
