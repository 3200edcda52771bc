"""MCP (Model Context Protocol) 服务端

把编辑器诊断以三个只读工具的形式暴露给外部 Agent，支持 stdio 和
HTTP+SSE 两种传输。
"""

from .protocol import (
    LATEST_PROTOCOL_VERSION,
    Implementation,
    JSONRPCError,
    JSONRPCNotification,
    JSONRPCRequest,
    JSONRPCResponse,
    MCPTool,
    MCPToolCall,
    MCPToolResult,
    ProtocolError,
)
from .registry import ToolRegistry, UnknownToolError
from .session import Channel, ProtocolSession, SessionClosedError, SessionState
from .sse import SSEServer, ServerState, SessionTable
from .transport import StdioServerTransport, TransportError

__all__ = [
    # Protocol types
    "LATEST_PROTOCOL_VERSION",
    "Implementation",
    "JSONRPCRequest",
    "JSONRPCNotification",
    "JSONRPCResponse",
    "JSONRPCError",
    "MCPTool",
    "MCPToolCall",
    "MCPToolResult",
    "ProtocolError",
    # Registry
    "ToolRegistry",
    "UnknownToolError",
    # Session
    "Channel",
    "ProtocolSession",
    "SessionClosedError",
    "SessionState",
    # Transports
    "StdioServerTransport",
    "TransportError",
    "SSEServer",
    "ServerState",
    "SessionTable",
]
