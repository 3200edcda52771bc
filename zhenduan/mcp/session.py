"""MCP 协议会话

每个连接的客户端对应一个 ProtocolSession，独占一个消息通道。
状态机: initializing -> ready -> closed
"""

from __future__ import annotations

import logging
import uuid
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Union

from pydantic import BaseModel, ValidationError

from .protocol import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    METHOD_NOT_FOUND,
    SESSION_NOT_INITIALIZED,
    Implementation,
    InitializeResult,
    JSONRPCNotification,
    JSONRPCRequest,
    JSONRPCResponse,
    ListToolsResult,
    MCPToolCall,
    ProtocolError,
    ServerCapabilities,
    negotiate_protocol_version,
    parse_message,
)
from .registry import ToolRegistry, UnknownToolError

logger = logging.getLogger(__name__)


class SessionState(Enum):
    """会话状态"""

    INITIALIZING = "initializing"
    READY = "ready"
    CLOSED = "closed"


class SessionClosedError(Exception):
    """会话已关闭"""

    def __init__(self, session_id: str):
        super().__init__(f"Session closed: {session_id}")
        self.session_id = session_id


class RequestError(Exception):
    """可直接映射为 JSON-RPC 错误的请求失败"""

    def __init__(self, code: int, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


class Channel(ABC):
    """会话的出站消息通道"""

    @abstractmethod
    async def send(self, message: JSONRPCResponse) -> None:
        """发送一帧响应"""
        pass

    @abstractmethod
    def close(self) -> None:
        """释放通道"""
        pass


# 初始化前允许的方法
_PRE_INIT_METHODS = frozenset({"initialize", "ping"})


class ProtocolSession:
    """MCP 服务端会话

    解码入站帧、调用工具注册表、编码响应。每个请求恰好应答一次，
    响应携带请求的 id，调用方可乱序匹配。
    """

    def __init__(
        self,
        registry: ToolRegistry,
        server_info: Implementation,
        channel: Optional[Channel] = None,
        session_id: Optional[str] = None,
        instructions: Optional[str] = None,
    ):
        self.session_id = session_id or uuid.uuid4().hex
        self.registry = registry
        self.server_info = server_info
        self.instructions = instructions
        self.client_info: Optional[Implementation] = None
        self.protocol_version: Optional[str] = None

        self._channel = channel
        self._state = SessionState.INITIALIZING
        self._close_callbacks: List[Callable[["ProtocolSession"], None]] = []

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_closed(self) -> bool:
        return self._state is SessionState.CLOSED

    def on_close(self, callback: Callable[["ProtocolSession"], None]) -> None:
        """注册关闭回调"""
        self._close_callbacks.append(callback)

    def close(self) -> None:
        """关闭会话 (幂等)"""
        if self._state is SessionState.CLOSED:
            return

        self._state = SessionState.CLOSED
        if self._channel is not None:
            self._channel.close()

        for callback in self._close_callbacks:
            callback(self)

        logger.info(f"会话已关闭: {self.session_id}")

    async def receive(self, raw: Union[str, bytes, Dict[str, Any]]) -> None:
        """处理一帧入站消息，并把响应写回本会话的通道"""
        response = await self.handle(raw)
        if response is not None and self._channel is not None:
            await self._channel.send(response)

    async def handle(self, raw: Union[str, bytes, Dict[str, Any]]) -> Optional[JSONRPCResponse]:
        """处理一帧入站消息，返回响应 (通知返回 None)

        Raises:
            SessionClosedError: 会话已关闭
        """
        if self.is_closed:
            raise SessionClosedError(self.session_id)

        try:
            message = parse_message(raw)
        except ProtocolError as e:
            logger.warning(f"[{self.session_id}] 无效消息: {e.message}")
            return e.to_response()

        if isinstance(message, JSONRPCNotification):
            self._handle_notification(message)
            return None

        return self._handle_request(message)

    def _handle_notification(self, notification: JSONRPCNotification) -> None:
        if notification.method == "notifications/initialized":
            logger.debug(f"[{self.session_id}] 客户端初始化完成")
        else:
            logger.debug(f"[{self.session_id}] 忽略通知: {notification.method}")

    def _handle_request(self, request: JSONRPCRequest) -> JSONRPCResponse:
        logger.debug(f"[{self.session_id}] 请求 {request.id}: {request.method}")

        try:
            result = self._dispatch(request.method, request.params or {})
        except RequestError as e:
            return JSONRPCResponse.failure(request.id, e.code, e.message)
        except UnknownToolError as e:
            logger.warning(f"[{self.session_id}] {e}")
            return JSONRPCResponse.failure(request.id, INVALID_PARAMS, str(e))
        except Exception as e:
            logger.exception(f"[{self.session_id}] 处理请求失败: {request.method}")
            return JSONRPCResponse.failure(request.id, INTERNAL_ERROR, f"Internal error: {e}")

        return JSONRPCResponse.success(request.id, result)

    def _dispatch(self, method: str, params: Dict[str, Any]) -> BaseModel | Dict[str, Any]:
        if self._state is SessionState.INITIALIZING and method not in _PRE_INIT_METHODS:
            raise RequestError(SESSION_NOT_INITIALIZED, "Session not initialized")

        if method == "initialize":
            return self._initialize(params)

        if method == "ping":
            return {}

        if method == "tools/list":
            return ListToolsResult(tools=self.registry.list_tools())

        if method == "tools/call":
            try:
                call = MCPToolCall(**params)
            except ValidationError as e:
                raise RequestError(INVALID_PARAMS, f"Invalid params: {e.errors()[0]['msg']}")
            return self.registry.call_tool(call.name, call.arguments)

        raise RequestError(METHOD_NOT_FOUND, f"Method not found: {method}")

    def _initialize(self, params: Dict[str, Any]) -> InitializeResult:
        client_info = params.get("clientInfo")
        if isinstance(client_info, dict):
            try:
                self.client_info = Implementation(**client_info)
            except ValidationError:
                self.client_info = None

        self.protocol_version = negotiate_protocol_version(params.get("protocolVersion"))
        self._state = SessionState.READY

        client = self.client_info.name if self.client_info else "unknown"
        logger.info(f"[{self.session_id}] 初始化完成: client={client} protocol={self.protocol_version}")

        return InitializeResult(
            protocolVersion=self.protocol_version,
            capabilities=ServerCapabilities(),
            serverInfo=self.server_info,
            instructions=self.instructions,
        )
