"""MCP HTTP+SSE 传输

多会话 HTTP 服务：
- GET  /sse                      打开事件流，创建会话
- POST /message?sessionId=<id>   向会话投递 JSON-RPC 消息，响应从事件流返回
- GET  /health                   存活检查 + 当前会话数
- OPTIONS *                      CORS 预检

只监听回环地址，不做鉴权。
"""

from __future__ import annotations

import asyncio
import json
import logging
import socket
from enum import Enum
from typing import AsyncIterator, Dict, List, Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response, StreamingResponse
from starlette.datastructures import MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from ..events import EventBroker, EventType, ServerEvent, SessionEvent
from .protocol import Implementation, JSONRPCResponse
from .registry import ToolRegistry
from .session import Channel, ProtocolSession, SessionClosedError
from .transport import TransportError

logger = logging.getLogger(__name__)

LOOPBACK_HOST = "127.0.0.1"

# 空闲事件流的保活间隔，同时决定断线检测的延迟
DEFAULT_KEEPALIVE_INTERVAL = 15.0

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


def format_sse(event: str, data: str) -> str:
    """编码一个 SSE 事件"""
    lines = "".join(f"data: {line}\n" for line in data.split("\n"))
    return f"event: {event}\n{lines}\n"


class SSEChannel(Channel):
    """会话的事件流队列，None 表示流结束"""

    def __init__(self):
        self._queue: asyncio.Queue[Optional[JSONRPCResponse]] = asyncio.Queue()
        self._closed = False

    @property
    def is_closed(self) -> bool:
        return self._closed

    async def send(self, message: JSONRPCResponse) -> None:
        if self._closed:
            raise TransportError("事件流已关闭")
        self._queue.put_nowait(message)

    async def get(self) -> Optional[JSONRPCResponse]:
        return await self._queue.get()

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(None)


class SessionTable:
    """sessionId -> 会话 映射

    只通过 add/get/remove 访问；每个操作内部没有 await，在事件循环中是原子的。
    """

    def __init__(self):
        self._sessions: Dict[str, ProtocolSession] = {}

    def add(self, session: ProtocolSession) -> None:
        if session.session_id in self._sessions:
            raise ValueError(f"会话 ID 冲突: {session.session_id}")
        self._sessions[session.session_id] = session

    def get(self, session_id: str) -> Optional[ProtocolSession]:
        return self._sessions.get(session_id)

    def remove(self, session_id: str) -> bool:
        return self._sessions.pop(session_id, None) is not None

    def snapshot(self) -> List[ProtocolSession]:
        return list(self._sessions.values())

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions


class CORSHeadersMiddleware:
    """为所有响应加上宽松的 CORS 头，OPTIONS 直接返回 204"""

    def __init__(self, app: ASGIApp):
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        if scope["method"] == "OPTIONS":
            response = Response(status_code=204, headers=CORS_HEADERS)
            await response(scope, receive, send)
            return

        async def send_with_cors(message: Message) -> None:
            if message["type"] == "http.response.start":
                headers = MutableHeaders(scope=message)
                for key, value in CORS_HEADERS.items():
                    headers[key] = value
            await send(message)

        await self.app(scope, receive, send_with_cors)


class ServerState(Enum):
    """服务生命周期"""

    CREATED = "created"
    RUNNING = "running"
    STOPPED = "stopped"


class SSEServer:
    """HTTP+SSE MCP 服务

    由调用方持有，生命周期 created -> running -> stopped。

    使用示例:
        server = SSEServer(registry, Implementation(name="zhenduan", version="0.1.0"))
        port = await server.start()
        ...
        await server.stop()
    """

    def __init__(
        self,
        registry: ToolRegistry,
        server_info: Implementation,
        port: int = 0,
        keepalive_interval: float = DEFAULT_KEEPALIVE_INTERVAL,
        broker: Optional[EventBroker] = None,
    ):
        self.registry = registry
        self.server_info = server_info
        self.requested_port = port
        self.keepalive_interval = keepalive_interval
        self.sessions = SessionTable()

        self._broker = broker
        self._state = ServerState.CREATED
        self._port: Optional[int] = None
        self._server: Optional[uvicorn.Server] = None
        self._serve_task: Optional[asyncio.Task] = None
        self.app = self._create_app()

    @property
    def state(self) -> ServerState:
        return self._state

    @property
    def port(self) -> Optional[int]:
        """实际监听端口 (运行中才有值)"""
        return self._port

    @property
    def url(self) -> Optional[str]:
        if self._port is None:
            return None
        return f"http://{LOOPBACK_HOST}:{self._port}"

    # ------------------------------------------------------------------
    # 会话管理
    # ------------------------------------------------------------------

    def open_session(self) -> tuple[ProtocolSession, SSEChannel]:
        """创建会话并登记到会话表"""
        channel = SSEChannel()
        session = ProtocolSession(self.registry, self.server_info, channel=channel)
        session.on_close(self._on_session_closed)
        self.sessions.add(session)

        logger.info(f"SSE 会话已建立: {session.session_id} (当前 {len(self.sessions)} 个)")
        self._publish(SessionEvent(
            type=EventType.SESSION_OPENED,
            session_id=session.session_id,
            open_sessions=len(self.sessions),
        ))
        return session, channel

    def _on_session_closed(self, session: ProtocolSession) -> None:
        if self.sessions.remove(session.session_id):
            self._publish(SessionEvent(
                type=EventType.SESSION_CLOSED,
                session_id=session.session_id,
                open_sessions=len(self.sessions),
            ))

    def _publish(self, event) -> None:
        if self._broker is not None:
            self._broker.publish(event)

    async def _event_stream(
        self,
        request: Request,
        session: ProtocolSession,
        channel: SSEChannel,
    ) -> AsyncIterator[str]:
        try:
            yield format_sse("endpoint", f"/message?sessionId={session.session_id}")

            while True:
                try:
                    message = await asyncio.wait_for(channel.get(), timeout=self.keepalive_interval)
                except asyncio.TimeoutError:
                    if await request.is_disconnected():
                        logger.info(f"客户端断开: {session.session_id}")
                        break
                    yield ": keepalive\n\n"
                    continue

                if message is None:
                    break

                yield format_sse("message", message.to_json())
        finally:
            session.close()

    # ------------------------------------------------------------------
    # HTTP 应用
    # ------------------------------------------------------------------

    def _create_app(self) -> ASGIApp:
        app = FastAPI(title="zhenduan MCP", version=self.server_info.version, docs_url=None, redoc_url=None)

        @app.get("/sse")
        async def open_stream(request: Request) -> StreamingResponse:
            session, channel = self.open_session()
            return StreamingResponse(
                self._event_stream(request, session, channel),
                media_type="text/event-stream",
                headers={
                    "Cache-Control": "no-cache",
                    "Connection": "keep-alive",
                    "X-Accel-Buffering": "no",
                },
            )

        @app.post("/message")
        async def post_message(request: Request) -> Response:
            session_id = request.query_params.get("sessionId")
            if not session_id:
                return PlainTextResponse("Missing sessionId", status_code=400)

            session = self.sessions.get(session_id)
            if session is None:
                return PlainTextResponse("Session not found", status_code=404)

            body = await request.body()
            try:
                payload = json.loads(body)
            except (json.JSONDecodeError, UnicodeDecodeError) as e:
                logger.warning(f"[{session_id}] 无效消息体: {e}")
                return PlainTextResponse("Invalid message", status_code=400)

            try:
                await session.receive(payload)
            except (SessionClosedError, TransportError):
                return PlainTextResponse("Session not found", status_code=404)

            return PlainTextResponse("Accepted", status_code=200)

        @app.get("/health")
        async def health() -> JSONResponse:
            return JSONResponse({"status": "ok", "sessions": len(self.sessions)})

        return CORSHeadersMiddleware(app)

    # ------------------------------------------------------------------
    # 生命周期
    # ------------------------------------------------------------------

    def _bind_socket(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((LOOPBACK_HOST, self.requested_port))
        except OSError:
            sock.close()
            raise
        return sock

    async def start(self) -> int:
        """绑定端口并开始服务，返回实际端口

        Raises:
            OSError: 端口绑定失败
            RuntimeError: 服务不处于 created 状态
        """
        if self._state is not ServerState.CREATED:
            raise RuntimeError(f"服务状态为 {self._state.value}，无法启动")

        try:
            sock = self._bind_socket()
        except OSError:
            self._state = ServerState.STOPPED
            raise

        config = uvicorn.Config(
            self.app,
            log_config=None,
            log_level="warning",
            access_log=False,
            lifespan="off",
            timeout_graceful_shutdown=max(1, int(self.keepalive_interval)),
        )
        self._server = uvicorn.Server(config)
        self._serve_task = asyncio.create_task(self._server.serve(sockets=[sock]))

        while not self._server.started:
            if self._serve_task.done():
                self._state = ServerState.STOPPED
                sock.close()
                self._serve_task.result()
                raise RuntimeError("HTTP 服务启动失败")
            await asyncio.sleep(0.01)

        self._port = sock.getsockname()[1]
        self._state = ServerState.RUNNING
        logger.info(f"MCP SSE 服务已启动: {self.url}/sse")
        self._publish(ServerEvent(type=EventType.SERVER_STARTED, port=self._port))
        return self._port

    async def wait_closed(self) -> None:
        """等待服务退出 (例如收到 Ctrl-C)"""
        if self._serve_task is not None:
            await asyncio.shield(self._serve_task)

    async def stop(self) -> None:
        """关闭全部会话并停止服务 (幂等)"""
        if self._state is ServerState.STOPPED:
            return
        if self._state is ServerState.CREATED:
            self._state = ServerState.STOPPED
            return

        for session in self.sessions.snapshot():
            session.close()

        if self._server is not None:
            self._server.should_exit = True
        if self._serve_task is not None:
            try:
                await self._serve_task
            except Exception as e:
                logger.error(f"HTTP 服务退出异常: {e}")

        port = self._port
        self._state = ServerState.STOPPED
        self._port = None
        logger.info("MCP SSE 服务已停止")
        self._publish(ServerEvent(type=EventType.SERVER_STOPPED, port=port))

    async def __aenter__(self) -> "SSEServer":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.stop()
