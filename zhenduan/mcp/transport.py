"""MCP Stdio 传输

一个进程对应一个会话：从 stdin 逐行读取 JSON-RPC 请求，响应逐行写到
stdout。stdout 只承载协议帧，日志一律走 stderr。
"""

from __future__ import annotations

import asyncio
import logging
import sys
from typing import Optional, Protocol, Set

from .protocol import PARSE_ERROR, Implementation, JSONRPCResponse
from .registry import ToolRegistry
from .session import Channel, ProtocolSession, SessionClosedError

logger = logging.getLogger(__name__)

# 单行消息上限
MAX_LINE_BYTES = 16 * 1024 * 1024


class TransportError(Exception):
    """传输层错误 (通道不可用)"""

    pass


class LineWriter(Protocol):
    """asyncio.StreamWriter 的最小子集"""

    def write(self, data: bytes) -> None: ...

    async def drain(self) -> None: ...


class StdioChannel(Channel):
    """按行写出 JSON-RPC 响应"""

    def __init__(self, writer: LineWriter, encoding: str = "utf-8"):
        self._writer = writer
        self._encoding = encoding
        self._lock = asyncio.Lock()
        self._closed = False

    @property
    def is_closed(self) -> bool:
        return self._closed

    async def send(self, message: JSONRPCResponse) -> None:
        if self._closed:
            raise TransportError("通道已关闭")

        data = (message.to_json() + "\n").encode(self._encoding)
        # 并发完成的响应整行写出，互不穿插
        async with self._lock:
            try:
                self._writer.write(data)
                await self._writer.drain()
            except (BrokenPipeError, ConnectionResetError) as e:
                self._closed = True
                raise TransportError(f"写入 stdout 失败: {e}")

    def close(self) -> None:
        self._closed = True


async def connect_stdio(limit: int = MAX_LINE_BYTES):
    """把当前进程的 stdin/stdout 包装成 asyncio 流"""
    loop = asyncio.get_running_loop()

    reader = asyncio.StreamReader(limit=limit)
    read_transport, _ = await loop.connect_read_pipe(
        lambda: asyncio.StreamReaderProtocol(reader), sys.stdin
    )

    write_transport, write_protocol = await loop.connect_write_pipe(
        asyncio.streams.FlowControlMixin, sys.stdout
    )
    writer = asyncio.StreamWriter(write_transport, write_protocol, None, loop)

    return reader, writer, read_transport


class StdioServerTransport:
    """Stdio 服务端传输

    会话从 run() 开始，到 stdin EOF、通道损坏或 stop() 为止。
    每行请求在独立任务中处理，响应可以乱序完成。
    """

    def __init__(
        self,
        registry: ToolRegistry,
        server_info: Implementation,
        reader: Optional[asyncio.StreamReader] = None,
        writer: Optional[LineWriter] = None,
        encoding: str = "utf-8",
    ):
        self.registry = registry
        self.server_info = server_info
        self.encoding = encoding
        self.session: Optional[ProtocolSession] = None

        self._reader = reader
        self._writer = writer
        self._read_transport: Optional[asyncio.BaseTransport] = None
        self._tasks: Set[asyncio.Task] = set()
        self._stopping = False

    async def run(self) -> None:
        """运行会话直到输入结束"""
        if self._reader is None or self._writer is None:
            self._reader, self._writer, self._read_transport = await connect_stdio()

        channel = StdioChannel(self._writer, self.encoding)
        self.session = ProtocolSession(self.registry, self.server_info, channel=channel)
        logger.info(f"Stdio 会话开始: {self.session.session_id}")

        try:
            while not self._stopping:
                try:
                    line = await self._reader.readline()
                except ValueError as e:
                    # 超长行已被丢弃，回报解析错误后继续
                    logger.warning(f"消息过长: {e}")
                    await channel.send(
                        JSONRPCResponse.failure(None, PARSE_ERROR, "Parse error: message too long")
                    )
                    continue

                if not line:
                    break

                line = line.strip()
                if not line:
                    continue

                task = asyncio.create_task(self._process(line))
                self._tasks.add(task)
                task.add_done_callback(self._tasks.discard)

            if self._tasks:
                await asyncio.gather(*self._tasks, return_exceptions=True)
        finally:
            for task in self._tasks:
                task.cancel()
            self.session.close()
            if self._read_transport is not None:
                self._read_transport.close()
            logger.info("Stdio 会话结束")

    async def _process(self, line: bytes) -> None:
        try:
            await self.session.receive(line.decode(self.encoding, errors="replace"))
        except SessionClosedError:
            pass
        except TransportError as e:
            # 通道损坏，终止会话
            logger.error(f"Stdio 通道错误: {e}")
            self.stop()

    def stop(self) -> None:
        """主动结束会话"""
        if self._stopping:
            return
        self._stopping = True
        if self._read_transport is not None:
            self._read_transport.close()
        if self._reader is not None:
            self._reader.feed_eof()
