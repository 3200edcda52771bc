"""SSE 组件单元测试"""

import pytest

from zhenduan.mcp.protocol import JSONRPCResponse
from zhenduan.mcp.session import ProtocolSession
from zhenduan.mcp.sse import SSEChannel, SessionTable, format_sse
from zhenduan.mcp.transport import TransportError


class TestSessionTable:
    """SessionTable 测试"""

    def test_add_get_remove(self, registry, info):
        table = SessionTable()
        session = ProtocolSession(registry, info)

        table.add(session)
        assert table.get(session.session_id) is session
        assert session.session_id in table
        assert len(table) == 1

        assert table.remove(session.session_id) is True
        assert table.get(session.session_id) is None
        assert table.remove(session.session_id) is False
        assert len(table) == 0

    def test_duplicate_id_rejected(self, registry, info):
        """测试会话 ID 冲突"""
        table = SessionTable()
        table.add(ProtocolSession(registry, info, session_id="same"))
        with pytest.raises(ValueError):
            table.add(ProtocolSession(registry, info, session_id="same"))

    def test_snapshot_is_copy(self, registry, info):
        table = SessionTable()
        table.add(ProtocolSession(registry, info))
        snapshot = table.snapshot()
        table.remove(snapshot[0].session_id)
        assert len(snapshot) == 1


class TestSSEChannel:
    """SSEChannel 测试"""

    @pytest.mark.asyncio
    async def test_fifo(self):
        channel = SSEChannel()
        await channel.send(JSONRPCResponse.success(1, {}))
        await channel.send(JSONRPCResponse.success(2, {}))
        assert (await channel.get()).id == 1
        assert (await channel.get()).id == 2

    @pytest.mark.asyncio
    async def test_close_ends_stream(self):
        """测试关闭后流结束且不能再发送"""
        channel = SSEChannel()
        channel.close()
        channel.close()
        assert await channel.get() is None
        with pytest.raises(TransportError):
            await channel.send(JSONRPCResponse.success(1, {}))


class TestFormatSSE:
    """SSE 编码测试"""

    def test_single_line(self):
        assert format_sse("endpoint", "/message?sessionId=abc") == (
            "event: endpoint\ndata: /message?sessionId=abc\n\n"
        )

    def test_multi_line_data(self):
        """测试多行数据拆成多个 data 字段"""
        assert format_sse("message", "a\nb") == "event: message\ndata: a\ndata: b\n\n"
