"""诊断与服务事件

诊断存储和 SSE 服务在状态变化时发布事件，宿主可订阅后做刷新或统计。
发布是同步且非阻塞的，没有订阅者时什么都不做。
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional, Set, Tuple


class EventType(Enum):
    """事件类型"""

    DIAGNOSTICS_CHANGED = "diagnostics_changed"

    SESSION_OPENED = "session_opened"
    SESSION_CLOSED = "session_closed"

    SERVER_STARTED = "server_started"
    SERVER_STOPPED = "server_stopped"


@dataclass
class Event:
    type: EventType
    timestamp: float = field(default_factory=time.time)


@dataclass
class DiagnosticsChangedEvent(Event):
    """某些文件的诊断被替换或清空"""

    type: EventType = EventType.DIAGNOSTICS_CHANGED
    uris: List[str] = field(default_factory=list)
    total: int = 0


@dataclass
class SessionEvent(Event):
    """SSE 会话打开/关闭，open_sessions 为变化后的会话数"""

    type: EventType = EventType.SESSION_OPENED
    session_id: Optional[str] = None
    open_sessions: int = 0


@dataclass
class ServerEvent(Event):
    type: EventType = EventType.SERVER_STARTED
    port: Optional[int] = None


class EventBroker:
    """按事件类型分发到订阅队列

    每个订阅者一个有界队列，队列满时丢弃最旧的事件，发布方永不等待。
    """

    def __init__(self, buffer_size: int = 64):
        self.buffer_size = buffer_size
        self._queues: Dict[EventType, Set[asyncio.Queue]] = {}
        self._watchers: Set[asyncio.Task] = set()

    def subscribe(
        self,
        event_types: Iterable[EventType],
        cancel_event: Optional[asyncio.Event] = None,
    ) -> asyncio.Queue:
        """订阅一组事件类型，cancel_event 被触发后自动退订"""
        types: Tuple[EventType, ...] = tuple(event_types)
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.buffer_size)
        for event_type in types:
            self._queues.setdefault(event_type, set()).add(queue)

        if cancel_event is not None:
            watcher = asyncio.get_running_loop().create_task(cancel_event.wait())
            self._watchers.add(watcher)
            watcher.add_done_callback(self._watchers.discard)
            watcher.add_done_callback(lambda _: self.unsubscribe(queue, types))

        return queue

    def unsubscribe(self, queue: asyncio.Queue, event_types: Iterable[EventType]) -> None:
        for event_type in event_types:
            self._queues.get(event_type, set()).discard(queue)

    def subscriber_count(self, event_type: EventType) -> int:
        return len(self._queues.get(event_type, ()))

    def publish(self, event: Event) -> None:
        for queue in tuple(self._queues.get(event.type, ())):
            self._offer(queue, event)

    @staticmethod
    def _offer(queue: asyncio.Queue, event: Event) -> None:
        if queue.full():
            queue.get_nowait()
        queue.put_nowait(event)
