"""
事件总线

同步、进程内的发布订阅，事件类型为带载荷的枚举。
"""
from typing import Dict, List, Callable, Optional, Union
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
import logging


logger = logging.getLogger(__name__)


class EventType(str, Enum):
    """生命周期事件类型"""
    WORKFLOW_CREATED = "workflow_created"
    WORKFLOW_UPDATED = "workflow_updated"
    WORKFLOW_DELETED = "workflow_deleted"
    WORKFLOW_COMPLETED = "workflow_completed"
    WORKFLOW_FAILED = "workflow_failed"
    WORKFLOW_CANCELLED = "workflow_cancelled"


@dataclass
class Event:
    """事件基类"""
    workflow_id: str
    timestamp: datetime = field(default_factory=datetime.utcnow, init=False)

    event_type = None  # type: Optional[EventType]


@dataclass
class WorkflowCreated(Event):
    name: str = ""
    event_type = EventType.WORKFLOW_CREATED


@dataclass
class WorkflowUpdated(Event):
    event_type = EventType.WORKFLOW_UPDATED


@dataclass
class WorkflowDeleted(Event):
    event_type = EventType.WORKFLOW_DELETED


@dataclass
class WorkflowCompleted(Event):
    execution_id: str = ""
    execution_time: float = 0.0
    event_type = EventType.WORKFLOW_COMPLETED


@dataclass
class WorkflowFailed(Event):
    execution_id: str = ""
    error: Optional[str] = None
    event_type = EventType.WORKFLOW_FAILED


@dataclass
class WorkflowCancelled(Event):
    execution_id: str = ""
    event_type = EventType.WORKFLOW_CANCELLED


Listener = Callable[[Event], None]


class EventBus:
    """同步事件总线"""

    def __init__(self):
        self.subscribers: Dict[EventType, List[Listener]] = {}

    def on(self, event: Union[EventType, str], callback: Listener):
        """订阅事件"""
        if not callable(callback):
            raise TypeError("Event listener must be callable")
        event_type = EventType(event)
        self.subscribers.setdefault(event_type, []).append(callback)
        logger.debug(f"Subscribed listener to '{event_type.value}'")

    def off(self, event: Union[EventType, str], callback: Listener) -> bool:
        """取消订阅"""
        event_type = EventType(event)
        listeners = self.subscribers.get(event_type, [])
        if callback not in listeners:
            return False
        listeners.remove(callback)
        if not listeners:
            del self.subscribers[event_type]
        return True

    def emit(self, event: Event):
        """按注册顺序通知所有订阅者"""
        if event.event_type is None:
            raise ValueError(f"Event {type(event).__name__} has no event type")

        # 复制一份，回调中增删订阅不影响本次分发
        listeners = list(self.subscribers.get(event.event_type, []))
        for listener in listeners:
            try:
                listener(event)
            except Exception as e:
                logger.error(
                    f"Error in event listener for '{event.event_type.value}': {e}",
                    exc_info=True
                )

        logger.debug(
            f"Emitted '{event.event_type.value}' to {len(listeners)} listener(s)"
        )

    def listener_count(self, event: Union[EventType, str]) -> int:
        return len(self.subscribers.get(EventType(event), []))
