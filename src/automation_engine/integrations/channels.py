"""
外部副作用通道

节点处理器通过这些接口发送邮件、调用AI、推送通知和外部Webhook。
默认实现只记录日志并返回模拟结果，真实集成由调用方注入。
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional
from uuid import uuid4
import asyncio
import logging


logger = logging.getLogger(__name__)


class EmailSender(ABC):
    """邮件发送接口"""

    @abstractmethod
    async def send(
        self,
        to: str,
        subject: str,
        body: str,
        variables: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        pass


class AIProvider(ABC):
    """AI补全接口"""

    @abstractmethod
    async def complete(
        self,
        task: str,
        prompt: str,
        model: str,
        temperature: float
    ) -> Dict[str, Any]:
        pass


class Notifier(ABC):
    """站内/推送通知接口"""

    @abstractmethod
    async def notify(self, channel: str, message: str, recipients: List[str]) -> Dict[str, Any]:
        pass


class WebhookClient(ABC):
    """外部Webhook调用接口"""

    @abstractmethod
    async def request(
        self,
        method: str,
        url: str,
        headers: Dict[str, str],
        body: Any
    ) -> Dict[str, Any]:
        pass


class LoggingEmailSender(EmailSender):
    """只记录日志的邮件发送实现"""

    def __init__(self, latency: float = 0.0):
        self.latency = latency
        self.sent: List[Dict[str, Any]] = []

    async def send(self, to, subject, body, variables=None):
        if self.latency:
            await asyncio.sleep(self.latency)
        message_id = str(uuid4())
        self.sent.append({"to": to, "subject": subject, "body": body, "message_id": message_id})
        logger.info(f"Email queued to {to} (subject={subject!r}, message_id={message_id})")
        return {"sent": True, "message_id": message_id}


class MockAIProvider(AIProvider):
    """模拟AI提供方（用于测试和演示）"""

    def __init__(self, latency: float = 0.0, confidence: float = 0.9):
        self.latency = latency
        self.confidence = confidence
        self.mock_responses: Dict[str, str] = {}

    async def complete(self, task, prompt, model, temperature):
        if self.latency:
            await asyncio.sleep(self.latency)
        result = self.mock_responses.get(task, f"AI {task} completed")
        logger.info(f"AI task '{task}' completed with model {model}")
        return {
            "result": result,
            "model": model,
            "confidence": self.confidence,
            "processing_time": self.latency * 1000,
        }


class LoggingNotifier(Notifier):
    """只记录日志的通知实现"""

    def __init__(self):
        self.delivered: List[Dict[str, Any]] = []

    async def notify(self, channel, message, recipients):
        notification_id = str(uuid4())
        self.delivered.append({
            "id": notification_id,
            "channel": channel,
            "message": message,
            "recipients": list(recipients),
        })
        logger.info(f"Notification {notification_id} sent via {channel} to {len(recipients)} recipient(s)")
        return {"delivered": True, "notification_id": notification_id, "channel": channel}


class MockWebhookClient(WebhookClient):
    """模拟Webhook客户端，按URL返回预设响应"""

    def __init__(self):
        self.responses: Dict[str, Dict[str, Any]] = {}
        self.requests: List[Dict[str, Any]] = []

    async def request(self, method, url, headers, body):
        self.requests.append({"method": method, "url": url, "headers": headers, "body": body})
        response = self.responses.get(url, {"status_code": 200, "body": None})
        logger.info(f"Webhook {method} {url} -> {response.get('status_code')}")
        return dict(response)


@dataclass
class Channels:
    """节点处理器可用的副作用通道集合"""
    email: EmailSender = field(default_factory=LoggingEmailSender)
    ai: AIProvider = field(default_factory=MockAIProvider)
    notifier: Notifier = field(default_factory=LoggingNotifier)
    webhook: WebhookClient = field(default_factory=MockWebhookClient)
