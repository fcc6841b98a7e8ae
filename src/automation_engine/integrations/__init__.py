"""External system integrations"""

# Event Bus
from .event_bus import (
    EventBus,
    Event,
    EventType,
    WorkflowCreated,
    WorkflowUpdated,
    WorkflowDeleted,
    WorkflowCompleted,
    WorkflowFailed,
    WorkflowCancelled
)

# Side-effect channels
from .channels import (
    Channels,
    EmailSender,
    AIProvider,
    Notifier,
    WebhookClient,
    LoggingEmailSender,
    MockAIProvider,
    LoggingNotifier,
    MockWebhookClient
)

__all__ = [
    # Event Bus
    "EventBus",
    "Event",
    "EventType",
    "WorkflowCreated",
    "WorkflowUpdated",
    "WorkflowDeleted",
    "WorkflowCompleted",
    "WorkflowFailed",
    "WorkflowCancelled",

    # Channels
    "Channels",
    "EmailSender",
    "AIProvider",
    "Notifier",
    "WebhookClient",
    "LoggingEmailSender",
    "MockAIProvider",
    "LoggingNotifier",
    "MockWebhookClient"
]
