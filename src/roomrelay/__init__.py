"""roomrelay - anonymous chat rooms relayed to an operator on Telegram."""

from roomrelay._version import __version__
from roomrelay.channels.visitor import SendFn, VisitorHub
from roomrelay.config import (
    LifecycleConfig,
    RelayConfig,
    RelaySettings,
    create_relay_service,
    get_settings,
)
from roomrelay.core.errors import (
    InvalidTransitionError,
    NotFoundError,
    PoolExhaustedError,
    RateLimitError,
    RelayPermanentError,
    RelayTransientError,
    RoomRelayError,
    ValidationError,
)
from roomrelay.core.framework import FrameworkEventHandler, RoomLifecycleController
from roomrelay.core.lease_pool import CredentialLeasePool
from roomrelay.core.rate_limiter import SecurityGate, TokenBucketRateLimiter
from roomrelay.core.registry import RoomRegistry
from roomrelay.core.relay_queue import RelayQueue, RelayTarget
from roomrelay.core.reply_router import ReplyContextRouter, interpret
from roomrelay.core.retry import retry_with_backoff
from roomrelay.core.scheduler import Scheduler
from roomrelay.core.sequencer import InMemorySequencer, SessionSequencer
from roomrelay.models.actions import (
    Approve,
    Away,
    Close,
    NeedsExplicitReply,
    Nudge,
    OperatorAction,
    Reject,
    Reply,
    Resolution,
    SleepClear,
    SleepSet,
    SleepStatus,
    Status,
)
from roomrelay.models.context import ReplyContext, correlation_key
from roomrelay.models.delivery import KnockResult, OperatorUpdate, ProviderResult, WebhookAck
from roomrelay.models.enums import (
    ContextKind,
    DeleteOutcome,
    KnockStatus,
    LeaveReason,
    MessageKind,
    SessionStatus,
)
from roomrelay.models.framework_event import FrameworkEvent
from roomrelay.models.lease import BotCredential, CredentialLease
from roomrelay.models.policy import RateLimit, RetryPolicy
from roomrelay.models.session import ChatMessage, Session
from roomrelay.providers.telegram import (
    MockTelegramProvider,
    TelegramBotProvider,
    TelegramConfig,
    TelegramProvider,
    parse_telegram_webhook,
)
from roomrelay.store.base import Snapshot, SnapshotStore
from roomrelay.store.json_file import JsonFileSnapshotStore
from roomrelay.store.memory import InMemorySnapshotStore

__all__ = [
    # Controller
    "RoomLifecycleController",
    "FrameworkEventHandler",
    "create_relay_service",
    # Config
    "LifecycleConfig",
    "RelayConfig",
    "RelaySettings",
    "get_settings",
    # Errors
    "InvalidTransitionError",
    "NotFoundError",
    "PoolExhaustedError",
    "RateLimitError",
    "RelayPermanentError",
    "RelayTransientError",
    "RoomRelayError",
    "ValidationError",
    # Components
    "CredentialLeasePool",
    "InMemorySequencer",
    "RelayQueue",
    "RelayTarget",
    "ReplyContextRouter",
    "RoomRegistry",
    "Scheduler",
    "SecurityGate",
    "SessionSequencer",
    "TokenBucketRateLimiter",
    "interpret",
    "retry_with_backoff",
    # Channels
    "SendFn",
    "VisitorHub",
    # Models
    "Approve",
    "Away",
    "BotCredential",
    "ChatMessage",
    "Close",
    "ContextKind",
    "CredentialLease",
    "DeleteOutcome",
    "FrameworkEvent",
    "KnockResult",
    "KnockStatus",
    "LeaveReason",
    "MessageKind",
    "NeedsExplicitReply",
    "Nudge",
    "OperatorAction",
    "OperatorUpdate",
    "ProviderResult",
    "RateLimit",
    "Reject",
    "Reply",
    "ReplyContext",
    "Resolution",
    "RetryPolicy",
    "Session",
    "SessionStatus",
    "SleepClear",
    "SleepSet",
    "SleepStatus",
    "Status",
    "WebhookAck",
    "correlation_key",
    # Providers
    "MockTelegramProvider",
    "TelegramBotProvider",
    "TelegramConfig",
    "TelegramProvider",
    "parse_telegram_webhook",
    # Storage
    "InMemorySnapshotStore",
    "JsonFileSnapshotStore",
    "Snapshot",
    "SnapshotStore",
    # Version
    "__version__",
]
