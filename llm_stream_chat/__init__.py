"""LLM Stream Chat: stream chat completions and segment them as they grow."""

from llm_stream_chat.cancellation import CancellationToken
from llm_stream_chat.config import ChatConfig, ChatModel, ConfigManager, apply_env_overrides
from llm_stream_chat.decoder import StreamDecoder
from llm_stream_chat.emitter import EventEmitter
from llm_stream_chat.errors import (
    Cancelled,
    ChatError,
    DecodeError,
    HttpStatusError,
    NetworkError,
    TransportError,
    UpstreamEmptyError,
)
from llm_stream_chat.events import (
    ConversationRow,
    Event,
    RowAdded,
    RowRemoved,
    RowsCleared,
    RowUpdated,
)
from llm_stream_chat.history import HistoryBuffer
from llm_stream_chat.image_host import ImageHostClient
from llm_stream_chat.models import (
    ChatRequest,
    ImageContent,
    ImageUrlPart,
    Role,
    TextContent,
    TextPart,
    Turn,
)
from llm_stream_chat.parser import IncrementalParser, ParsedOutput, Segment, parse
from llm_stream_chat.session import ChatSession
from llm_stream_chat.transport import ChatTransport, LineStream

__version__ = "0.1.0"

__all__ = [
    # Models
    "Role",
    "TextContent",
    "ImageContent",
    "TextPart",
    "ImageUrlPart",
    "Turn",
    "ChatRequest",
    # History
    "HistoryBuffer",
    # Transport and decoding
    "ChatTransport",
    "LineStream",
    "StreamDecoder",
    "CancellationToken",
    # Parser
    "parse",
    "IncrementalParser",
    "ParsedOutput",
    "Segment",
    # Events
    "ConversationRow",
    "Event",
    "RowAdded",
    "RowUpdated",
    "RowRemoved",
    "RowsCleared",
    "EventEmitter",
    # Session
    "ChatSession",
    "ImageHostClient",
    # Config
    "ChatConfig",
    "ChatModel",
    "ConfigManager",
    "apply_env_overrides",
    # Errors
    "ChatError",
    "NetworkError",
    "HttpStatusError",
    "TransportError",
    "DecodeError",
    "Cancelled",
    "UpstreamEmptyError",
]
