from flexistream.chat import Conversation, Message
from flexistream.parsing import ParseResult, RichContentPipeline, parse_rich_content
from flexistream.payloads import ArtifactPayload, ToolPayload
from flexistream.streaming import SessionStore, StreamCoordinator, StreamStatus, StreamUpdate

__all__ = [
    "Conversation",
    "Message",
    "ParseResult",
    "RichContentPipeline",
    "parse_rich_content",
    "ArtifactPayload",
    "ToolPayload",
    "SessionStore",
    "StreamCoordinator",
    "StreamStatus",
    "StreamUpdate",
]
__version__ = "0.1.0"
