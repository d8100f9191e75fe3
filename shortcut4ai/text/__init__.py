"""Grammar correction, assistant conversation and history."""

from .history import ConversationHistory, ConversationTurn, Role
from .processor import InstructionProfile, TextProcessor
from .providers import ChatProvider, ClaudeChatProvider, OpenAIChatProvider, create_provider

__all__ = [
    "ConversationHistory",
    "ConversationTurn",
    "Role",
    "InstructionProfile",
    "TextProcessor",
    "ChatProvider",
    "ClaudeChatProvider",
    "OpenAIChatProvider",
    "create_provider",
]
