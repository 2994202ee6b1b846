from .chat import STARTERS, ChatAssistant, ChatMessage, ChatReply, Conversation, ConversationStarter
from .navigation import (
    Highlight,
    HighlightTracker,
    Navigation,
    NavigationGuide,
    load_guides,
    parse_navigation,
    resolve_navigation,
)

__all__ = [
    "STARTERS",
    "ChatAssistant",
    "ChatMessage",
    "ChatReply",
    "Conversation",
    "ConversationStarter",
    "Highlight",
    "HighlightTracker",
    "Navigation",
    "NavigationGuide",
    "load_guides",
    "parse_navigation",
    "resolve_navigation",
]
