from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Literal, Sequence

from auth import UserSession
from backend import BackendError, DataBackend
from llm import ChatClient, LLMError, get_client
from support import TicketService

from .navigation import Navigation, NavigationGuide, parse_navigation, resolve_navigation

logger = logging.getLogger(__name__)

Role = Literal["user", "assistant"]

CHAT_TEMPERATURE = 0.7
TICKET_AFTER_USER_MESSAGES = 3

GREETING = (
    "Hey, I'm Casper, the friendly ghost... No i am an AI Assistant here to help you "
    "navigate the app. How can I assist you today?"
)
NO_RESPONSE = "I apologize, but I cannot provide a response at this time."
ERROR_RESPONSE = "I apologize, but I encountered an error. Please try again later."
TICKET_CREATED = (
    "Support ticket created successfully! Our team will review your conversation "
    "and get back to you soon."
)
TICKET_FAILED = "Sorry, there was an error creating your support ticket. Please try again later."

SYSTEM_PROMPT = """You are Casper, an AI assistant for the AI Influencer platform. You can help users navigate the app and explain features.

When users ask about specific features, you should:
1. Provide a clear explanation
2. Guide them to the relevant page
3. Explain how to use the feature

Navigation commands you can use (use exactly these phrases):
- NAVIGATE_TO: dashboard
- NAVIGATE_TO: settings
- NAVIGATE_TO: planner
- NAVIGATE_TO: admin-panel

Example: If a user asks "How do I create an influencer?", you should:
1. Explain that they can create an influencer from the dashboard
2. Include "NAVIGATE_TO: dashboard" in your response
3. Explain the steps: "Click the + button in the top right, fill in the name and template ID..."

Keep responses friendly and helpful. Always offer to explain more if needed."""


@dataclass(frozen=True)
class ConversationStarter:
    text: str
    prompt: str


STARTERS: tuple[ConversationStarter, ...] = (
    ConversationStarter("Report a Bug", "I'd like to report a bug I encountered in the app."),
    ConversationStarter("AI Avatar Help", "I need help with creating or managing AI avatars."),
    ConversationStarter("App Navigation", "Can you help me navigate through the app's features?"),
    ConversationStarter("General Questions", "I have some general questions about the platform."),
)


@dataclass(frozen=True)
class ChatMessage:
    role: Role
    content: str

    def as_dict(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass
class Conversation:
    messages: list[ChatMessage] = field(default_factory=lambda: [ChatMessage("assistant", GREETING)])
    ticket_created: bool = False

    @classmethod
    def from_dicts(cls, items: Sequence[dict[str, str]]) -> "Conversation":
        messages = [ChatMessage(item["role"], item["content"]) for item in items]
        return cls(messages=messages) if messages else cls()

    def add(self, role: Role, content: str) -> ChatMessage:
        message = ChatMessage(role, content)
        self.messages.append(message)
        return message

    @property
    def user_message_count(self) -> int:
        return sum(1 for message in self.messages if message.role == "user")

    @property
    def show_ticket_button(self) -> bool:
        return not self.ticket_created and self.user_message_count >= TICKET_AFTER_USER_MESSAGES

    @property
    def show_starters(self) -> bool:
        return len(self.messages) == 1

    def as_payload(self) -> list[dict[str, str]]:
        return [message.as_dict() for message in self.messages]


@dataclass(frozen=True)
class ChatReply:
    message: str
    navigation: Navigation | None = None
    failed: bool = False


class ChatAssistant:
    def __init__(
        self,
        session: UserSession,
        backend: DataBackend,
        *,
        llm_client: ChatClient | None = None,
        guides: dict[str, NavigationGuide] | None = None,
    ) -> None:
        self._session = session
        self._backend = backend.with_token(session.access_token)
        self._llm = llm_client or get_client()
        self._guides = guides

    def send(self, conversation: Conversation, text: str) -> ChatReply:
        text = (text or "").strip()
        if not text:
            raise ValueError("message is empty")
        if not self._session.openai_api_key:
            raise ValueError("add an OpenAI API key in settings to use the assistant")

        messages = [{"role": "system", "content": SYSTEM_PROMPT}, *conversation.as_payload()]
        messages.append({"role": "user", "content": text})
        conversation.add("user", text)
        try:
            raw = self._llm.complete(
                messages, api_key=self._session.openai_api_key, temperature=CHAT_TEMPERATURE
            )
        except LLMError as exc:
            logger.error("assistant completion failed: %s", exc)
            conversation.add("assistant", ERROR_RESPONSE)
            return ChatReply(ERROR_RESPONSE, failed=True)

        clean, destination = parse_navigation(raw.strip() or NO_RESPONSE)
        conversation.add("assistant", clean)
        if destination is None:
            return ChatReply(clean)
        return ChatReply(clean, navigation=resolve_navigation(destination, self._guides))

    def create_ticket(self, conversation: Conversation) -> ChatReply:
        try:
            TicketService(self._backend).create_ticket(self._session.user_id, conversation.as_payload())
        except BackendError as exc:
            logger.error("could not create support ticket for %s: %s", self._session.user_id, exc)
            conversation.add("assistant", TICKET_FAILED)
            return ChatReply(TICKET_FAILED, failed=True)
        conversation.ticket_created = True
        conversation.add("assistant", TICKET_CREATED)
        return ChatReply(TICKET_CREATED)
