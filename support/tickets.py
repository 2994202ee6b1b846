from __future__ import annotations

import logging
from typing import Any, Literal, Sequence

from backend import BackendError, DataBackend

logger = logging.getLogger(__name__)

TABLE = "support_tickets"

TicketStatus = Literal["open", "in_progress", "resolved"]
TICKET_STATUSES: tuple[str, ...] = ("open", "in_progress", "resolved")

Message = dict[str, str]


def _transcript(conversation: Sequence[Any]) -> list[Message]:
    messages: list[Message] = []
    for item in conversation:
        role = item.get("role") if isinstance(item, dict) else getattr(item, "role", None)
        content = item.get("content") if isinstance(item, dict) else getattr(item, "content", None)
        if role not in {"user", "assistant"} or content is None:
            raise ValueError("conversation entries need a user/assistant role and content")
        messages.append({"role": str(role), "content": str(content)})
    return messages


class TicketService:
    def __init__(self, backend: DataBackend) -> None:
        self._backend = backend

    def list_tickets(self) -> list[dict[str, Any]]:
        tickets = self._backend.select(TABLE, order="created_at", descending=True)
        user_ids = sorted({str(row["user_id"]) for row in tickets if row.get("user_id")})
        emails: dict[str, str] = {}
        if user_ids:
            users = self._backend.select("users", columns="id,email", filters={"id": user_ids})
            emails = {str(row["id"]): row.get("email") or "" for row in users}
        return [{**row, "email": emails.get(str(row.get("user_id")), "Unknown")} for row in tickets]

    def create_ticket(self, user_id: str, conversation: Sequence[Any]) -> dict[str, Any]:
        if not user_id:
            raise ValueError("user_id is required")
        messages = _transcript(conversation)
        if not messages:
            raise ValueError("conversation is empty")
        rows = self._backend.insert(
            TABLE, {"user_id": user_id, "conversation": messages, "status": "open"}
        )
        logger.info("support ticket %s opened for %s", rows[0].get("id"), user_id)
        return rows[0]

    def update_status(self, ticket_id: str, status: str) -> dict[str, Any]:
        if status not in TICKET_STATUSES:
            raise ValueError(f"unknown ticket status: {status}")
        rows = self._backend.update(TABLE, {"status": status}, {"id": ticket_id})
        if not rows:
            raise BackendError(code="not_found", message=f"ticket {ticket_id} not found", table=TABLE)
        return rows[0]
