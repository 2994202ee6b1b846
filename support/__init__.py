from .tickets import TICKET_STATUSES, TicketService, TicketStatus

__all__ = ["TICKET_STATUSES", "TicketService", "TicketStatus"]
