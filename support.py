"""
Support tickets raised from the contact form and handled by admins.
"""

from typing import Dict, List, Optional, Tuple

import structlog
from sqlalchemy import case, func, select
from sqlalchemy.orm import Session, selectinload

from database import count_where, days_ago, paginate, start_of_today, transaction
from errors import Forbidden, NotFound, ValidationError
from schemas import SupportTicket, User

log = structlog.get_logger(__name__)

STATUSES = ("open", "pending", "closed")
PRIORITIES = ("low", "medium", "high")

_priority_rank = case(
    {"high": 1, "medium": 2, "low": 3}, value=SupportTicket.priority, else_=4
)


def submit_ticket(
    session: Session,
    name: str,
    email: str,
    message: str,
    phone: Optional[str] = None,
    subject: Optional[str] = None,
    user_id: Optional[int] = None,
) -> SupportTicket:
    ticket = SupportTicket(
        user_id=user_id,
        name=name,
        email=email,
        phone=phone,
        subject=subject,
        message=message,
        status="open",
        priority="medium",
    )
    with transaction(session):
        session.add(ticket)
    log.info("ticket_submitted", ticket_id=ticket.id, user_id=user_id)
    return ticket


def list_tickets(
    session: Session,
    status: Optional[str] = None,
    priority: Optional[str] = None,
    page: int = 1,
    limit: int = 10,
) -> Tuple[List[SupportTicket], int]:
    """Admin queue: most urgent first, newest first within a priority."""
    stmt = select(SupportTicket).options(selectinload(SupportTicket.user))
    if status:
        stmt = stmt.where(SupportTicket.status == status)
    if priority:
        stmt = stmt.where(SupportTicket.priority == priority)
    stmt = stmt.order_by(_priority_rank, SupportTicket.created_at.desc(), SupportTicket.id.desc())
    return paginate(session, stmt, page, limit)


def get_ticket(session: Session, ticket_id: int, viewer: User) -> SupportTicket:
    ticket = session.get(SupportTicket, ticket_id)
    if ticket is None:
        raise NotFound("Support ticket", ticket_id)
    # anonymous tickets are visible to admins only
    if viewer.role != "admin" and ticket.user_id != viewer.id:
        raise Forbidden(viewer.role, "Not authorized to view this ticket")
    return ticket


def update_ticket(
    session: Session,
    ticket_id: int,
    status: Optional[str] = None,
    priority: Optional[str] = None,
    admin_response: Optional[str] = None,
) -> SupportTicket:
    ticket = session.get(SupportTicket, ticket_id)
    if ticket is None:
        raise NotFound("Support ticket", ticket_id)
    updates = {
        key: value
        for key, value in (("status", status), ("priority", priority),
                           ("admin_response", admin_response))
        if value is not None
    }
    if not updates:
        raise ValidationError("No valid fields to update")
    with transaction(session):
        for key, value in updates.items():
            setattr(ticket, key, value)
    log.info("ticket_updated", ticket_id=ticket_id, fields=sorted(updates))
    return ticket


def my_tickets(session: Session, user_id: int) -> List[SupportTicket]:
    return list(session.scalars(
        select(SupportTicket)
        .where(SupportTicket.user_id == user_id)
        .order_by(SupportTicket.created_at.desc(), SupportTicket.id.desc())
    ))


def stats(session: Session) -> Dict[str, int]:
    columns = {
        "total_tickets": func.count(SupportTicket.id),
        **{f"{s}_tickets": count_where(SupportTicket.status == s) for s in STATUSES},
        **{f"{p}_priority_tickets": count_where(SupportTicket.priority == p) for p in PRIORITIES},
        "tickets_today": count_where(SupportTicket.created_at >= start_of_today()),
        "tickets_this_week": count_where(SupportTicket.created_at >= days_ago(7)),
    }
    row = session.execute(select(*columns.values())).one()
    return dict(zip(columns, row))
