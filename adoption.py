"""
Adoption requests.

Visitors (signed in or not) ask to adopt an available pet; admins approve or
reject. Approving flips the pet to unavailable in the same commit, using the
same one-way update as a paid pet order, so a pet can end up with one buyer
or one adopter but never both.
"""

from typing import Dict, List, Optional, Tuple

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.orm import Session, selectinload

from catalog import mark_pet_unavailable
from database import count_where, paginate, transaction
from errors import AlreadyProcessed, ItemUnavailable, NotFound, ValidationError
from schemas import AdoptionRequest, Pet

log = structlog.get_logger(__name__)

STATUSES = ("pending", "approved", "rejected")


def submit_request(
    session: Session,
    preferred_pet: str,
    name: str,
    email: str,
    phone: str,
    message: str,
    user_id: Optional[int] = None,
) -> AdoptionRequest:
    pet = session.scalar(
        select(Pet)
        .where(Pet.name == preferred_pet.strip(), Pet.is_available.is_(True))
        .order_by(Pet.id)
        .limit(1)
    )
    if pet is None:
        raise ValidationError("Selected pet is not available for adoption")

    owner = (AdoptionRequest.user_id == user_id) if user_id else (AdoptionRequest.email == email)
    existing = session.scalar(
        select(AdoptionRequest.id).where(
            owner, AdoptionRequest.pet_id == pet.id, AdoptionRequest.status == "pending"
        )
    )
    if existing is not None:
        raise ValidationError("You already have a pending adoption request for this pet")

    request = AdoptionRequest(
        user_id=user_id,
        pet_id=pet.id,
        name=name,
        email=email,
        phone=phone,
        message=message,
        status="pending",
    )
    with transaction(session):
        session.add(request)
    log.info("adoption_requested", request_id=request.id, pet_id=pet.id, user_id=user_id)
    return request


def list_requests(
    session: Session,
    status: Optional[str] = None,
    page: int = 1,
    limit: int = 10,
) -> Tuple[List[AdoptionRequest], int]:
    stmt = select(AdoptionRequest).options(
        selectinload(AdoptionRequest.pet), selectinload(AdoptionRequest.user)
    )
    if status:
        stmt = stmt.where(AdoptionRequest.status == status)
    stmt = stmt.order_by(AdoptionRequest.created_at.desc(), AdoptionRequest.id.desc())
    return paginate(session, stmt, page, limit)


def my_requests(session: Session, user_id: int) -> List[AdoptionRequest]:
    return list(session.scalars(
        select(AdoptionRequest)
        .options(selectinload(AdoptionRequest.pet))
        .where(AdoptionRequest.user_id == user_id)
        .order_by(AdoptionRequest.created_at.desc(), AdoptionRequest.id.desc())
    ))


def update_status(
    session: Session,
    request_id: int,
    status: str,
    admin_notes: Optional[str] = None,
) -> AdoptionRequest:
    """Move a request to ``status``.

    Only pending requests change status; re-sending the current status just
    updates the notes. Approval takes the pet off the market or fails with
    ``ItemUnavailable`` if it was already sold or adopted.
    """
    request = session.get(AdoptionRequest, request_id)
    if request is None:
        raise NotFound("Adoption request", request_id)
    current = request.status
    if current != "pending" and status != current:
        raise ValidationError("Cannot change status of already processed request")

    with transaction(session):
        result = session.execute(
            update(AdoptionRequest)
            .where(AdoptionRequest.id == request_id, AdoptionRequest.status == current)
            .values(status=status, admin_notes=admin_notes, updated_at=func.now())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise AlreadyProcessed(request_id, kind="Adoption request")
        if status == "approved" and current == "pending":
            if not mark_pet_unavailable(session, request.pet_id):
                raise ItemUnavailable("pet", request.pet_id,
                                      f"Pet with ID {request.pet_id} is no longer available")

    session.refresh(request)
    log.info("adoption_status_changed", request_id=request_id, status=status, previous=current)
    return request


def stats(session: Session) -> Dict[str, int]:
    row = session.execute(
        select(
            func.count(AdoptionRequest.id),
            *(count_where(AdoptionRequest.status == s) for s in STATUSES),
        )
    ).one()
    total, pending, approved, rejected = row
    return {
        "total_requests": total,
        "pending_requests": pending,
        "approved_requests": approved,
        "rejected_requests": rejected,
    }

