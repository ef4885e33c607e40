"""
Order and payment lifecycle.

Checkout prices the cart from the catalog, stores the order with its items
and opens a payment intent in one transaction. Confirmation (client call) and
the gateway webhook both funnel into ``_finalize``, which moves an order out
of ``pending`` with a conditional update and applies the stock/availability
side effects in the same commit, so whichever arrives first wins and the
other becomes a no-op.
"""

import time
import uuid
from collections import Counter
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, List, Optional, Sequence

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.orm import Session, selectinload

from catalog import PricedLine, decrement_stock, mark_pet_unavailable
from database import transaction
from errors import (
    AlreadyProcessed,
    EmptyOrder,
    ItemUnavailable,
    OrderNotFound,
    PaymentNotCompleted,
    PaymentNotFound,
    ValidationError,
)
from gateway import EVENT_FAILED, EVENT_SUCCEEDED, SUCCEEDED, PaymentGateway
from schemas import Order, OrderItem, Payment

log = structlog.get_logger(__name__)

MIN_ADDRESS_LENGTH = 10
STORE_NAME = "Sharma's Pet Nation"


@dataclass(frozen=True)
class CheckoutResult:
    client_secret: Optional[str]
    order_id: int
    order_number: str
    total_amount: Decimal


def generate_order_number() -> str:
    return f"ORD-{int(time.time() * 1000)}-{uuid.uuid4().hex[:8].upper()}"


def to_minor_units(amount: Decimal) -> int:
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def price_cart(session: Session, cart_items: Sequence[Any]) -> List[PricedLine]:
    """Resolve every cart line against the catalog, or raise on the first bad one."""
    lines = [item.resolve(session) for item in cart_items]

    pets = Counter(line.item_id for line in lines if line.item_type == "pet")
    for pet_id, count in pets.items():
        if count > 1:
            raise ValidationError(f"Pet with ID {pet_id} appears more than once in the cart")

    wanted = Counter()
    for line in lines:
        if line.item_type == "product":
            wanted[line.item_id] += line.quantity
    for line in lines:
        if line.item_type == "product" and wanted[line.item_id] > (line.stock or 0):
            raise ItemUnavailable(
                "product", line.item_id,
                f'Product "{line.name}" is not available in sufficient quantity',
            )
    return lines


def create_order_and_intent(
    session: Session,
    gateway: PaymentGateway,
    user_id: int,
    cart_items: Sequence[Any],
    shipping_address: str,
    billing_address: Optional[str] = None,
    notes: Optional[str] = None,
    currency: str = "inr",
) -> CheckoutResult:
    shipping_address = (shipping_address or "").strip()
    if len(shipping_address) < MIN_ADDRESS_LENGTH:
        raise ValidationError(
            "Validation failed",
            [{"loc": ["shipping_address"], "msg": "Shipping address is required"}],
        )

    lines = price_cart(session, cart_items)
    total = sum((line.line_total for line in lines), Decimal("0"))
    if total <= 0:
        raise EmptyOrder()

    order_number = generate_order_number()
    with transaction(session):
        order = Order(
            user_id=user_id,
            order_number=order_number,
            total_amount=total,
            status="pending",
            payment_status="pending",
            shipping_address=shipping_address,
            billing_address=(billing_address or "").strip() or shipping_address,
            notes=notes,
        )
        order.items = [
            OrderItem(item_type=line.item_type, item_id=line.item_id,
                      quantity=line.quantity, price=line.unit_price)
            for line in lines
        ]
        session.add(order)
        session.flush()
        order_id = order.id

        # a gateway failure here rolls back the order and its items; the write
        # transaction (the whole database on SQLite) stays locked until it returns
        intent = gateway.create_intent(
            amount=to_minor_units(total),
            currency=currency,
            metadata={"orderId": str(order_id), "orderNumber": order_number, "userId": str(user_id)},
            description=f"Order {order_number} - {STORE_NAME}",
        )
        session.add(Payment(
            order_id=order_id,
            stripe_payment_intent_id=intent.id,
            amount=total,
            currency=currency.upper(),
            status="pending",
        ))

    log.info("order_created", order_id=order_id, order_number=order_number,
             user_id=user_id, total_amount=str(total), items=len(lines))
    return CheckoutResult(
        client_secret=intent.client_secret,
        order_id=order_id,
        order_number=order_number,
        total_amount=total,
    )


def _complete_payment(session: Session, intent_id: str, payment_method: Optional[str]) -> bool:
    # a settled success overrides an earlier failed attempt, never the reverse
    result = session.execute(
        update(Payment)
        .where(Payment.stripe_payment_intent_id == intent_id,
               Payment.status.in_(("pending", "failed")))
        .values(status="completed", payment_method=payment_method,
                transaction_id=intent_id, updated_at=func.now())
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def _finalize(session: Session, order_id: int, intent_id: str, payment_method: Optional[str]) -> bool:
    """Confirm a pending order and apply its side effects.

    Must run inside a transaction. Returns False when the order had already
    left ``pending``; raises ``ItemUnavailable`` when stock or a pet is gone,
    in which case the caller's rollback undoes the status change too.
    """
    result = session.execute(
        update(Order)
        .where(Order.id == order_id, Order.status == "pending")
        .values(status="confirmed", payment_status="paid", updated_at=func.now())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        return False

    _complete_payment(session, intent_id, payment_method)

    items = session.scalars(select(OrderItem).where(OrderItem.order_id == order_id)).all()
    for item in items:
        if item.item_type == "product":
            if not decrement_stock(session, item.item_id, item.quantity):
                log.warning("stock_conflict", order_id=order_id, product_id=item.item_id,
                            quantity=item.quantity)
                raise ItemUnavailable("product", item.item_id,
                                      f"Product with ID {item.item_id} is out of stock")
        elif item.item_type == "pet":
            if not mark_pet_unavailable(session, item.item_id):
                log.warning("pet_conflict", order_id=order_id, pet_id=item.item_id)
                raise ItemUnavailable("pet", item.item_id,
                                      f"Pet with ID {item.item_id} is no longer available")
    return True


def confirm_payment(
    session: Session,
    gateway: PaymentGateway,
    user_id: int,
    order_id: int,
    payment_intent_id: str,
) -> Order:
    order = session.scalar(select(Order).where(Order.id == order_id, Order.user_id == user_id))
    if order is None:
        raise OrderNotFound(order_id)
    if order.status != "pending":
        raise AlreadyProcessed(order_id)

    payment = session.scalar(
        select(Payment).where(Payment.order_id == order_id,
                              Payment.stripe_payment_intent_id == payment_intent_id)
    )
    if payment is None:
        raise PaymentNotFound(payment_intent_id)

    intent = gateway.retrieve_intent(payment_intent_id)
    if intent.status != SUCCEEDED:
        raise PaymentNotCompleted(payment_intent_id, intent.status)

    with transaction(session):
        if not _finalize(session, order_id, intent.id, intent.payment_method):
            raise AlreadyProcessed(order_id)

    log.info("payment_confirmed", order_id=order_id, intent_id=intent.id, source="client")
    return order


def handle_gateway_webhook(
    session: Session,
    gateway: PaymentGateway,
    payload: bytes,
    signature: str,
    secret: str,
) -> Dict[str, Any]:
    event = gateway.verify_webhook_signature(payload, signature, secret)

    if event.type == EVENT_SUCCEEDED:
        return _on_intent_succeeded(session, event.intent_id, event.payment_method)
    if event.type == EVENT_FAILED:
        return _on_intent_failed(session, event.intent_id)

    log.info("webhook_ignored", event_type=event.type)
    return {"received": True, "handled": False}


def _on_intent_succeeded(session: Session, intent_id: Optional[str],
                         payment_method: Optional[str]) -> Dict[str, Any]:
    payment = session.scalar(select(Payment).where(Payment.stripe_payment_intent_id == intent_id))
    if payment is None:
        log.warning("webhook_unknown_intent", intent_id=intent_id)
        return {"received": True, "handled": False}
    order_id = payment.order_id

    try:
        with transaction(session):
            finalized = _finalize(session, order_id, intent_id, payment_method)
            if not finalized:
                _complete_payment(session, intent_id, payment_method)
    except ItemUnavailable as exc:
        # the money settled even though the goods are gone; keep the record
        log.error("paid_order_unfulfillable", order_id=order_id, intent_id=intent_id,
                  item_type=exc.item_type, item_id=exc.item_id)
        with transaction(session):
            _complete_payment(session, intent_id, payment_method)
        return {"received": True, "handled": True, "order_confirmed": False}

    if finalized:
        log.info("payment_confirmed", order_id=order_id, intent_id=intent_id, source="webhook")
    else:
        log.info("webhook_duplicate", order_id=order_id, intent_id=intent_id)
    return {"received": True, "handled": True, "order_confirmed": True}


def _on_intent_failed(session: Session, intent_id: Optional[str]) -> Dict[str, Any]:
    with transaction(session):
        result = session.execute(
            update(Payment)
            .where(Payment.stripe_payment_intent_id == intent_id, Payment.status == "pending")
            .values(status="failed", updated_at=func.now())
            .execution_options(synchronize_session=False)
        )
    log.info("payment_failed", intent_id=intent_id, updated=result.rowcount == 1)
    return {"received": True, "handled": result.rowcount == 1}


def list_orders(session: Session, user_id: int) -> List[Dict[str, Any]]:
    rows = session.execute(
        select(Order, Payment)
        .outerjoin(Payment, Payment.order_id == Order.id)
        .where(Order.user_id == user_id)
        .order_by(Order.created_at.desc(), Order.id.desc())
    ).all()
    return [
        {
            "id": order.id,
            "order_number": order.order_number,
            "total_amount": order.total_amount,
            "status": order.status,
            "payment_status": order.payment_status,
            "created_at": order.created_at,
            "payment_status_detail": payment.status if payment else None,
            "payment_method": payment.payment_method if payment else None,
            "transaction_id": payment.transaction_id if payment else None,
        }
        for order, payment in rows
    ]


def get_order(session: Session, user_id: int, order_id: int) -> Order:
    order = session.scalar(
        select(Order)
        .options(selectinload(Order.items))
        .where(Order.id == order_id, Order.user_id == user_id)
    )
    if order is None:
        raise OrderNotFound(order_id)
    return order
