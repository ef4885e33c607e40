"""
Catalog access for pets and shop products.

Cart lines are a tagged union (``PetLine | ProductLine``); each variant knows
how to resolve itself against the catalog into a priced line.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Annotated, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, Field
from sqlalchemy import func, or_, select, update
from sqlalchemy.orm import Session

from database import paginate
from errors import ItemUnavailable
from schemas import Pet, ShopProduct

DEFAULT_PAGE_SIZE = 12
FEATURED_LIMIT = 6


@dataclass(frozen=True)
class Purchasable:
    name: str
    price: Optional[Decimal]
    available: bool
    stock: Optional[int] = None


@dataclass(frozen=True)
class PricedLine:
    item_type: str
    item_id: int
    name: str
    quantity: int
    unit_price: Decimal
    stock: Optional[int] = None

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


def get_purchasable(session: Session, item_type: str, item_id: int) -> Optional[Purchasable]:
    if item_type == "pet":
        pet = session.get(Pet, item_id)
        if pet is None:
            return None
        return Purchasable(name=pet.name, price=pet.price, available=bool(pet.is_available))
    if item_type == "product":
        product = session.get(ShopProduct, item_id)
        if product is None:
            return None
        return Purchasable(
            name=product.name,
            price=product.price,
            available=bool(product.is_available),
            stock=product.stock_quantity,
        )
    raise ValueError(f"Unknown item type: {item_type}")


class PetLine(BaseModel):
    type: Literal["pet"]
    id: int = Field(..., ge=1)
    # a pet is a single animal
    quantity: int = Field(1, ge=1, le=1)

    def resolve(self, session: Session) -> PricedLine:
        found = get_purchasable(session, "pet", self.id)
        if found is None:
            raise ItemUnavailable("pet", self.id, f"Pet with ID {self.id} not found")
        if not found.available or found.price is None:
            raise ItemUnavailable("pet", self.id, f'Pet "{found.name}" is not available')
        return PricedLine("pet", self.id, found.name, self.quantity, found.price)


class ProductLine(BaseModel):
    type: Literal["product"]
    id: int = Field(..., ge=1)
    quantity: int = Field(1, ge=1)

    def resolve(self, session: Session) -> PricedLine:
        found = get_purchasable(session, "product", self.id)
        if found is None:
            raise ItemUnavailable("product", self.id, f"Product with ID {self.id} not found")
        if not found.available or (found.stock or 0) < self.quantity:
            raise ItemUnavailable(
                "product", self.id,
                f'Product "{found.name}" is not available in sufficient quantity',
            )
        return PricedLine("product", self.id, found.name, self.quantity, found.price, found.stock)


CartItem = Annotated[Union[PetLine, ProductLine], Field(discriminator="type")]


def decrement_stock(session: Session, product_id: int, quantity: int) -> bool:
    """Take ``quantity`` units out of stock. False when there are not enough."""
    result = session.execute(
        update(ShopProduct)
        .where(
            ShopProduct.id == product_id,
            ShopProduct.stock_quantity >= quantity,
        )
        .values(stock_quantity=ShopProduct.stock_quantity - quantity, updated_at=func.now())
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def mark_pet_unavailable(session: Session, pet_id: int) -> bool:
    """Flip a pet to sold. False when it was already unavailable."""
    result = session.execute(
        update(Pet)
        .where(Pet.id == pet_id, Pet.is_available.is_(True))
        .values(is_available=False, updated_at=func.now())
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def list_pets(
    session: Session,
    species: Optional[str] = None,
    breed: Optional[str] = None,
    gender: Optional[str] = None,
    min_price: Optional[float] = None,
    max_price: Optional[float] = None,
    available: Optional[bool] = None,
    featured: Optional[bool] = None,
    search: Optional[str] = None,
    page: int = 1,
    limit: int = DEFAULT_PAGE_SIZE,
) -> Tuple[List[Pet], int]:
    stmt = select(Pet)
    if species:
        stmt = stmt.where(Pet.species == species)
    if breed:
        stmt = stmt.where(Pet.breed.ilike(f"%{breed}%"))
    if gender:
        stmt = stmt.where(Pet.gender == gender)
    if min_price is not None:
        stmt = stmt.where(Pet.price >= min_price)
    if max_price is not None:
        stmt = stmt.where(Pet.price <= max_price)
    if available is not None:
        stmt = stmt.where(Pet.is_available.is_(available))
    if featured is not None:
        stmt = stmt.where(Pet.is_featured.is_(featured))
    if search:
        pattern = f"%{search}%"
        stmt = stmt.where(or_(Pet.name.ilike(pattern), Pet.breed.ilike(pattern),
                              Pet.description.ilike(pattern)))
    stmt = stmt.order_by(Pet.is_featured.desc(), Pet.created_at.desc(), Pet.id.desc())
    return paginate(session, stmt, page, limit)


def list_products(
    session: Session,
    category: Optional[str] = None,
    min_price: Optional[float] = None,
    max_price: Optional[float] = None,
    available: Optional[bool] = None,
    search: Optional[str] = None,
    page: int = 1,
    limit: int = DEFAULT_PAGE_SIZE,
) -> Tuple[List[ShopProduct], int]:
    stmt = select(ShopProduct)
    if category:
        stmt = stmt.where(ShopProduct.category == category)
    if min_price is not None:
        stmt = stmt.where(ShopProduct.price >= min_price)
    if max_price is not None:
        stmt = stmt.where(ShopProduct.price <= max_price)
    if available is not None:
        stmt = stmt.where(ShopProduct.is_available.is_(available))
    if search:
        pattern = f"%{search}%"
        stmt = stmt.where(or_(ShopProduct.name.ilike(pattern),
                              ShopProduct.description.ilike(pattern)))
    stmt = stmt.order_by(ShopProduct.created_at.desc(), ShopProduct.id.desc())
    return paginate(session, stmt, page, limit)


def list_categories(session: Session) -> List[dict]:
    rows = session.execute(
        select(ShopProduct.category, func.count(ShopProduct.id))
        .where(ShopProduct.is_available.is_(True))
        .group_by(ShopProduct.category)
        .order_by(ShopProduct.category)
    ).all()
    return [{"category": category, "product_count": count} for category, count in rows]


def featured_pets(session: Session, limit: int = FEATURED_LIMIT) -> List[Pet]:
    return list(session.scalars(
        select(Pet)
        .where(Pet.is_featured.is_(True), Pet.is_available.is_(True))
        .order_by(Pet.created_at.desc(), Pet.id.desc())
        .limit(limit)
    ))


def featured_products(session: Session, limit: int = FEATURED_LIMIT) -> List[ShopProduct]:
    """Newest products that can be bought right now."""
    return list(session.scalars(
        select(ShopProduct)
        .where(ShopProduct.is_available.is_(True), ShopProduct.stock_quantity > 0)
        .order_by(ShopProduct.created_at.desc(), ShopProduct.id.desc())
        .limit(limit)
    ))
