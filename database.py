"""
Database helpers: engine/session setup, transactions and first-run seeding.
"""

from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Iterator, Tuple

import structlog
from sqlalchemy import Select, case, create_engine, event, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker

from config import Settings, get_settings
from errors import TransientStoreError
from schemas import Base, Pet, ShopProduct, User

log = structlog.get_logger(__name__)


MAX_PAGE_SIZE = 50


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def make_engine(url: str) -> Engine:
    connect_args = {}
    if url.startswith("sqlite"):
        # sessions are handed across threadpool workers
        connect_args = {"check_same_thread": False, "timeout": 15}
    eng = create_engine(url, connect_args=connect_args, pool_pre_ping=True)
    if url.startswith("sqlite"):
        event.listen(eng, "connect", _enable_sqlite_foreign_keys)
    return eng


engine = make_engine(get_settings().database_url)
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=True)


def get_db() -> Iterator[Session]:
    """FastAPI dependency yielding one session per request."""
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@contextmanager
def transaction(session: Session) -> Iterator[Session]:
    """Commit on success, roll back on any error.

    Connectivity problems surface as ``TransientStoreError`` so callers can
    retry at the edge.
    """
    try:
        yield session
        session.commit()
    except OperationalError as exc:
        session.rollback()
        log.error("store_unavailable", error=str(exc.orig))
        raise TransientStoreError("Database temporarily unavailable") from exc
    except Exception:
        session.rollback()
        raise


def start_of_today() -> datetime:
    """Midnight UTC as a naive datetime, matching the stored timestamps."""
    now = datetime.now(timezone.utc).replace(tzinfo=None)
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


def days_ago(days: int) -> datetime:
    return start_of_today() - timedelta(days=days)


def count_where(condition):
    """SUM(CASE WHEN condition THEN 1 ELSE 0 END), 0 on an empty table."""
    return func.coalesce(func.sum(case((condition, 1), else_=0)), 0)


def paginate(session: Session, stmt: Select, page: int, limit: int) -> Tuple[list, int]:
    """Run ``stmt`` for one page. Returns (rows, total matching rows)."""
    limit = max(1, min(limit, MAX_PAGE_SIZE))
    page = max(1, page)
    total = session.scalar(select(func.count()).select_from(stmt.order_by(None).subquery()))
    rows = session.scalars(stmt.offset((page - 1) * limit).limit(limit)).all()
    return list(rows), total or 0


SAMPLE_PETS = [
    dict(name="Birchy", breed="Persian Cat", species="Cat", gender="Female", age_weeks=12,
         description="Beautiful Persian cat with soft fur and gentle nature. Perfect for families.",
         price=Decimal("25000"), image_url="PersianCat.jpeg", vaccination_status="Vaccinated"),
    dict(name="Charlie", breed="Toy Pom", species="Dog", gender="Male", age_weeks=12,
         description="Adorable Toy Pomeranian, playful and energetic. Great companion.",
         price=Decimal("35000"), image_url="Toy Pom.jpg", vaccination_status="Vaccinated"),
    dict(name="Harry", breed="Poodle", species="Dog", gender="Male", age_weeks=8,
         description="Smart and friendly Poodle puppy. Easy to train and very loyal.",
         price=Decimal("40000"), image_url="Poodle.jpg", vaccination_status="Vaccinated"),
    dict(name="Goldie", breed="Golden Retriever", species="Dog", gender="Female", age_weeks=10,
         description="Loving Golden Retriever with golden coat. Perfect family dog.",
         price=Decimal("45000"), image_url="GoldenRetriever.jpeg", vaccination_status="Vaccinated"),
]

SAMPLE_PRODUCTS = [
    dict(name="Chewable Dog Toy", description="Durable rubber toy for endless fun and entertainment",
         price=Decimal("599"), category="Toys", stock_quantity=50),
    dict(name="Premium Cat Food", description="Nutritious and vet-approved dry food for all life stages",
         price=Decimal("1299"), category="Food", stock_quantity=30),
    dict(name="Organic Pet Shampoo",
         description="Keep your pet's coat clean and shiny with natural ingredients",
         price=Decimal("799"), category="Grooming", stock_quantity=25),
]


def init_db(bind: Engine, settings: Settings) -> None:
    """Create tables, then seed the admin account and sample catalog once."""
    from auth import hash_password

    Base.metadata.create_all(bind)

    with Session(bind) as session, transaction(session):
        admin = session.scalar(select(User).where(User.email == settings.admin_email))
        if admin is None:
            session.add(User(
                username="admin",
                email=settings.admin_email,
                password_hash=hash_password(settings.admin_password, settings.bcrypt_rounds),
                full_name="Administrator",
                role="admin",
            ))
            log.info("admin_seeded", email=settings.admin_email)

        if settings.seed_sample_data:
            if session.scalar(select(Pet.id).limit(1)) is None:
                session.add_all(Pet(**p) for p in SAMPLE_PETS)
            if session.scalar(select(ShopProduct.id).limit(1)) is None:
                session.add_all(ShopProduct(**p) for p in SAMPLE_PRODUCTS)
