import math
from contextlib import asynccontextmanager
from decimal import Decimal
from functools import lru_cache
from typing import List, Literal, Optional

import structlog
from fastapi import Depends, FastAPI, File, Query, Request, UploadFile
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

import adoption
import orders as order_flow
import support
import users as user_admin
from auth import (
    authenticate_user,
    change_password,
    get_current_user,
    get_optional_user,
    register_user,
    require_admin,
    update_profile,
)
from catalog import (
    CartItem,
    featured_pets,
    featured_products,
    list_categories,
    list_pets,
    list_products,
)
from config import Settings, configure_logging, get_settings
from database import engine, get_db, init_db, transaction
from errors import NotFound, StoreError, ValidationError
from gateway import PaymentGateway, StripeGateway
from schemas import AdoptionRequest, Order, Pet, ShopProduct, SupportTicket, User
from uploads import delete_image, ensure_upload_dirs, save_image

settings = get_settings()
configure_logging(settings.log_level)
log = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db(engine, settings)
    ensure_upload_dirs(settings)
    log.info("startup_complete", database=engine.url.render_as_string(hide_password=True))
    yield


app = FastAPI(title="Pet Nation Store API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.mount("/uploads", StaticFiles(directory=settings.upload_path, check_dir=False), name="uploads")


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError) -> JSONResponse:
    """Map StoreError subclasses to their HTTP responses."""
    if exc.status_code >= 500:
        log.error("request_failed", path=request.url.path, error_type=type(exc).__name__)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    error = ValidationError("Validation failed", jsonable_encoder(exc.errors()))
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


@lru_cache
def _stripe_gateway() -> StripeGateway:
    return StripeGateway.from_settings(get_settings())


def get_gateway() -> PaymentGateway:
    """One Stripe client (and HTTP connection pool) for the whole process."""
    return _stripe_gateway()


# Utility helpers
def _money(value: Optional[Decimal]) -> Optional[float]:
    return float(value) if value is not None else None


def user_to_dict(user: User) -> dict:
    return {
        "id": user.id,
        "username": user.username,
        "email": user.email,
        "full_name": user.full_name,
        "phone": user.phone,
        "address": user.address,
        "role": user.role,
        "is_active": user.is_active,
    }


def pet_to_dict(pet: Pet) -> dict:
    return {
        "id": pet.id,
        "name": pet.name,
        "breed": pet.breed,
        "species": pet.species,
        "gender": pet.gender,
        "age_weeks": pet.age_weeks,
        "description": pet.description,
        "price": _money(pet.price),
        "image_url": pet.image_url,
        "is_available": pet.is_available,
        "is_featured": pet.is_featured,
        "vaccination_status": pet.vaccination_status,
        "health_certificate": pet.health_certificate,
        "created_at": pet.created_at,
    }


def product_to_dict(product: ShopProduct) -> dict:
    return {
        "id": product.id,
        "name": product.name,
        "description": product.description,
        "price": _money(product.price),
        "category": product.category,
        "image_url": product.image_url,
        "stock_quantity": product.stock_quantity,
        "is_available": product.is_available,
        "created_at": product.created_at,
    }


def order_to_dict(order: Order, with_items: bool = False) -> dict:
    data = {
        "id": order.id,
        "order_number": order.order_number,
        "total_amount": _money(order.total_amount),
        "status": order.status,
        "payment_status": order.payment_status,
        "shipping_address": order.shipping_address,
        "billing_address": order.billing_address,
        "notes": order.notes,
        "created_at": order.created_at,
        "updated_at": order.updated_at,
    }
    if with_items:
        data["items"] = [
            {
                "item_type": item.item_type,
                "item_id": item.item_id,
                "quantity": item.quantity,
                "price": _money(item.price),
            }
            for item in order.items
        ]
    return data


def adoption_to_dict(req: AdoptionRequest) -> dict:
    pet = req.pet
    return {
        "id": req.id,
        "status": req.status,
        "message": req.message,
        "admin_notes": req.admin_notes,
        "requester": {
            "user_id": req.user_id,
            "name": req.name,
            "email": req.email,
            "phone": req.phone,
        },
        "pet": {
            "id": pet.id,
            "name": pet.name,
            "breed": pet.breed,
            "species": pet.species,
            "price": _money(pet.price),
            "image_url": pet.image_url,
        },
        "created_at": req.created_at,
        "updated_at": req.updated_at,
    }


def ticket_to_dict(ticket: SupportTicket) -> dict:
    return {
        "id": ticket.id,
        "user_id": ticket.user_id,
        "name": ticket.name,
        "email": ticket.email,
        "phone": ticket.phone,
        "subject": ticket.subject,
        "message": ticket.message,
        "status": ticket.status,
        "priority": ticket.priority,
        "admin_response": ticket.admin_response,
        "created_at": ticket.created_at,
        "updated_at": ticket.updated_at,
    }


def _paginated(rows: list, total: int, page: int, limit: int, serialize) -> dict:
    return {
        "items": [serialize(r) for r in rows],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": math.ceil(total / limit) if limit else 0,
        },
    }


# Auth models
class RegisterRequest(BaseModel):
    username: str = Field(..., min_length=3, max_length=50)
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=72)
    full_name: str = Field(..., min_length=2, max_length=100)
    phone: Optional[str] = Field(None, max_length=20)
    address: Optional[str] = None


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


# Catalog models
class PetIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=50)
    breed: str = Field(..., min_length=1, max_length=100)
    species: str = Field(..., min_length=1, max_length=20)
    gender: str = Field(..., min_length=1, max_length=10)
    age_weeks: int = Field(..., ge=0)
    description: Optional[str] = None
    price: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)
    image_url: Optional[str] = None
    is_available: bool = True
    is_featured: bool = False
    vaccination_status: Optional[str] = None
    health_certificate: Optional[str] = None


class PetUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=50)
    breed: Optional[str] = Field(None, min_length=1, max_length=100)
    species: Optional[str] = Field(None, min_length=1, max_length=20)
    gender: Optional[str] = Field(None, min_length=1, max_length=10)
    age_weeks: Optional[int] = Field(None, ge=0)
    description: Optional[str] = None
    price: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)
    image_url: Optional[str] = None
    is_available: Optional[bool] = None
    is_featured: Optional[bool] = None
    vaccination_status: Optional[str] = None
    health_certificate: Optional[str] = None


class ProductIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    price: Decimal = Field(..., ge=0, max_digits=10, decimal_places=2)
    category: str = Field(..., min_length=1, max_length=50)
    image_url: Optional[str] = None
    stock_quantity: int = Field(0, ge=0)
    is_available: bool = True


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    price: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)
    category: Optional[str] = Field(None, min_length=1, max_length=50)
    image_url: Optional[str] = None
    stock_quantity: Optional[int] = Field(None, ge=0)
    is_available: Optional[bool] = None


# Order models
class CreateOrderRequest(BaseModel):
    items: List[CartItem] = Field(..., min_length=1)
    shipping_address: str = Field(..., min_length=10)
    billing_address: Optional[str] = None
    notes: Optional[str] = None


class ConfirmPaymentRequest(BaseModel):
    payment_intent_id: str = Field(..., min_length=1)


# Account models
PHONE_PATTERN = r"^\+?[0-9][0-9 \-]{6,18}$"


class ProfileUpdate(BaseModel):
    full_name: Optional[str] = Field(None, min_length=2, max_length=100)
    phone: Optional[str] = Field(None, pattern=PHONE_PATTERN)
    address: Optional[str] = None


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=6, max_length=72)


class UserUpdate(ProfileUpdate):
    role: Optional[Literal["user", "admin"]] = None
    is_active: Optional[bool] = None


# Adoption & support models
class AdoptionRequestIn(BaseModel):
    name: str = Field(..., min_length=2, max_length=100)
    email: EmailStr
    phone: str = Field(..., pattern=PHONE_PATTERN)
    preferred_pet: str = Field(..., min_length=1)
    message: str = Field(..., min_length=10)


class AdoptionStatusUpdate(BaseModel):
    status: Literal["pending", "approved", "rejected"]
    admin_notes: Optional[str] = None


class TicketIn(BaseModel):
    name: str = Field(..., min_length=2, max_length=100)
    email: EmailStr
    phone: Optional[str] = Field(None, pattern=PHONE_PATTERN)
    subject: Optional[str] = Field(None, max_length=200)
    message: str = Field(..., min_length=10)


class TicketUpdate(BaseModel):
    status: Optional[Literal["open", "pending", "closed"]] = None
    priority: Optional[Literal["low", "medium", "high"]] = None
    admin_response: Optional[str] = None


@app.get("/")
def root():
    return {"message": "Pet Nation Store API running"}


@app.get("/health")
def health(db: Session = Depends(get_db)):
    response = {"status": "OK", "database": "connected"}
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        log.warning("health_database_unreachable", error=str(e)[:80])
        response["status"] = "DEGRADED"
        response["database"] = "unavailable"
    return response


# Auth endpoints
@app.post("/auth/register", status_code=201)
def register(req: RegisterRequest, db: Session = Depends(get_db),
             settings: Settings = Depends(get_settings)):
    user, token = register_user(
        db, settings,
        username=req.username.strip(),
        email=req.email.lower(),
        password=req.password,
        full_name=req.full_name.strip(),
        phone=req.phone,
        address=req.address,
    )
    return {"token": token, "user": user_to_dict(user)}


@app.post("/auth/login")
def login(req: LoginRequest, db: Session = Depends(get_db),
          settings: Settings = Depends(get_settings)):
    user, token = authenticate_user(db, settings, req.email.lower(), req.password)
    return {"token": token, "user": user_to_dict(user)}


@app.get("/auth/me")
def me(user: User = Depends(get_current_user)):
    return user_to_dict(user)


@app.put("/auth/profile")
def update_my_profile(req: ProfileUpdate, db: Session = Depends(get_db),
                      user: User = Depends(get_current_user)):
    fields = req.model_dump(exclude_unset=True)
    if "full_name" in fields and fields["full_name"] is not None:
        fields["full_name"] = fields["full_name"].strip()
    return user_to_dict(update_profile(db, user, **fields))


@app.put("/auth/change-password")
def change_my_password(req: ChangePasswordRequest, db: Session = Depends(get_db),
                       settings: Settings = Depends(get_settings),
                       user: User = Depends(get_current_user)):
    change_password(db, settings, user, req.current_password, req.new_password)
    return {"message": "Password updated successfully"}


# Pets
@app.get("/pets")
def get_pets(
    species: Optional[str] = None,
    breed: Optional[str] = None,
    gender: Optional[str] = None,
    min_price: Optional[float] = Query(None, ge=0),
    max_price: Optional[float] = Query(None, ge=0),
    available: Optional[bool] = None,
    featured: Optional[bool] = None,
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(12, ge=1, le=50),
    db: Session = Depends(get_db),
):
    rows, total = list_pets(
        db, species=species, breed=breed, gender=gender, min_price=min_price,
        max_price=max_price, available=available, featured=featured, search=search,
        page=page, limit=limit,
    )
    return _paginated(rows, total, page, limit, pet_to_dict)


@app.get("/pets/featured")
def get_featured_pets(db: Session = Depends(get_db)):
    return [pet_to_dict(p) for p in featured_pets(db)]


@app.get("/pets/{pet_id}")
def get_pet(pet_id: int, db: Session = Depends(get_db)):
    pet = db.get(Pet, pet_id)
    if pet is None:
        raise NotFound("Pet", pet_id)
    return pet_to_dict(pet)


@app.post("/pets", status_code=201)
def create_pet(p: PetIn, db: Session = Depends(get_db), admin: User = Depends(require_admin)):
    pet = Pet(**p.model_dump())
    with transaction(db):
        db.add(pet)
    log.info("pet_created", pet_id=pet.id, admin_id=admin.id)
    return pet_to_dict(pet)


@app.put("/pets/{pet_id}")
def update_pet(pet_id: int, payload: PetUpdate, db: Session = Depends(get_db),
               admin: User = Depends(require_admin)):
    pet = db.get(Pet, pet_id)
    if pet is None:
        raise NotFound("Pet", pet_id)
    updates = payload.model_dump(exclude_unset=True)
    if not updates:
        return {"updated": False}
    with transaction(db):
        for key, value in updates.items():
            setattr(pet, key, value)
    return {"updated": True, "pet": pet_to_dict(pet)}


@app.delete("/pets/{pet_id}")
def delete_pet(pet_id: int, db: Session = Depends(get_db),
               settings: Settings = Depends(get_settings), admin: User = Depends(require_admin)):
    pet = db.get(Pet, pet_id)
    if pet is None:
        raise NotFound("Pet", pet_id)
    image_url = pet.image_url
    try:
        with transaction(db):
            db.delete(pet)
    except IntegrityError as exc:
        raise ValidationError("Pet is referenced by adoption requests") from exc
    delete_image(image_url, settings)
    log.info("pet_deleted", pet_id=pet_id, admin_id=admin.id)
    return {"deleted": True}


@app.post("/pets/{pet_id}/image")
def upload_pet_image(pet_id: int, image: UploadFile = File(...), db: Session = Depends(get_db),
                     settings: Settings = Depends(get_settings),
                     admin: User = Depends(require_admin)):
    pet = db.get(Pet, pet_id)
    if pet is None:
        raise NotFound("Pet", pet_id)
    url = save_image(image.file, image.filename, image.content_type, "pets", settings)
    previous = pet.image_url
    with transaction(db):
        pet.image_url = url
    delete_image(previous, settings)
    return {"id": pet_id, "image_url": url}


# Products
@app.get("/products")
def get_products(
    category: Optional[str] = None,
    min_price: Optional[float] = Query(None, ge=0),
    max_price: Optional[float] = Query(None, ge=0),
    available: Optional[bool] = None,
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(12, ge=1, le=50),
    db: Session = Depends(get_db),
):
    rows, total = list_products(
        db, category=category, min_price=min_price, max_price=max_price,
        available=available, search=search, page=page, limit=limit,
    )
    return _paginated(rows, total, page, limit, product_to_dict)


@app.get("/products/categories")
def get_categories(db: Session = Depends(get_db)):
    return list_categories(db)


@app.get("/products/featured")
def get_featured_products(db: Session = Depends(get_db)):
    return [product_to_dict(p) for p in featured_products(db)]


@app.get("/products/{product_id}")
def get_product(product_id: int, db: Session = Depends(get_db)):
    product = db.get(ShopProduct, product_id)
    if product is None:
        raise NotFound("Product", product_id)
    return product_to_dict(product)


@app.post("/products", status_code=201)
def create_product(p: ProductIn, db: Session = Depends(get_db),
                   admin: User = Depends(require_admin)):
    product = ShopProduct(**p.model_dump())
    with transaction(db):
        db.add(product)
    log.info("product_created", product_id=product.id, admin_id=admin.id)
    return product_to_dict(product)


@app.put("/products/{product_id}")
def update_product(product_id: int, payload: ProductUpdate, db: Session = Depends(get_db),
                   admin: User = Depends(require_admin)):
    product = db.get(ShopProduct, product_id)
    if product is None:
        raise NotFound("Product", product_id)
    updates = payload.model_dump(exclude_unset=True)
    if not updates:
        return {"updated": False}
    with transaction(db):
        for key, value in updates.items():
            setattr(product, key, value)
    return {"updated": True, "product": product_to_dict(product)}


@app.delete("/products/{product_id}")
def delete_product(product_id: int, db: Session = Depends(get_db),
                   settings: Settings = Depends(get_settings),
                   admin: User = Depends(require_admin)):
    product = db.get(ShopProduct, product_id)
    if product is None:
        raise NotFound("Product", product_id)
    image_url = product.image_url
    with transaction(db):
        db.delete(product)
    delete_image(image_url, settings)
    log.info("product_deleted", product_id=product_id, admin_id=admin.id)
    return {"deleted": True}


@app.post("/products/{product_id}/image")
def upload_product_image(product_id: int, image: UploadFile = File(...),
                         db: Session = Depends(get_db),
                         settings: Settings = Depends(get_settings),
                         admin: User = Depends(require_admin)):
    product = db.get(ShopProduct, product_id)
    if product is None:
        raise NotFound("Product", product_id)
    url = save_image(image.file, image.filename, image.content_type, "products", settings)
    previous = product.image_url
    with transaction(db):
        product.image_url = url
    delete_image(previous, settings)
    return {"id": product_id, "image_url": url}


# Orders & payments
@app.post("/orders", status_code=201)
def create_order(req: CreateOrderRequest, db: Session = Depends(get_db),
                 gateway: PaymentGateway = Depends(get_gateway),
                 settings: Settings = Depends(get_settings),
                 user: User = Depends(get_current_user)):
    result = order_flow.create_order_and_intent(
        db, gateway,
        user_id=user.id,
        cart_items=req.items,
        shipping_address=req.shipping_address,
        billing_address=req.billing_address,
        notes=req.notes,
        currency=settings.currency,
    )
    return {
        "client_secret": result.client_secret,
        "order_id": result.order_id,
        "order_number": result.order_number,
        "total_amount": _money(result.total_amount),
    }


def _order_history(db: Session, user_id: int) -> list:
    rows = order_flow.list_orders(db, user_id)
    for row in rows:
        row["total_amount"] = _money(row["total_amount"])
    return rows


@app.get("/orders")
def list_orders(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return _order_history(db, user.id)


@app.get("/orders/{order_id}")
def get_order(order_id: int, db: Session = Depends(get_db),
              user: User = Depends(get_current_user)):
    return order_to_dict(order_flow.get_order(db, user.id, order_id), with_items=True)


@app.post("/orders/{order_id}/confirm")
def confirm_order(order_id: int, req: ConfirmPaymentRequest, db: Session = Depends(get_db),
                  gateway: PaymentGateway = Depends(get_gateway),
                  user: User = Depends(get_current_user)):
    order = order_flow.confirm_payment(db, gateway, user.id, order_id, req.payment_intent_id)
    return {"message": "Payment confirmed successfully", "order": order_to_dict(order)}


@app.post("/payments/webhook")
async def payment_webhook(request: Request, db: Session = Depends(get_db),
                          gateway: PaymentGateway = Depends(get_gateway),
                          settings: Settings = Depends(get_settings)):
    payload = await request.body()
    signature = request.headers.get("stripe-signature", "")
    return await run_in_threadpool(
        order_flow.handle_gateway_webhook,
        db, gateway, payload, signature, settings.stripe_webhook_secret,
    )


# Adoption
@app.post("/adoption/request", status_code=201)
def submit_adoption_request(req: AdoptionRequestIn, db: Session = Depends(get_db),
                            user: Optional[User] = Depends(get_optional_user)):
    request = adoption.submit_request(
        db,
        preferred_pet=req.preferred_pet,
        name=req.name.strip(),
        email=req.email.lower(),
        phone=req.phone,
        message=req.message.strip(),
        user_id=user.id if user else None,
    )
    return {"request_id": request.id, "pet_name": request.pet.name}


@app.get("/adoption/requests")
def get_adoption_requests(
    status: Optional[Literal["pending", "approved", "rejected"]] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=50),
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    rows, total = adoption.list_requests(db, status=status, page=page, limit=limit)
    return _paginated(rows, total, page, limit, adoption_to_dict)


@app.put("/adoption/requests/{request_id}/status")
def set_adoption_status(request_id: int, req: AdoptionStatusUpdate,
                        db: Session = Depends(get_db), admin: User = Depends(require_admin)):
    request = adoption.update_status(db, request_id, req.status, req.admin_notes)
    return adoption_to_dict(request)


@app.get("/adoption/my-requests")
def get_my_adoption_requests(db: Session = Depends(get_db),
                             user: User = Depends(get_current_user)):
    return [adoption_to_dict(r) for r in adoption.my_requests(db, user.id)]


@app.get("/adoption/stats")
def get_adoption_stats(db: Session = Depends(get_db), admin: User = Depends(require_admin)):
    return adoption.stats(db)


# Support
@app.post("/support/tickets", status_code=201)
def submit_support_ticket(req: TicketIn, db: Session = Depends(get_db),
                          user: Optional[User] = Depends(get_optional_user)):
    ticket = support.submit_ticket(
        db,
        name=req.name.strip(),
        email=req.email.lower(),
        message=req.message.strip(),
        phone=req.phone,
        subject=req.subject,
        user_id=user.id if user else None,
    )
    return {"ticket_id": ticket.id}


@app.get("/support/tickets")
def get_support_tickets(
    status: Optional[Literal["open", "pending", "closed"]] = None,
    priority: Optional[Literal["low", "medium", "high"]] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=50),
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    rows, total = support.list_tickets(db, status=status, priority=priority,
                                       page=page, limit=limit)
    return _paginated(rows, total, page, limit, ticket_to_dict)


@app.get("/support/tickets/{ticket_id}")
def get_support_ticket(ticket_id: int, db: Session = Depends(get_db),
                       user: User = Depends(get_current_user)):
    return ticket_to_dict(support.get_ticket(db, ticket_id, user))


@app.put("/support/tickets/{ticket_id}")
def update_support_ticket(ticket_id: int, req: TicketUpdate, db: Session = Depends(get_db),
                          admin: User = Depends(require_admin)):
    ticket = support.update_ticket(db, ticket_id, **req.model_dump())
    return ticket_to_dict(ticket)


@app.get("/support/my-tickets")
def get_my_support_tickets(db: Session = Depends(get_db),
                           user: User = Depends(get_current_user)):
    return [ticket_to_dict(t) for t in support.my_tickets(db, user.id)]


@app.get("/support/stats")
def get_support_stats(db: Session = Depends(get_db), admin: User = Depends(require_admin)):
    return support.stats(db)


# Users (admin)
@app.get("/users")
def get_users(
    role: Optional[Literal["user", "admin"]] = None,
    active: Optional[bool] = None,
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=50),
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    rows, total = user_admin.list_users(db, role=role, active=active, search=search,
                                        page=page, limit=limit)
    return _paginated(rows, total, page, limit, user_to_dict)


@app.get("/users/stats")
def get_user_stats(db: Session = Depends(get_db), admin: User = Depends(require_admin)):
    return user_admin.stats(db)


@app.get("/users/{user_id}")
def get_user(user_id: int, db: Session = Depends(get_db),
             actor: User = Depends(get_current_user)):
    return user_to_dict(user_admin.get_user(db, user_id, actor))


@app.put("/users/{user_id}")
def update_user(user_id: int, req: UserUpdate, db: Session = Depends(get_db),
                actor: User = Depends(get_current_user)):
    user = user_admin.update_user(db, user_id, actor, req.model_dump(exclude_unset=True))
    return user_to_dict(user)


@app.delete("/users/{user_id}")
def deactivate_user(user_id: int, db: Session = Depends(get_db),
                    admin: User = Depends(require_admin)):
    user_admin.deactivate_user(db, user_id, admin)
    return {"deactivated": True}


@app.get("/users/{user_id}/orders")
def get_user_orders(user_id: int, db: Session = Depends(get_db),
                    actor: User = Depends(get_current_user)):
    user_admin.check_access(actor, user_id)
    return _order_history(db, user_id)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=settings.port)
