import logging
import os
import re
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, File, Form, Query, Request, UploadFile
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel, EmailStr, Field
from pymongo.errors import PyMongoError

import admin
import appointments
import auth
import catalog
import config
import database
import orders
import reports
from auth import get_current_user, require_admin, require_beekeeper
from database import collection, serialize, to_object_id
from errors import Forbidden, HiveHelpError, InvalidInput
from schemas import User, utcnow
from uploads import discard_upload, ensure_upload_dir, save_upload

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("HiveHelp API starting up...")
    try:
        database.ensure_indexes()
    except PyMongoError as e:
        logger.error(f"❌ Failed to create indexes: {e}")
    yield
    logger.info("HiveHelp API shutting down...")


app = FastAPI(title="HiveHelp API", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.mount("/uploads", StaticFiles(directory=ensure_upload_dir()), name="uploads")


@app.exception_handler(HiveHelpError)
async def hivehelp_error_handler(request: Request, exc: HiveHelpError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.warning(f"{request.method} {request.url.path} -> {exc.status_code} {exc.kind}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message, "error": exc.kind})


@app.exception_handler(PyMongoError)
async def database_error_handler(request: Request, exc: PyMongoError):
    logger.exception(f"Database error on {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content={"detail": "Server error", "error": "internal"})


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning(f"Validation error for {request.url.path}: {exc.errors()}")
    return JSONResponse(status_code=422, content={"detail": jsonable_encoder(exc.errors()), "error": "invalid_input"})


# Health checks
@app.get("/")
def root():
    return {"message": "HiveHelp API running"}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": None,
        "database_name": None,
        "connection_status": "Not Connected",
        "collections": [],
    }
    try:
        if database.db is not None:
            response["database"] = "✅ Available"
            response["database_url"] = "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set"
            response["database_name"] = database.db.name
            response["connection_status"] = "Connected"
            response["collections"] = database.db.list_collection_names()
        else:
            response["database"] = "⚠️ Available but not initialized"
    except PyMongoError as e:
        response["database"] = f"❌ Error: {str(e)[:100]}"
    return response


# Auth models
class RegisterPayload(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    password: str
    phone: Optional[str] = None
    role: str = "customer"
    locality: Optional[str] = None


class LoginPayload(BaseModel):
    email: EmailStr
    password: str


class RefreshPayload(BaseModel):
    refresh_token: str


@app.post("/api/auth/register", status_code=201)
def register(payload: RegisterPayload):
    user_id = auth.register_user(
        name=payload.name,
        email=payload.email,
        password=payload.password,
        role=payload.role,
        phone=payload.phone,
        locality=payload.locality,
    )
    return {"message": "User registered", "_id": user_id}


@app.post("/api/auth/login")
def login(payload: LoginPayload, request: Request):
    # Rate limit per IP
    ip = request.client.host if request.client else "unknown"
    auth.check_rate_limit(ip)
    return auth.authenticate(payload.email, payload.password)


@app.post("/api/auth/refresh")
def refresh_token(payload: RefreshPayload):
    return auth.refresh(payload.refresh_token)


@app.get("/api/auth/me")
def auth_me(user: dict = Depends(get_current_user)):
    return {"name": user.get("name"), "email": user.get("email"), "phone": user.get("phone")}


# Seed demo data
@app.post("/api/auth/seed")
def seed_demo_data():
    if not config.ALLOW_SEED:
        raise Forbidden("Seeding is disabled")
    from faker import Faker

    fake = Faker()
    created = {"users": 0, "products": 0}
    # Ensure one admin
    if not collection("user").find_one({"role": "admin"}):
        admin_user = User(
            name="Admin",
            email=config.SEED_ADMIN_EMAIL,
            password_hash=auth.hash_password(config.SEED_ADMIN_PASSWORD),
            role="admin",
        )
        database.create_document("user", admin_user)
        created["users"] += 1
    # Demo beekeepers with a listing each, and customers, up to 5 of each
    demo_pwd = auth.hash_password("Password@123")
    for role in ("beekeeper", "customer"):
        existing = collection("user").count_documents({"role": role})
        for _ in range(max(0, 5 - existing)):
            user = User(
                name=fake.name(),
                email=fake.unique.email(),
                phone=fake.phone_number(),
                password_hash=demo_pwd,
                role=role,
                locality=fake.city(),
            )
            user_id = database.create_document("user", user)
            created["users"] += 1
            if role == "beekeeper":
                catalog.create_product(
                    user_id,
                    name=f"{fake.word().capitalize()} Honey",
                    description=fake.sentence(),
                    price=float(fake.random_int(min=150, max=900)),
                    stock_quantity=fake.random_int(min=5, max=50),
                )
                created["products"] += 1
    logger.info(f"Seeded demo data: {created}")
    return {"created": created}


# Users
class ProfilePayload(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    phone: Optional[str] = None


@app.get("/api/users/me")
def get_profile(user: dict = Depends(get_current_user)):
    return user


@app.put("/api/users/me")
def update_profile(payload: ProfilePayload, user: dict = Depends(get_current_user)):
    changes = {k: v for k, v in payload.model_dump().items() if v is not None}
    if changes:
        collection("user").update_one({"_id": to_object_id(user["_id"])}, {"$set": {**changes, "updated_at": utcnow()}})
    return serialize(collection("user").find_one({"_id": to_object_id(user["_id"])}))


@app.get("/api/users/beekeepers/{locality}")
def beekeepers_in_locality(locality: str, user: dict = Depends(get_current_user)):
    docs = collection("user").find(
        {
            "role": "beekeeper",
            "is_approved": True,
            "is_blocked": {"$ne": True},
            "locality": {"$regex": f"^{re.escape(locality.strip())}$", "$options": "i"},
        },
        {"name": 1, "locality": 1},
    )
    return [serialize(d) for d in docs]


# Products
@app.get("/api/products")
def list_products(user: dict = Depends(get_current_user)):
    return catalog.list_available()


@app.get("/api/products/my-products")
def my_products(user: dict = Depends(require_beekeeper)):
    return catalog.list_mine(user["_id"])


@app.get("/api/products/{product_id}")
def get_product(product_id: str, user: dict = Depends(get_current_user)):
    return catalog.get_product(product_id)


@app.post("/api/products", status_code=201)
def create_product(
    name: str = Form(...),
    price: float = Form(...),
    quantity: int = Form(0),
    description: str = Form(""),
    image: Optional[UploadFile] = File(None),
    user: dict = Depends(require_beekeeper),
):
    return catalog.create_product(
        user["_id"],
        name=name,
        description=description,
        price=price,
        stock_quantity=quantity,
        image_path=save_upload(image),
    )


@app.put("/api/products/{product_id}")
def update_product(
    product_id: str,
    name: Optional[str] = Form(None),
    price: Optional[float] = Form(None),
    quantity: Optional[int] = Form(None),
    description: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    user: dict = Depends(get_current_user),
):
    patch = {"name": name, "price": price, "stock_quantity": quantity, "description": description}
    # ownership is checked before the new image is written
    catalog.get_editable_product(product_id, user["_id"], user["role"])
    if image is not None and image.filename:
        patch["image_path"] = save_upload(image)
    try:
        return catalog.update_product(product_id, user["_id"], user["role"], patch)
    except HiveHelpError:
        discard_upload(patch.get("image_path"))
        raise


@app.delete("/api/products/{product_id}")
def delete_product(product_id: str, user: dict = Depends(get_current_user)):
    catalog.delete_product(product_id, user["_id"], user["role"])
    return {"message": "Product deleted"}


# Appointments
class ReviewPayload(BaseModel):
    rating: int
    review: Optional[str] = None


class StatusPayload(BaseModel):
    status: str


@app.post("/api/appointments", status_code=201)
def book_appointment(
    full_name: str = Form(...),
    email: str = Form(...),
    phone: str = Form(...),
    date: str = Form(...),
    time: str = Form(...),
    address: str = Form(...),
    hivespot: Optional[str] = Form(None),
    severity: Optional[str] = Form(None),
    latitude: Optional[float] = Form(None),
    longitude: Optional[float] = Form(None),
    photo: Optional[UploadFile] = File(None),
    user: dict = Depends(get_current_user),
):
    appointment_id = appointments.book(
        user["_id"],
        full_name=full_name,
        email=email,
        phone=phone,
        date=date,
        time=time,
        address=address,
        hivespot=hivespot,
        severity=severity,
        latitude=latitude,
        longitude=longitude,
        photo_path=save_upload(photo),
    )
    return {"message": "Your booking is taken under process!", "_id": appointment_id}


@app.get("/api/appointments")
def list_appointments(user: dict = Depends(get_current_user)):
    return appointments.list_for(user["_id"], user["role"])


@app.patch("/api/appointments/{appointment_id}/cancel")
def cancel_appointment(appointment_id: str, user: dict = Depends(get_current_user)):
    return appointments.cancel(appointment_id, user["_id"])


@app.post("/api/appointments/{appointment_id}/review")
def review_appointment(appointment_id: str, payload: ReviewPayload, user: dict = Depends(get_current_user)):
    return appointments.submit_review(appointment_id, user["_id"], payload.rating, payload.review)


@app.patch("/api/appointments/{appointment_id}/status")
def update_appointment_status(appointment_id: str, payload: StatusPayload, user: dict = Depends(get_current_user)):
    return appointments.update_status(appointment_id, user["_id"], user["role"], payload.status)


# Orders
class CreateOrderPayload(BaseModel):
    product_id: str
    quantity: int


@app.post("/api/orders", status_code=201)
def create_order(payload: CreateOrderPayload, user: dict = Depends(get_current_user)):
    return orders.create(user["_id"], payload.product_id, payload.quantity)


@app.get("/api/orders")
def my_orders(user: dict = Depends(get_current_user)):
    return orders.list_mine(user["_id"])


@app.get("/api/orders/beekeeper")
def beekeeper_orders(user: dict = Depends(require_beekeeper)):
    return orders.list_for_beekeeper(user["_id"])


@app.patch("/api/orders/{order_id}/cancel")
def cancel_order(order_id: str, user: dict = Depends(get_current_user)):
    return orders.cancel(order_id, user["_id"])


@app.patch("/api/orders/{order_id}/status")
def update_order_status(order_id: str, payload: StatusPayload, user: dict = Depends(require_beekeeper)):
    return orders.update_status(order_id, user["_id"], user["role"], payload.status)


# Admin
class RolePayload(BaseModel):
    role: str


class BlockPayload(BaseModel):
    is_blocked: bool


class AssignPayload(BaseModel):
    beekeeper_id: str


def _require_confirmation(confirm: bool, what: str):
    if not confirm:
        raise InvalidInput(f"Deleting all {what} is irreversible; repeat the request with confirm=true")


@app.get("/api/admin/users")
def admin_list_users(user: dict = Depends(require_admin)):
    return admin.list_users()


@app.patch("/api/admin/users/{user_id}/role")
def admin_set_role(user_id: str, payload: RolePayload, user: dict = Depends(require_admin)):
    return admin.set_role(user_id, payload.role)


@app.patch("/api/admin/users/{user_id}/block")
def admin_block_user(user_id: str, payload: BlockPayload, user: dict = Depends(require_admin)):
    return admin.set_blocked(user_id, payload.is_blocked)


@app.patch("/api/admin/users/{user_id}/approve")
def admin_approve_user(user_id: str, user: dict = Depends(require_admin)):
    return admin.approve(user_id)


@app.delete("/api/admin/users/{user_id}")
def admin_delete_user(user_id: str, user: dict = Depends(require_admin)):
    admin.delete_user(user_id, user["_id"])
    return {"message": "User deleted"}


@app.get("/api/admin/products")
def admin_list_products(user: dict = Depends(require_admin)):
    return catalog.list_all()


@app.get("/api/admin/appointments")
def admin_list_appointments(user: dict = Depends(require_admin)):
    return appointments.list_all()


@app.delete("/api/admin/appointments/all")
def admin_delete_all_appointments(confirm: bool = Query(False), user: dict = Depends(require_admin)):
    _require_confirmation(confirm, "appointments")
    deleted = admin.delete_all("appointment", user["_id"])
    return {"message": "All appointments have been successfully deleted.", "deleted": deleted}


@app.patch("/api/admin/appointments/{appointment_id}/assign")
def admin_assign_beekeeper(appointment_id: str, payload: AssignPayload, user: dict = Depends(require_admin)):
    return appointments.assign(appointment_id, payload.beekeeper_id)


@app.patch("/api/admin/appointments/{appointment_id}/status")
def admin_appointment_status(appointment_id: str, payload: StatusPayload, user: dict = Depends(require_admin)):
    return appointments.update_status(appointment_id, user["_id"], user["role"], payload.status)


@app.get("/api/admin/orders")
def admin_list_orders(user: dict = Depends(require_admin)):
    return orders.list_all()


@app.delete("/api/admin/orders/all")
def admin_delete_all_orders(confirm: bool = Query(False), user: dict = Depends(require_admin)):
    _require_confirmation(confirm, "orders")
    deleted = admin.delete_all("order", user["_id"])
    return {"message": "All orders have been successfully deleted.", "deleted": deleted}


@app.patch("/api/admin/orders/{order_id}/status")
def admin_order_status(order_id: str, payload: StatusPayload, user: dict = Depends(require_admin)):
    return orders.update_status(order_id, user["_id"], user["role"], payload.status)


@app.get("/api/admin/reports/orders")
def admin_order_report(user: dict = Depends(require_admin)):
    return reports.order_report()


@app.get("/api/admin/reports/appointments")
def admin_appointment_report(top: int = Query(5, ge=1, le=50), user: dict = Depends(require_admin)):
    return reports.appointment_report(top_n=top)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
