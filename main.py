import logging
import os
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Literal, Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from fastapi import Depends, FastAPI, File, Request, UploadFile
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator
from pymongo.database import Database
from pymongo.errors import PyMongoError
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException as StarletteHTTPException

import billing
import seed
from auth import AuthService, UserRepository, verify_token
from database import db, get_db
from errors import AppError, Forbidden, Unauthorized, ValidationError
from image_store import ImageStore, LocalImageStore
from orders import TRANSITION_TABLES, OrderRepository, check_fulfilment, parse_status_filter
from pagination import PageParams, normalize
from products import ProductCatalog
from schemas import HEX_COLOR, Customer, Order, OrderItem, OrderStatus, Principal, Product
from settings import Settings, get_settings
from shop_config import ShopConfigRepository

settings = get_settings()

logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    os.makedirs(settings.upload_dir, exist_ok=True)
    if db is None:
        logger.warning("DATABASE_URL/DATABASE_NAME not set, skipping startup seeding")
    else:
        await run_in_threadpool(seed.run, db, settings)
    yield


app = FastAPI(title="Storefront Orders API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

if settings.upload_base_url.startswith("/"):
    app.mount(settings.upload_base_url, StaticFiles(directory=settings.upload_dir, check_dir=False), name="uploads")


# ---------------------- Errors ----------------------
@app.exception_handler(AppError)
async def handle_app_error(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(exc.to_dict()))


@app.exception_handler(RequestValidationError)
async def handle_request_validation(request: Request, exc: RequestValidationError):
    # submitted values (passwords included) are never echoed back
    details = [
        {key: value for key, value in err.items() if key in ("type", "loc", "msg")}
        for err in exc.errors()
    ]
    return JSONResponse(status_code=400, content={"error": "Invalid body", "details": jsonable_encoder(details)})


@app.exception_handler(StarletteHTTPException)
async def handle_http_error(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=exc.headers)


@app.exception_handler(PyMongoError)
async def handle_database_error(request: Request, exc: PyMongoError):
    logger.exception("%s %s database error", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


@app.exception_handler(Exception)
async def handle_unexpected_error(request: Request, exc: Exception):
    logger.exception("%s %s failed", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


# ---------------------- Dependencies ----------------------
bearer_scheme = HTTPBearer(auto_error=False)


def get_auth(database: Database = Depends(get_db), settings: Settings = Depends(get_settings)) -> AuthService:
    return AuthService(UserRepository(database), settings)


def get_catalog(database: Database = Depends(get_db)) -> ProductCatalog:
    return ProductCatalog(database)


def get_orders(database: Database = Depends(get_db), settings: Settings = Depends(get_settings)) -> OrderRepository:
    return OrderRepository(
        database,
        transitions=TRANSITION_TABLES[settings.order_transitions],
        catalog=ProductCatalog(database),
        strict_totals=settings.strict_totals,
    )


def get_shop_config(database: Database = Depends(get_db), settings: Settings = Depends(get_settings)) -> ShopConfigRepository:
    return ShopConfigRepository(database, seed=settings.shop_defaults)


def get_image_store(settings: Settings = Depends(get_settings)) -> ImageStore:
    return LocalImageStore(settings.upload_dir, settings.upload_base_url)


def get_current_user(
    creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    settings: Settings = Depends(get_settings),
) -> Principal:
    if not creds:
        raise Unauthorized("Missing token")
    return verify_token(creds.credentials, settings.jwt_secret)


def require_admin(user: Principal = Depends(get_current_user)) -> Principal:
    if not user.is_admin:
        raise Forbidden("Admin access required")
    return user


def page_params(
    page: Optional[str] = None,
    limit: Optional[str] = None,
    search: Optional[str] = None,
    q: Optional[str] = None,
) -> PageParams:
    return normalize(page, limit, search if search is not None else q)


# ---------------------- Auth ----------------------
class RegisterBody(BaseModel):
    username: str = Field(..., min_length=3, max_length=32)
    password: str = Field(..., min_length=6)
    email: Optional[Union[EmailStr, Literal[""]]] = None
    phone: Optional[str] = None

    @field_validator("username", mode="before")
    @classmethod
    def strip_username(cls, value):
        return value.strip() if isinstance(value, str) else value


class LoginBody(BaseModel):
    identifier: Optional[str] = None
    username: Optional[str] = None
    password: str = Field(..., min_length=1)

    @model_validator(mode="after")
    def needs_identifier(self):
        if not (self.identifier or self.username or "").strip():
            raise ValueError("identifier or username is required")
        return self

    @property
    def login_name(self) -> str:
        return (self.identifier or self.username or "").strip()


@app.post("/auth/register")
def register(body: RegisterBody, auth: AuthService = Depends(get_auth)):
    token, user = auth.register(body.username, body.password, email=body.email or None, phone=body.phone)
    return {"token": token, "user": user}


@app.post("/auth/login")
def login(body: LoginBody, auth: AuthService = Depends(get_auth)):
    token, user = auth.login(body.login_name, body.password)
    return {"token": token, "user": user}


@app.get("/auth/me")
def me(user: Principal = Depends(get_current_user)):
    return {"user": user.model_dump()}


# ---------------------- Products ----------------------
class ProductBody(BaseModel):
    name: str = Field(..., min_length=1)
    unit: str = ""
    price: float = Field(..., ge=0)
    description: str = ""
    imageUrl: str = ""
    isActive: bool = True


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    unit: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    description: Optional[str] = None
    imageUrl: Optional[str] = None
    isActive: Optional[bool] = None


@app.get("/products")
def list_products(params: PageParams = Depends(page_params), catalog: ProductCatalog = Depends(get_catalog)):
    return catalog.list_public(params)


@app.get("/products/{product_id}")
def get_product(product_id: str, catalog: ProductCatalog = Depends(get_catalog)):
    return {"product": catalog.get_public(product_id)}


@app.get("/admin/products")
def admin_list_products(
    status: Optional[str] = None,
    params: PageParams = Depends(page_params),
    catalog: ProductCatalog = Depends(get_catalog),
    admin: Principal = Depends(require_admin),
):
    return catalog.list_admin(params, status)


@app.get("/admin/products/{product_id}")
def admin_get_product(product_id: str, catalog: ProductCatalog = Depends(get_catalog), admin: Principal = Depends(require_admin)):
    return {"product": catalog.get_by_id(product_id)}


@app.post("/admin/products", status_code=201)
def create_product(body: ProductBody, catalog: ProductCatalog = Depends(get_catalog), admin: Principal = Depends(require_admin)):
    return {"product": catalog.create(Product(**body.model_dump()))}


@app.put("/admin/products/{product_id}")
def update_product(
    product_id: str,
    body: ProductUpdate,
    catalog: ProductCatalog = Depends(get_catalog),
    admin: Principal = Depends(require_admin),
):
    data = {k: v for k, v in body.model_dump().items() if v is not None}
    return {"product": catalog.update(product_id, data)}


@app.delete("/admin/products/{product_id}")
def delete_product(product_id: str, catalog: ProductCatalog = Depends(get_catalog), admin: Principal = Depends(require_admin)):
    catalog.soft_delete(product_id)
    return {"ok": True}


# ---------------------- Orders ----------------------
class PlaceOrderBody(BaseModel):
    orderRef: str = Field(..., min_length=1)
    customer: Customer
    items: List[OrderItem] = Field(..., min_length=1)
    subtotal: float = Field(..., ge=0)
    message: str = ""
    source: str = "web"


class UpdateOrderStatusBody(BaseModel):
    status: OrderStatus


@app.get("/orders")
def list_my_orders(
    status: Optional[str] = None,
    params: PageParams = Depends(page_params),
    orders: OrderRepository = Depends(get_orders),
    user: Principal = Depends(get_current_user),
):
    return orders.list_for_user(user.id, params, parse_status_filter(status))


@app.post("/orders", status_code=201)
def place_order(
    body: PlaceOrderBody,
    orders: OrderRepository = Depends(get_orders),
    shop: ShopConfigRepository = Depends(get_shop_config),
    user: Principal = Depends(get_current_user),
):
    check_fulfilment(body.customer.type, shop.get_or_create_default())
    order = Order(**body.model_dump(), userId=user.id)
    return {"order": orders.create(order)}


@app.get("/admin/orders")
def admin_list_orders(
    status: Optional[str] = None,
    dateFrom: Optional[str] = None,
    dateTo: Optional[str] = None,
    params: PageParams = Depends(page_params),
    orders: OrderRepository = Depends(get_orders),
    admin: Principal = Depends(require_admin),
):
    return orders.list_all(params, parse_status_filter(status), dateFrom, dateTo)


@app.get("/admin/orders/{order_id}")
def admin_get_order(order_id: str, orders: OrderRepository = Depends(get_orders), admin: Principal = Depends(require_admin)):
    return {"order": orders.get_by_id(order_id)}


@app.put("/admin/orders/{order_id}")
def update_order_status(
    order_id: str,
    body: UpdateOrderStatusBody,
    orders: OrderRepository = Depends(get_orders),
    admin: Principal = Depends(require_admin),
):
    return {"order": orders.update_status(order_id, body.status)}


@app.get("/admin/orders/{order_id}/bill", response_class=HTMLResponse)
def order_bill(
    order_id: str,
    orders: OrderRepository = Depends(get_orders),
    shop: ShopConfigRepository = Depends(get_shop_config),
    admin: Principal = Depends(require_admin),
):
    order = orders.get_by_id(order_id)
    return HTMLResponse(billing.render_bill_html(order, shop.get_or_create_default()))


@app.get("/admin/orders/{order_id}/whatsapp")
def order_whatsapp(
    order_id: str,
    orders: OrderRepository = Depends(get_orders),
    shop: ShopConfigRepository = Depends(get_shop_config),
    admin: Principal = Depends(require_admin),
):
    rendered = billing.render(orders.get_by_id(order_id), shop.get_or_create_default())
    return {
        "message": rendered.whatsapp_message,
        "whatsappUrl": rendered.whatsapp_link,
        "phone": rendered.normalized_phone,
    }


# ---------------------- Shop config ----------------------
class ShopConfigUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    phone: Optional[str] = None
    email: Optional[Union[EmailStr, Literal[""]]] = None
    address: Optional[str] = None
    whatsappNumber: Optional[str] = None
    instagram: Optional[str] = Field(None, pattern=r"^(https?://\S+)?$")
    orderPrefix: Optional[str] = None
    primaryColor: Optional[str] = Field(None, pattern=HEX_COLOR)
    backgroundLight: Optional[str] = Field(None, pattern=HEX_COLOR)
    backgroundDark: Optional[str] = Field(None, pattern=HEX_COLOR)
    textColor: Optional[str] = Field(None, pattern=HEX_COLOR)
    currency: Optional[str] = Field(None, pattern=r"^[A-Za-z]{3}$")
    timezone: Optional[str] = None
    dateFormat: Optional[str] = Field(None, min_length=1)
    deliveryEnabled: Optional[bool] = None
    pickupEnabled: Optional[bool] = None

    @field_validator("timezone")
    @classmethod
    def known_timezone(cls, value):
        if value is None:
            return value
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Unknown timezone '{value}'")
        return value

    @field_validator("currency")
    @classmethod
    def upper_currency(cls, value):
        return value.upper() if value else value


@app.get("/shop-config")
def public_shop_config(shop: ShopConfigRepository = Depends(get_shop_config)):
    return {"config": shop.get_or_create_default()}


@app.get("/admin/shop-config")
def admin_shop_config(shop: ShopConfigRepository = Depends(get_shop_config), admin: Principal = Depends(require_admin)):
    return {"config": shop.get_or_create_default()}


@app.put("/admin/shop-config")
def update_shop_config(
    body: ShopConfigUpdate,
    shop: ShopConfigRepository = Depends(get_shop_config),
    admin: Principal = Depends(require_admin),
):
    data = {k: v for k, v in body.model_dump().items() if v is not None}
    return {"config": shop.update(data)}


@app.post("/admin/shop-config/reset")
def reset_shop_config(shop: ShopConfigRepository = Depends(get_shop_config), admin: Principal = Depends(require_admin)):
    return {"config": shop.reset()}


# ---------------------- Uploads ----------------------
@app.post("/admin/upload")
async def upload_image(
    image: UploadFile = File(...),
    store: ImageStore = Depends(get_image_store),
    settings: Settings = Depends(get_settings),
    admin: Principal = Depends(require_admin),
):
    if not (image.content_type or "").startswith("image/"):
        raise ValidationError("Only image files are allowed")
    data = await image.read(settings.max_upload_bytes + 1)
    if not data:
        raise ValidationError("No image file provided")
    if len(data) > settings.max_upload_bytes:
        raise ValidationError(f"Image must be at most {settings.max_upload_mb}MB")
    stored = await run_in_threadpool(store.save, data, image.filename)
    return {"imageUrl": stored.url, "filename": stored.filename, "size": stored.size}


# ---------------------- Misc ----------------------
@app.get("/")
def read_root():
    return {"message": "Storefront Orders API"}


@app.get("/health")
def health(database: Database = Depends(get_db)) -> Dict[str, Any]:
    database.command("ping")
    return {"ok": True, "database": database.name}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=settings.port)
