"""FastAPI REST API for the Vastralaya storefront."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, Header, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from . import __version__
from .analytics import dashboard_summary
from .config import Settings
from .errors import (
    ForbiddenError,
    IdentityProviderError,
    InvalidCredentialsError,
    InvalidSignatureError,
    InvalidStatusTransitionError,
    OrderNotFoundError,
    PaymentAlreadyVerifiedError,
    PaymentNotFoundError,
    ProductNotFoundError,
    StoreError,
    UnauthorizedError,
    ValidationError,
    VastralayaError,
)
from .identity import IdentityProvider
from .models import Address, CustomerPrincipal, LineItem, RetailerPrincipal
from .services import Services, build_services

logger = logging.getLogger(__name__)


# --- Pydantic Schemas ---


class CamelModel(BaseModel):
    """Schema base using camelCase names on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AddressSchema(CamelModel):
    street: str
    city: str
    state: str
    pincode: str
    country: str


class LineItemSchema(CamelModel):
    # Carts post whole product records, so the product's own "id" is accepted too.
    product_id: str = Field(
        validation_alias=AliasChoices("productId", "id", "product_id"),
        serialization_alias="productId",
    )
    name: str
    price: float
    quantity: int
    image_url: Optional[str] = None
    category: Optional[str] = None


class LineItemRequest(LineItemSchema):
    price: float = Field(..., ge=0)
    quantity: int = Field(..., ge=1)


class OrderSchema(CamelModel):
    id: str
    customer_id: str
    customer_name: str
    customer_email: str
    customer_phone: Optional[str] = None
    items: list[LineItemSchema]
    total_amount: float
    shipping_address: Optional[AddressSchema] = None
    status: str
    payment_status: Optional[str] = None
    barcode: Optional[str] = None
    tracking_number: Optional[str] = None
    estimated_delivery: Optional[str] = None
    delivery_confirmed: Optional[bool] = None
    delivery_confirmed_at: Optional[str] = None
    barcode_regenerated_at: Optional[str] = None
    created_at: str
    updated_at: Optional[str] = None
    version: int = 0


class OrderResponse(CamelModel):
    order: OrderSchema
    message: Optional[str] = None


class OrderListResponse(CamelModel):
    orders: list[OrderSchema]


class OrderCreateRequest(CamelModel):
    items: list[LineItemRequest]
    shipping_address: AddressSchema
    total_amount: Optional[float] = Field(
        None, description="Client-side total; rejected if it doesn't match the server's"
    )


class StatusUpdateRequest(CamelModel):
    status: str = Field(..., description="pending|confirmed|shipped|delivered|cancelled")


class ConfirmDeliveryRequest(CamelModel):
    confirmed: bool


class MigrationResponse(CamelModel):
    message: str
    migrated_count: int
    total_orders: int


class ProductSchema(CamelModel):
    id: str
    name: str
    description: str = ""
    price: float
    category: str
    image_url: str = ""
    stock: int = 0
    retailer_id: str
    created_at: str


class ProductResponse(CamelModel):
    product: ProductSchema


class ProductListResponse(CamelModel):
    products: list[ProductSchema]


class ProductCreateRequest(CamelModel):
    name: str
    description: str = ""
    price: float = Field(..., ge=0)
    category: str
    image_url: str = ""
    stock: int = Field(default=0, ge=0)


class ProductUpdateRequest(CamelModel):
    name: Optional[str] = None
    description: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    category: Optional[str] = None
    image_url: Optional[str] = None
    stock: Optional[int] = Field(None, ge=0)


class PaymentSchema(CamelModel):
    transaction_id: str
    order_id: str
    amount: float
    customer_id: str
    status: str
    created_at: str
    verified_at: Optional[str] = None


class CreatePaymentRequest(CamelModel):
    amount: float
    order_id: str


class PaymentLinkResponse(CamelModel):
    transaction_id: str
    upi_link: str
    qr_data: str


class VerifyPaymentRequest(CamelModel):
    transaction_id: str
    status: str = Field(..., description="success|failed")


class PaymentVerificationResponse(CamelModel):
    payment: PaymentSchema
    order: Optional[OrderSchema] = None


class RetailerLoginRequest(CamelModel):
    email: str
    password: str


class ChangePasswordRequest(CamelModel):
    session_token: str
    current_password: str
    new_password: str


class VerifySessionRequest(CamelModel):
    session_token: str


class SignupRequest(CamelModel):
    email: str
    password: str
    name: str
    phone: Optional[str] = None


class LoginRequest(CamelModel):
    email: str
    password: str


class ProfileSchema(CamelModel):
    user_id: str
    name: str
    user_type: str
    address: Optional[AddressSchema] = None


class ProfileResponse(CamelModel):
    profile: ProfileSchema


class AddressUpdateRequest(CamelModel):
    address: AddressSchema


# --- Helper Functions ---


def get_services(request: Request) -> Services:
    """Services attached to the running app."""
    return request.app.state.services


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def current_customer(
    services: Services = Depends(get_services),
    authorization: Optional[str] = Header(None),
) -> CustomerPrincipal:
    """Resolve the Authorization bearer token to a customer."""
    token = _bearer_token(authorization)
    if not token:
        raise UnauthorizedError("missing bearer token")
    return services.identity.resolve(token)


def current_retailer(
    services: Services = Depends(get_services),
    x_session_token: Optional[str] = Header(None),
) -> RetailerPrincipal:
    """Resolve the X-Session-Token header to the retailer."""
    return services.retailer_auth.resolve(x_session_token)


def _address(schema: AddressSchema) -> Address:
    return Address(**schema.model_dump())


def _line_item(schema: LineItemSchema) -> LineItem:
    return LineItem(**schema.model_dump())


def _user_dict(principal: CustomerPrincipal) -> dict:
    return {
        "id": principal.id,
        "email": principal.email,
        "name": principal.name,
        "phone": principal.phone,
        "userType": "customer",
    }


# --- Global Exception Handler ---


# Map exception types to HTTP status codes (most specific class wins)
ERROR_STATUS_CODES: dict[type, int] = {
    UnauthorizedError: 401,
    InvalidCredentialsError: 401,
    InvalidSignatureError: 401,
    ForbiddenError: 403,
    OrderNotFoundError: 404,
    ProductNotFoundError: 404,
    PaymentNotFoundError: 404,
    ValidationError: 400,
    InvalidStatusTransitionError: 400,
    PaymentAlreadyVerifiedError: 409,
    StoreError: 500,
    IdentityProviderError: 502,
}


def _status_for(exc: VastralayaError) -> int:
    for cls in type(exc).__mro__:
        if cls in ERROR_STATUS_CODES:
            return ERROR_STATUS_CODES[cls]
    return 500


async def vastralaya_error_handler(request: Request, exc: VastralayaError) -> JSONResponse:
    """Map VastralayaError subclasses to appropriate HTTP responses."""
    status_code = _status_for(exc)
    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc), "error_type": type(exc).__name__},
    )


async def internal_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Log unexpected failures and answer with a generic error."""
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "error_type": "InternalError"},
    )


# --- Endpoints ---


router = APIRouter(prefix="/api")


@router.get("/health")
def health_check(services: Services = Depends(get_services)):
    """
    Health check endpoint.

    Reports whether the store is readable.
    """
    try:
        return {
            "status": "ok",
            "version": __version__,
            "order_count": len(services.store.get_by_prefix("order:")),
            "product_count": len(services.store.get_by_prefix("product:")),
        }
    except Exception as e:
        logger.error("Health check failed: %s", e)
        return {
            "status": "error",
            "detail": str(e),
        }


# --- Auth Endpoints ---


@router.post("/retailer/login")
def retailer_login(request: RetailerLoginRequest, services: Services = Depends(get_services)):
    """Exchange the retailer credentials for a session token."""
    session = services.retailer_auth.login(request.email, request.password)
    return {
        "sessionToken": session.token,
        "user": {"id": session.user_id, "email": session.email, "userType": session.user_type},
    }


@router.post("/retailer/change-password")
def retailer_change_password(
    request: ChangePasswordRequest, services: Services = Depends(get_services)
):
    services.retailer_auth.change_password(
        request.session_token, request.current_password, request.new_password
    )
    return {"success": True}


@router.post("/verify-session")
def verify_session(request: VerifySessionRequest, services: Services = Depends(get_services)):
    session = services.retailer_auth.verify_session(request.session_token)
    return {"session": session.to_dict()}


@router.post("/signup", status_code=201)
def signup(request: SignupRequest, services: Services = Depends(get_services)):
    """Register a customer account with the identity provider."""
    principal = services.identity.create_user(
        request.email, request.password, request.name, request.phone
    )
    return {"user": _user_dict(principal)}


@router.post("/login")
def login(request: LoginRequest, services: Services = Depends(get_services)):
    """Sign a customer in and return a bearer token."""
    token = services.identity.sign_in(request.email, request.password)
    principal = services.identity.resolve(token)
    return {"accessToken": token, "user": _user_dict(principal)}


# --- Profile Endpoints ---


@router.get("/profile", response_model=ProfileResponse)
def get_profile(
    customer: CustomerPrincipal = Depends(current_customer),
    services: Services = Depends(get_services),
):
    profile = services.profiles.get_or_create(customer)
    return {"profile": profile.to_dict()}


@router.put("/profile/address", response_model=ProfileResponse)
def update_address(
    request: AddressUpdateRequest,
    customer: CustomerPrincipal = Depends(current_customer),
    services: Services = Depends(get_services),
):
    profile = services.profiles.update_address(customer, _address(request.address))
    return {"profile": profile.to_dict()}


# --- Product Endpoints ---


@router.get("/products", response_model=ProductListResponse)
def list_products(services: Services = Depends(get_services)):
    """Public catalog, newest first."""
    return {"products": [p.to_dict() for p in services.products.list_products()]}


@router.get("/products/retailer", response_model=ProductListResponse)
def list_retailer_products(
    retailer: RetailerPrincipal = Depends(current_retailer),
    services: Services = Depends(get_services),
):
    return {"products": [p.to_dict() for p in services.products.list_for_retailer(retailer)]}


@router.post("/products", response_model=ProductResponse, status_code=201)
def create_product(
    request: ProductCreateRequest,
    retailer: RetailerPrincipal = Depends(current_retailer),
    services: Services = Depends(get_services),
):
    product = services.products.create(
        retailer,
        name=request.name,
        price=request.price,
        category=request.category,
        description=request.description,
        image_url=request.image_url,
        stock=request.stock,
    )
    return {"product": product.to_dict()}


@router.put("/products/{product_id}", response_model=ProductResponse)
def update_product(
    product_id: str,
    request: ProductUpdateRequest,
    retailer: RetailerPrincipal = Depends(current_retailer),
    services: Services = Depends(get_services),
):
    changes = request.model_dump(exclude_unset=True, by_alias=True)
    product = services.products.update(retailer, product_id, changes)
    return {"product": product.to_dict()}


@router.delete("/products/{product_id}")
def delete_product(
    product_id: str,
    retailer: RetailerPrincipal = Depends(current_retailer),
    services: Services = Depends(get_services),
):
    services.products.delete(retailer, product_id)
    return {"success": True}


# --- Order Endpoints ---


@router.post("/orders", response_model=OrderResponse, status_code=201)
def place_order(
    request: OrderCreateRequest,
    customer: CustomerPrincipal = Depends(current_customer),
    services: Services = Depends(get_services),
):
    """Place an order for the signed-in customer."""
    order = services.orders.create(
        customer,
        items=[_line_item(i) for i in request.items],
        shipping_address=_address(request.shipping_address),
        total_amount=request.total_amount,
    )
    return {"order": order.to_dict()}


@router.get("/orders", response_model=OrderListResponse)
def list_orders(
    services: Services = Depends(get_services),
    authorization: Optional[str] = Header(None),
    x_session_token: Optional[str] = Header(None),
):
    """
    List orders.

    A retailer session sees every order; a customer token sees its own.
    """
    if x_session_token:
        try:
            retailer = services.retailer_auth.resolve(x_session_token)
        except UnauthorizedError:
            retailer = None
        if retailer is not None:
            return {"orders": [o.to_dict() for o in services.orders.list_all(retailer)]}

    customer = current_customer(services, authorization)
    return {"orders": [o.to_dict() for o in services.orders.list_for_customer(customer)]}


@router.put("/orders/{order_id}/status", response_model=OrderResponse)
def update_order_status(
    order_id: str,
    request: StatusUpdateRequest,
    retailer: RetailerPrincipal = Depends(current_retailer),
    services: Services = Depends(get_services),
):
    order = services.orders.transition_status(retailer, order_id, request.status)
    return {"order": order.to_dict()}


@router.post("/orders/{order_id}/confirm-delivery", response_model=OrderResponse)
def confirm_delivery(
    order_id: str,
    request: ConfirmDeliveryRequest,
    customer: CustomerPrincipal = Depends(current_customer),
    services: Services = Depends(get_services),
):
    order = services.orders.confirm_delivery(customer, order_id, request.confirmed)
    return {"order": order.to_dict()}


@router.post("/orders/{order_id}/regenerate-barcode", response_model=OrderResponse)
def regenerate_barcode(
    order_id: str,
    retailer: RetailerPrincipal = Depends(current_retailer),
    services: Services = Depends(get_services),
):
    order = services.orders.regenerate_barcode(retailer, order_id)
    return {"order": order.to_dict(), "message": "Barcode regenerated successfully"}


@router.post("/migrate-orders", response_model=MigrationResponse)
def migrate_orders(
    retailer: RetailerPrincipal = Depends(current_retailer),
    services: Services = Depends(get_services),
):
    """Backfill barcodes and tracking numbers on legacy orders."""
    return services.orders.migrate_legacy_orders(retailer).to_dict()


@router.get("/track/{identifier}", response_model=OrderResponse)
def track_order(identifier: str, services: Services = Depends(get_services)):
    """Public lookup by barcode (with or without dashes), tracking number or order ID."""
    return {"order": services.orders.track(identifier).to_dict()}


# --- Payment Endpoints ---


@router.post("/create-payment", response_model=PaymentLinkResponse)
def create_payment(
    request: CreatePaymentRequest,
    customer: CustomerPrincipal = Depends(current_customer),
    services: Services = Depends(get_services),
):
    """Create a UPI payment link for an order."""
    link = services.payments.create_payment(customer, request.amount, request.order_id)
    return link.to_dict()


@router.post("/verify-payment", response_model=PaymentVerificationResponse)
async def verify_payment(
    request: Request,
    services: Services = Depends(get_services),
    x_payment_signature: Optional[str] = Header(None),
):
    """
    Settle a payment with its reported outcome.

    When a webhook secret is configured the raw body must carry a valid
    X-Payment-Signature; otherwise the outcome is taken as reported.
    """
    body = await request.body()
    services.payments.verify_signature(body, x_payment_signature)
    try:
        payload = VerifyPaymentRequest.model_validate_json(body)
    except PydanticValidationError as e:
        raise ValidationError("body", e.errors()[0]["msg"]) from e
    result = services.payments.verify_payment(payload.transaction_id, payload.status)
    return result.to_dict()


# --- Analytics Endpoints ---


@router.get("/analytics/overview")
def analytics_overview(
    period: str = Query(default="weekly", description="daily|weekly|monthly|all"),
    retailer: RetailerPrincipal = Depends(current_retailer),
    services: Services = Depends(get_services),
):
    """Dashboard figures for the retailer."""
    return dashboard_summary(
        services.orders.list_all(retailer), services.products.list_products(), period
    )


# --- App Factory ---


def create_app(
    settings: Settings | None = None, identity: IdentityProvider | None = None
) -> FastAPI:
    """Build the API app over the configured data directory."""
    settings = settings or Settings.from_env()

    app = FastAPI(
        title="Vastralaya API",
        description="Storefront orders, catalog, payments and tracking",
        version=__version__,
    )
    app.state.services = build_services(settings, identity)

    # CORS for the storefront and retailer dashboard dev servers
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(VastralayaError, vastralaya_error_handler)
    app.add_exception_handler(Exception, internal_error_handler)
    app.include_router(router)
    return app


app = create_app()
