# ============================================
# inventory_service/main.py — inventory-service FastAPI App
# ============================================
# One HTML page plus JSON CRUD endpoints over a flat JSON file.
# Mutating endpoints answer with a {success, message, ...} envelope so
# the page script can show a banner without inspecting status codes.

import logging
import os
import secrets
import time
from pathlib import Path
from typing import List

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import HTMLResponse, JSONResponse, Response
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.routing import Match

from .errors import InventoryError, StorageError
from .models import Envelope, ErrorEnvelope, ProductEnvelope, ProductIn, ProductResponse
from .repository import ProductRepository
from .storage import ProductStorage, get_storage, settings

logging.basicConfig(level=settings.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s %(message)s")
logger = logging.getLogger(__name__)

BASE_DIR = Path(__file__).resolve().parent
CSRF_COOKIE = "csrf_token"
CSRF_HEADER = "X-CSRF-TOKEN"
UNSAFE_METHODS = {"POST", "PUT", "PATCH", "DELETE"}

# ── App Initialisation ────────────────────────────────────────
app = FastAPI(
    title="inventory-service",
    description="Product inventory — FastAPI + JSON file storage",
    version="1.0.0",
    docs_url="/docs" if os.getenv("PYTHON_ENV") != "production" else None,
)
app.mount("/static", StaticFiles(directory=BASE_DIR / "static"), name="static")
templates = Jinja2Templates(directory=str(BASE_DIR / "templates"))


@app.on_event("startup")
async def startup():
    logger.info("%s starting, data file: %s", settings.SERVICE_NAME, settings.DATA_FILE)


# ── Anti-forgery ──────────────────────────────────────────────
# Double-submit cookie: GET / sets the token in a cookie and in the page,
# the page script echoes it back in a header on every write.
@app.middleware("http")
async def csrf_middleware(request: Request, call_next):
    if settings.CSRF_ENABLED and request.method in UNSAFE_METHODS:
        cookie = request.cookies.get(CSRF_COOKIE, "")
        header = request.headers.get(CSRF_HEADER, "")
        if not cookie or not header or not secrets.compare_digest(cookie.encode(), header.encode()):
            logger.warning("Rejected %s %s: CSRF token mismatch", request.method, request.url.path)
            return JSONResponse(
                status_code=419,
                content={"success": False, "message": "CSRF token mismatch"},
            )
    return await call_next(request)


# ── Prometheus Metrics ────────────────────────────────────────
REQUEST_COUNT = Counter(
    'inventory_service_http_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'status_code']
)
REQUEST_LATENCY = Histogram(
    'inventory_service_request_latency_seconds',
    'Request latency in seconds',
    ['endpoint']
)


def route_template(request: Request) -> str:
    """Label by route template so product ids do not explode the series count."""
    partial = None
    for route in request.app.routes:
        match, _ = route.matches(request.scope)
        if match == Match.FULL:
            return route.path
        if match == Match.PARTIAL and partial is None:
            partial = route.path
    return partial or request.url.path


@app.middleware("http")
async def metrics_middleware(request: Request, call_next):
    start = time.time()
    response = await call_next(request)
    duration = time.time() - start
    endpoint = route_template(request)
    REQUEST_COUNT.labels(request.method, endpoint, response.status_code).inc()
    REQUEST_LATENCY.labels(endpoint).observe(duration)
    return response


# ── Error Envelopes ───────────────────────────────────────────
def error_field(loc) -> str:
    """("body", "quantity") -> "quantity"; body-level problems map to "body"."""
    parts = [str(p) for p in loc[1:] if isinstance(p, str)]
    return ".".join(parts) or str(loc[0])


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = {}
    for err in exc.errors():
        errors.setdefault(error_field(err["loc"]), []).append(err["msg"])
    return JSONResponse(
        status_code=422,
        content={"success": False, "message": "Validation failed", "errors": errors},
    )


@app.exception_handler(InventoryError)
async def inventory_exception_handler(request: Request, exc: InventoryError):
    message = exc.message
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, message)
        message = f"An unexpected error occurred: {message}"
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": message},
    )


def unexpected_error(exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error")
    return JSONResponse(
        status_code=500,
        content={"success": False, "message": f"An unexpected error occurred: {exc}"},
    )


# Documented failure envelopes for the OpenAPI schema
VALIDATION_FAILED = {422: {"model": ErrorEnvelope, "description": "Validation failed"}}
NOT_FOUND = {404: {"model": ErrorEnvelope, "description": "Product not found"}}
SERVER_ERROR = {500: {"model": ErrorEnvelope, "description": "Storage or unexpected error"}}
CSRF_MISMATCH = {419: {"model": ErrorEnvelope, "description": "CSRF token mismatch"}}


def get_repository(storage: ProductStorage = Depends(get_storage)) -> ProductRepository:
    return ProductRepository(storage)


# ── Page ──────────────────────────────────────────────────────
@app.get("/", response_class=HTMLResponse, include_in_schema=False)
def index(request: Request):
    """Serve the product management page and hand out the anti-forgery token."""
    token = request.cookies.get(CSRF_COOKIE) or secrets.token_urlsafe(32)
    response = templates.TemplateResponse(request, "products/index.html", {"csrf_token": token})
    response.set_cookie(CSRF_COOKIE, token, httponly=True, samesite="strict")
    return response


# ── Health Endpoint ───────────────────────────────────────────
@app.get("/health", tags=["platform"])
def health(storage: ProductStorage = Depends(get_storage)):
    """Liveness/readiness probe: the data file must be readable and parseable."""
    try:
        count = len(storage.read_all())
        return {"status": "ok", "service": settings.SERVICE_NAME, "storage": "ok", "products": count}
    except StorageError as e:
        return JSONResponse(
            status_code=503,
            content={"status": "error", "service": settings.SERVICE_NAME, "storage": e.message},
        )


# ── Metrics Endpoint ──────────────────────────────────────────
@app.get("/metrics", tags=["platform"])
def metrics():
    """Prometheus scrape endpoint."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


# ── CRUD Endpoints ────────────────────────────────────────────

@app.get("/products", response_model=List[ProductResponse], tags=["products"], responses={**SERVER_ERROR})
def list_products(repo: ProductRepository = Depends(get_repository)):
    """All products, newest first."""
    return repo.list()


@app.get("/products/{product_id}", response_model=ProductResponse, tags=["products"],
         responses={**NOT_FOUND, **SERVER_ERROR})
def get_product(product_id: str, repo: ProductRepository = Depends(get_repository)):
    return repo.get(product_id)


@app.post("/products", response_model=ProductEnvelope, tags=["products"],
          responses={**VALIDATION_FAILED, **CSRF_MISMATCH, **SERVER_ERROR})
def create_product(payload: ProductIn, repo: ProductRepository = Depends(get_repository)):
    """Create a product; id, datetime and total_value are assigned here."""
    try:
        product = repo.create(payload)
    except InventoryError:
        raise
    except Exception as e:
        return unexpected_error(e)
    return {"success": True, "message": "Product added successfully", "product": product}


@app.put("/products/{product_id}", response_model=Envelope, tags=["products"],
         responses={**VALIDATION_FAILED, **NOT_FOUND, **CSRF_MISMATCH, **SERVER_ERROR})
def update_product(product_id: str, payload: ProductIn, repo: ProductRepository = Depends(get_repository)):
    """Full replacement of name/quantity/price. 404 if the id is unknown."""
    try:
        repo.update(product_id, payload)
    except InventoryError:
        raise
    except Exception as e:
        return unexpected_error(e)
    return {"success": True, "message": "Product updated successfully"}


@app.delete("/products/{product_id}", response_model=Envelope, tags=["products"],
            responses={**CSRF_MISMATCH, **SERVER_ERROR})
def delete_product(product_id: str, repo: ProductRepository = Depends(get_repository)):
    # Unknown ids are a silent no-op; the collection is rewritten either way.
    repo.delete(product_id)
    return {"success": True, "message": "Product deleted successfully"}


def run():
    import uvicorn

    uvicorn.run("inventory_service.main:app", host="0.0.0.0", port=settings.PORT)
