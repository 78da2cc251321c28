from fastapi import FastAPI, APIRouter, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.cors import CORSMiddleware
import logging
import uuid

import config
from database import close_client, get_database
from core.indexes import ensure_indexes
from errors import ApiError, error_body

# Configure logging
logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL, logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Create the main app
app = FastAPI(
    title="UniSpot Marketplace",
    version="1.0.0",
    description="Student marketplace: study sheets, lease listings, reviews, escrow payments"
)

# Create router with /api prefix
api_router = APIRouter(prefix="/api")


# ============================================
# ERROR RENDERING
# ============================================
# Every error leaves as {"statusCode", "message", "error"}.

def _validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Validation failed"

    first = errors[0]
    if first.get("type") in ("json_invalid", "value_error.jsondecode"):
        return "Invalid JSON body"

    message = str(first.get("msg", "Validation failed"))
    if message.startswith("Value error, "):
        message = message[len("Value error, "):]

    field = ".".join(str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path"))
    return f"{field}: {message}" if field else message


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content=error_body(400, _validation_message(exc)))


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    error = exc.error if isinstance(exc, ApiError) else None
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.status_code, str(exc.detail), error),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {type(exc).__name__}: {exc}")
    return JSONResponse(status_code=500, content=error_body(500, "Internal Server Error"))


# ============================================
# REQUEST ID
# ============================================

@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
    response = await call_next(request)
    response.headers["x-request-id"] = request_id
    return response


# ============================================
# HEALTH
# ============================================

@api_router.get("/health")
async def health_check():
    return {"status": "ok"}


# Include the router in the main app
app.include_router(api_router)

from auth_routes import auth_router
from catalog_routes import catalog_router
from study_sheet_routes import study_sheet_router
from lease_routes import lease_router
from review_routes import review_router, teacher_review_router
from moderation_routes import moderation_router
from admin_routes import admin_router
from withdrawal_routes import withdrawal_router

app.include_router(auth_router)
app.include_router(catalog_router)
app.include_router(study_sheet_router)
app.include_router(lease_router)
app.include_router(review_router)
app.include_router(teacher_review_router)
app.include_router(moderation_router)
app.include_router(admin_router)
app.include_router(withdrawal_router)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_credentials=True,
    allow_origins=config.CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["x-request-id"],
)


@app.on_event("startup")
async def create_indexes():
    await ensure_indexes(get_database())
    logger.info(f"Connected to database '{config.DB_NAME}'")


@app.on_event("shutdown")
async def shutdown_db_client():
    close_client()
