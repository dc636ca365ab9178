import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware
from library_backend.config import settings
from library_backend.database import engine, Base, SessionLocal
from library_backend.routes import (
    auth, users, books, borrow_requests, transactions, payments, notifications, reports
)
from library_backend.routes import settings as settings_routes
from library_backend.services import system_settings
from library_backend.services.mqtt_service import mqtt_service

logging.basicConfig(
    level=settings.log_level.upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


class LoggingMiddleware(BaseHTTPMiddleware):
    """Log every incoming request."""
    async def dispatch(self, request: Request, call_next):
        auth_header = request.headers.get("Authorization")
        client_ip = request.client.host if request.client else "unknown"
        logger.info(f"{request.method} {request.url.path} - IP: {client_ip} - Auth: {'Present' if auth_header else 'Missing'}")
        return await call_next(request)

Base.metadata.create_all(bind=engine)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Seed default settings and run the MQTT publisher for the app's lifetime."""
    db = SessionLocal()
    try:
        system_settings.seed_defaults(db)
    finally:
        db.close()

    logger.info("Starting MQTT service...")
    mqtt_service.connect()

    yield

    logger.info("Stopping MQTT service...")
    mqtt_service.disconnect()


app = FastAPI(
    title="Library Management API",
    description="Backend API for library catalog, circulation, fines and payments",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(LoggingMiddleware)


def _error(status_code: int, message, headers=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "message": message},
        headers=headers,
    )

@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return _error(exc.status_code, exc.detail, getattr(exc, "headers", None))

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        messages.append(f"{location}: {error.get('msg')}" if location else error.get("msg"))
    return _error(status.HTTP_400_BAD_REQUEST, "; ".join(messages) or "Invalid request")

@app.exception_handler(IntegrityError)
async def integrity_error_handler(request: Request, exc: IntegrityError):
    logger.warning(f"Integrity error on {request.method} {request.url.path}: {exc.orig}")
    return _error(status.HTTP_409_CONFLICT, "Resource conflicts with an existing record")

# Borrow requests share the /api/transactions prefix and must be matched first
app.include_router(auth.router)
app.include_router(users.router)
app.include_router(books.router)
app.include_router(borrow_requests.router)
app.include_router(transactions.router)
app.include_router(payments.router)
app.include_router(notifications.router)
app.include_router(settings_routes.router)
app.include_router(reports.router)

@app.get("/")
async def root():
    return {"message": "Library Management API", "version": "1.0.0"}

@app.get("/api/health")
async def health_check():
    return {"status": "healthy", "mqtt": mqtt_service.is_running()}

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "library_backend.main:app",
        host=settings.host,
        port=settings.port,
        ssl_certfile=settings.ssl_certfile if settings.ssl_enabled else None,
        ssl_keyfile=settings.ssl_keyfile if settings.ssl_enabled else None,
        reload=True
    )
