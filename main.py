# main.py
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from database import database, engine, Base
from config import ALLOWED_ORIGINS, EXPO_PUSH_URL, FIREBASE_CREDENTIALS, LOG_LEVEL, PORT, PUSH_TIMEOUT_SECONDS
from errors import DomainError
from admin_api import router as admin_router
from api.auth import router as auth_router
from api.notifications import router as notifications_router
from api.orders import router as orders_router
from services.accounts import AccountService
from services.events import EventBus
from services.notification_service import NotificationService
from services.order_lifecycle import OrderLifecycle
from services.push_dispatcher import PushDispatcher
from services.push_transports import ExpoTransport, build_fcm_transport
from services.token_classifier import TokenKind
from seed import create_sample_data
from datetime import datetime
import logging

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

# Create tables
Base.metadata.create_all(bind=engine)

app = FastAPI(
    title="Zajel Delivery API",
    description="Order lifecycle and push notification backend for store deliveries",
    version="1.0.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(auth_router)
app.include_router(orders_router)
app.include_router(notifications_router)
# Admin router already carries the /api/v1/admin prefix
app.include_router(admin_router)

def build_services(db):
    """Wire the event bus, push channels and domain services together"""
    bus = EventBus()
    dispatcher = PushDispatcher(
        {
            TokenKind.EXPO: ExpoTransport(EXPO_PUSH_URL, PUSH_TIMEOUT_SECONDS),
            TokenKind.FCM: build_fcm_transport(FIREBASE_CREDENTIALS),
        },
        db=db,
    )
    notification_service = NotificationService(db, dispatcher)
    notification_service.register(bus)
    return {
        "bus": bus,
        "dispatcher": dispatcher,
        "notification_service": notification_service,
        "order_lifecycle": OrderLifecycle(db, bus),
        "account_service": AccountService(db, bus),
    }

# Startup event
@app.on_event("startup")
async def startup():
    await database.connect()
    for name, service in build_services(database).items():
        setattr(app.state, name, service)
    await create_sample_data(database, app.state.account_service)
    logger.info("✅ Delivery API ready")

# Shutdown event
@app.on_event("shutdown")
async def shutdown():
    await app.state.bus.drain()
    await app.state.dispatcher.close()
    await database.disconnect()

# ========== ERROR HANDLERS ==========
@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError):
    if exc.status_code >= 500:
        logger.error(f"❌ {type(exc).__name__}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = [str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path")]
    content = {"status": "error", "message": first.get("msg", "Invalid request")}
    if location:
        content["field"] = ".".join(location)
    return JSONResponse(status_code=400, content=content)

# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    if isinstance(exc, HTTPException):
        raise exc
    logger.exception(f"❌ Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=500,
        content={"status": "error", "message": "Internal server error occurred"}
    )

# ========== ROOT ENDPOINTS ==========
@app.get("/")
async def read_root():
    return {
        "message": "Welcome to Zajel Delivery API",
        "version": "1.0.0",
        "endpoints": {
            "docs": "/docs",
            "auth": "/api/v1/auth/",
            "orders": "/api/v1/orders/",
            "notifications": "/api/v1/notifications/customer",
            "admin": "/api/v1/admin/",
        }
    }

@app.get("/health")
async def health_check():
    db_status = "connected"
    try:
        await database.execute("SELECT 1")
    except Exception:
        db_status = "disconnected"

    return {
        "status": "healthy",
        "database": db_status,
        "timestamp": datetime.now().isoformat(),
    }

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=PORT)
