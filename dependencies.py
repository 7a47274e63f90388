# dependencies.py
from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
import jwt
from config import JWT_SECRET, JWT_ALGORITHM
from database import database
import crud

security = HTTPBearer()

def _decode(credentials: HTTPAuthorizationCredentials) -> dict:
    try:
        payload = jwt.decode(credentials.credentials, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token has expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")

    try:
        payload["sub"] = int(payload["sub"]) if payload.get("sub") is not None else None
    except (TypeError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid token")
    return payload

async def get_current_customer(credentials: HTTPAuthorizationCredentials = Depends(security)):
    payload = _decode(credentials)
    if payload.get("user_type") != "customer" or payload.get("sub") is None:
        raise HTTPException(status_code=401, detail="Invalid authentication credentials")

    customer = await crud.get_customer(database, payload["sub"])
    if customer is None:
        raise HTTPException(status_code=401, detail="Customer not found")
    if customer["status"] != "active":
        raise HTTPException(status_code=401, detail="Your account is suspended or inactive")
    return customer

async def get_current_admin(credentials: HTTPAuthorizationCredentials = Depends(security)):
    payload = _decode(credentials)
    if payload.get("user_type") != "admin" or payload.get("sub") is None:
        raise HTTPException(status_code=403, detail="Not enough permissions")

    admin = await crud.get_admin(database, payload["sub"])
    if admin is None:
        raise HTTPException(status_code=401, detail="Admin not found")
    if not admin["is_active"]:
        raise HTTPException(status_code=403, detail="Admin account is disabled")
    return admin

async def get_current_super_admin(current_admin = Depends(get_current_admin)):
    """Ensure the admin is a super admin"""
    if current_admin["role"] != "super_admin":
        raise HTTPException(status_code=403, detail="Not enough permissions")
    return current_admin

# Services are built once at startup and kept on app.state
def get_order_lifecycle(request: Request):
    return request.app.state.order_lifecycle

def get_account_service(request: Request):
    return request.app.state.account_service

def get_notification_service(request: Request):
    return request.app.state.notification_service
