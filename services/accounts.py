"""Customer and admin account operations."""

import logging
import re
from typing import Optional

from databases import Database

import crud
from config import (
    ADMIN_ROLES,
    CUSTOMER_PHONE_PATTERN,
    CUSTOMER_STATUSES,
    MAIN_AREAS,
    MIN_SECRET_LENGTH,
)
from errors import NotFoundError, ValidationError
from services import events

logger = logging.getLogger(__name__)

_customer_phone = re.compile(CUSTOMER_PHONE_PATTERN)


class AuthenticationError(Exception):
    """Rejected login; carries a client-facing message."""


def _check_secret(field: str, value: Optional[str]):
    if not value or len(value.strip()) < MIN_SECRET_LENGTH:
        raise ValidationError(field, f"{field} must be at least {MIN_SECRET_LENGTH} characters")


def _check_customer_fields(data: dict):
    if "store_name" in data and (not data["store_name"] or not data["store_name"].strip()):
        raise ValidationError("store_name", "Store name is required")
    if "phone_number" in data and not _customer_phone.match(data["phone_number"] or ""):
        raise ValidationError("phone_number", "Phone number must be 10 to 15 digits")
    if "area" in data and data["area"] not in MAIN_AREAS:
        raise ValidationError("area", "Unknown area")
    if "status" in data and data["status"] not in CUSTOMER_STATUSES:
        raise ValidationError("status", "Unknown customer status")
    if "password" in data:
        _check_secret("password", data["password"])


class AccountService:
    def __init__(self, db: Database, bus: Optional[events.EventBus] = None):
        self.db = db
        self.bus = bus or events.EventBus()

    async def register_customer(self, store_name: str, phone_number: str, password: str, area: str) -> dict:
        data = {"store_name": store_name, "phone_number": phone_number, "password": password, "area": area}
        _check_customer_fields(data)
        customer = await crud.create_customer(self.db, store_name.strip(), phone_number, password, area)
        logger.info(f"✅ Customer registered: {customer['store_name']} ({customer['area']})")
        self.bus.publish(events.CUSTOMER_REGISTERED, customer=customer)
        return customer

    async def update_customer(self, customer_id: int, update_data: dict) -> dict:
        update_data = {k: v for k, v in update_data.items() if v is not None}
        _check_customer_fields(update_data)
        if "notes" in update_data:
            update_data["notes"] = update_data["notes"].strip()
        customer = await crud.update_customer(self.db, customer_id, update_data)
        if customer is None:
            raise NotFoundError("Customer not found")
        return customer

    async def delete_customer(self, customer_id: int):
        if not await crud.delete_customer(self.db, customer_id):
            raise NotFoundError("Customer not found")
        logger.info(f"🗑️ Customer {customer_id} deleted with their orders")

    async def authenticate_customer(self, phone_number: str, password: str) -> dict:
        if not phone_number or not password:
            raise ValidationError("phone_number", "Phone number and password are required")
        customer = await crud.get_customer_credentials(self.db, phone_number)
        if customer is None:
            raise AuthenticationError("Customer is not registered")
        if customer["status"] == "suspended":
            raise AuthenticationError("Your account is suspended, please contact support")
        if not crud.verify_password(password, customer["hashed_password"]):
            raise AuthenticationError("Incorrect password")
        customer.pop("hashed_password", None)
        return customer

    async def create_admin(self, admin_id: str, secret_code: str, name: str, role: str = "admin") -> dict:
        if not admin_id or len(admin_id.strip()) < 3:
            raise ValidationError("admin_id", "admin_id must be at least 3 characters")
        _check_secret("secret_code", secret_code)
        if role not in ADMIN_ROLES:
            raise ValidationError("role", "Unknown admin role")
        return await crud.create_admin(self.db, admin_id.strip(), secret_code.strip(), name, role)

    async def update_admin(self, admin_pk: int, update_data: dict) -> dict:
        update_data = {k: v for k, v in update_data.items() if v is not None}
        if "secret_code" in update_data:
            _check_secret("secret_code", update_data["secret_code"])
            update_data["secret_code"] = update_data["secret_code"].strip()
        if "role" in update_data and update_data["role"] not in ADMIN_ROLES:
            raise ValidationError("role", "Unknown admin role")
        admin = await crud.update_admin(self.db, admin_pk, update_data)
        if admin is None:
            raise NotFoundError("Admin not found")
        return admin

    async def authenticate_admin(self, admin_id: str, secret_code: str) -> dict:
        if not admin_id or not secret_code:
            raise ValidationError("admin_id", "Admin id and secret code are required")
        admin = await crud.get_admin_credentials(self.db, admin_id.strip())
        if admin is None:
            raise AuthenticationError("Incorrect admin id")
        if not admin["is_active"]:
            raise AuthenticationError("Admin account is disabled")
        if not crud.verify_password(secret_code.strip(), admin["hashed_secret_code"]):
            raise AuthenticationError("Incorrect secret code")
        await crud.update_admin_last_login(self.db, admin["id"])
        return await crud.get_admin(self.db, admin["id"])

    async def ensure_default_admin(self, admin_id: str, secret_code: str, name: str):
        if await crud.count_admins(self.db) > 0:
            return None
        admin = await crud.create_admin(self.db, admin_id, secret_code, name, "super_admin")
        logger.info(f"👤 Default super admin created: {admin_id}")
        return admin
