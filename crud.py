# crud.py
from sqlalchemy import select, update, delete, and_, or_, case, func
from databases import Database
from models import Customer, Admin, SubArea, Order, Notification
from errors import ValidationError
from config import JWT_SECRET, JWT_ALGORITHM, ACCESS_TOKEN_EXPIRE_DAYS
from datetime import datetime, timedelta, timezone
from typing import Optional, List, Iterable
import hashlib
import hmac
import json
import secrets
import logging
import jwt

logger = logging.getLogger(__name__)

customers = Customer.__table__
admins = Admin.__table__
sub_areas = SubArea.__table__
orders = Order.__table__
notifications = Notification.__table__

# ========== PASSWORD HASHING ==========
HASH_ITERATIONS = 100_000

def get_password_hash(password: str) -> str:
    """Hash password using PBKDF2-SHA256 with a random salt"""
    salt = secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), HASH_ITERATIONS).hex()
    return f"{salt}${digest}"

def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify password by hashing with the stored salt and comparing"""
    try:
        salt, digest = hashed_password.split("$", 1)
    except (AttributeError, ValueError):
        return False
    candidate = hashlib.pbkdf2_hmac("sha256", plain_password.encode(), salt.encode(), HASH_ITERATIONS).hex()
    return hmac.compare_digest(candidate, digest)

def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(days=ACCESS_TOKEN_EXPIRE_DAYS))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, JWT_SECRET, algorithm=JWT_ALGORITHM)

# ========== HELPERS ==========
def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)

def is_unique_violation(exc: Exception) -> bool:
    """True for a uniqueness-constraint failure from sqlite3 or asyncpg.

    Other integrity failures (NOT NULL, foreign key, check) return False.
    """
    if type(exc).__name__ == "UniqueViolationError":
        return True
    message = str(exc)
    return "UNIQUE constraint failed" in message or "duplicate key value violates unique constraint" in message

def _record_to_dict(record, table) -> dict:
    return {name: record[name] for name in table.columns.keys()}

def _customer_to_dict(record) -> dict:
    customer = _record_to_dict(record, customers)
    customer.pop("hashed_password", None)
    return customer

def _admin_to_dict(record) -> dict:
    admin = _record_to_dict(record, admins)
    admin.pop("hashed_secret_code", None)
    return admin

def _order_to_dict(record) -> dict:
    order = _record_to_dict(record, orders)
    order["items"] = json.loads(order.get("items") or "[]")
    order["timeline"] = json.loads(order.get("timeline") or "[]")
    return order

def _notification_to_dict(record) -> dict:
    notification = _record_to_dict(record, notifications)
    notification["data"] = json.loads(notification.get("data") or "{}")
    return notification

# ========== CUSTOMER CRUD ==========
async def get_customer(db: Database, customer_id: int) -> Optional[dict]:
    query = select(customers).where(customers.c.id == customer_id)
    result = await db.fetch_one(query)
    return _customer_to_dict(result) if result else None

async def get_customer_credentials(db: Database, phone_number: str) -> Optional[dict]:
    """Customer row including the password hash, for login only"""
    query = select(customers).where(customers.c.phone_number == phone_number)
    result = await db.fetch_one(query)
    return _record_to_dict(result, customers) if result else None

async def get_customers(db: Database, area: Optional[str] = None, status: Optional[str] = None,
                        skip: int = 0, limit: int = 100) -> List[dict]:
    query = select(customers)
    if area:
        query = query.where(customers.c.area == area)
    if status:
        query = query.where(customers.c.status == status)
    query = query.order_by(customers.c.created_at.desc(), customers.c.id.desc()).offset(skip).limit(limit)
    results = await db.fetch_all(query)
    return [_customer_to_dict(customer) for customer in results]

async def create_customer(db: Database, store_name: str, phone_number: str, password: str, area: str) -> dict:
    query = customers.insert().values(
        store_name=store_name,
        phone_number=phone_number,
        hashed_password=get_password_hash(password),
        area=area,
        status="active",
        total_orders=0,
        created_at=utcnow(),
    )
    try:
        customer_id = await db.execute(query)
    except Exception as e:
        if is_unique_violation(e):
            raise ValidationError("phone_number", "Customer with this phone number already exists")
        raise
    return await get_customer(db, customer_id)

async def update_customer(db: Database, customer_id: int, update_data: dict) -> Optional[dict]:
    customer = await get_customer(db, customer_id)
    if not customer:
        return None

    update_data = {k: v for k, v in update_data.items() if v is not None}
    if "password" in update_data:
        update_data["hashed_password"] = get_password_hash(update_data.pop("password"))
    if not update_data:
        return customer

    query = update(customers).where(customers.c.id == customer_id).values(updated_at=utcnow(), **update_data)
    try:
        await db.execute(query)
    except Exception as e:
        if is_unique_violation(e):
            raise ValidationError("phone_number", "Customer with this phone number already exists")
        raise
    return await get_customer(db, customer_id)

async def delete_customer(db: Database, customer_id: int) -> bool:
    """Delete a customer together with their orders and notifications"""
    customer = await get_customer(db, customer_id)
    if not customer:
        return False
    async with db.transaction():
        await db.execute(delete(notifications).where(notifications.c.customer_id == customer_id))
        order_ids = select(orders.c.id).where(orders.c.customer_id == customer_id)
        await db.execute(delete(notifications).where(notifications.c.order_id.in_(order_ids)))
        await db.execute(delete(orders).where(orders.c.customer_id == customer_id))
        await db.execute(delete(customers).where(customers.c.id == customer_id))
    return True

async def increment_customer_orders(db: Database, customer_id: int):
    query = update(customers).where(customers.c.id == customer_id).values(
        total_orders=customers.c.total_orders + 1,
        last_order_date=utcnow(),
    )
    await db.execute(query)

async def set_customer_push_token(db: Database, customer_id: int, push_token: Optional[str]):
    query = update(customers).where(customers.c.id == customer_id).values(push_token=push_token, updated_at=utcnow())
    await db.execute(query)

# ========== ADMIN CRUD ==========
async def get_admin(db: Database, admin_pk: int) -> Optional[dict]:
    query = select(admins).where(admins.c.id == admin_pk)
    result = await db.fetch_one(query)
    return _admin_to_dict(result) if result else None

async def get_admin_credentials(db: Database, admin_id: str) -> Optional[dict]:
    """Admin row including the secret code hash, for login only"""
    query = select(admins).where(admins.c.admin_id == admin_id)
    result = await db.fetch_one(query)
    return _record_to_dict(result, admins) if result else None

async def count_admins(db: Database) -> int:
    return await db.fetch_val(select(func.count()).select_from(admins)) or 0

async def get_admins(db: Database) -> List[dict]:
    results = await db.fetch_all(select(admins).order_by(admins.c.id))
    return [_admin_to_dict(admin) for admin in results]

async def create_admin(db: Database, admin_id: str, secret_code: str, name: str, role: str = "admin") -> dict:
    query = admins.insert().values(
        admin_id=admin_id,
        hashed_secret_code=get_password_hash(secret_code),
        name=name,
        role=role,
        is_active=True,
        created_at=utcnow(),
    )
    try:
        admin_pk = await db.execute(query)
    except Exception as e:
        if is_unique_violation(e):
            raise ValidationError("admin_id", "Admin with this id already exists")
        raise
    return await get_admin(db, admin_pk)

async def update_admin(db: Database, admin_pk: int, update_data: dict) -> Optional[dict]:
    admin = await get_admin(db, admin_pk)
    if not admin:
        return None

    update_data = {k: v for k, v in update_data.items() if v is not None}
    # The secret code is re-hashed whenever it changes
    if "secret_code" in update_data:
        update_data["hashed_secret_code"] = get_password_hash(update_data.pop("secret_code"))
    if not update_data:
        return admin

    query = update(admins).where(admins.c.id == admin_pk).values(updated_at=utcnow(), **update_data)
    try:
        await db.execute(query)
    except Exception as e:
        if is_unique_violation(e):
            raise ValidationError("admin_id", "Admin with this id already exists")
        raise
    return await get_admin(db, admin_pk)

async def update_admin_last_login(db: Database, admin_pk: int):
    query = update(admins).where(admins.c.id == admin_pk).values(last_login=utcnow())
    await db.execute(query)

async def set_admin_push_token(db: Database, admin_pk: int, push_token: Optional[str]):
    query = update(admins).where(admins.c.id == admin_pk).values(push_token=push_token, updated_at=utcnow())
    await db.execute(query)

async def get_active_admin_push_tokens(db: Database) -> List[str]:
    query = select(admins.c.push_token).where(
        and_(admins.c.is_active == True, admins.c.push_token.isnot(None))
    )
    results = await db.fetch_all(query)
    return [row["push_token"] for row in results if row["push_token"]]

# ========== PUSH TOKEN CLEANUP ==========
async def clear_push_tokens(db: Database, tokens: Iterable[str]) -> None:
    """Null the push token of every customer and admin holding one of ``tokens``"""
    tokens = [token for token in set(tokens) if token]
    if not tokens:
        return
    for table in (customers, admins):
        query = update(table).where(table.c.push_token.in_(tokens)).values(push_token=None)
        await db.execute(query)
    logger.info(f"🧹 Removed {len(tokens)} dead push token(s)")

# ========== SUB-AREA CRUD ==========
async def find_sub_area(db: Database, name: str, main_area: Optional[str] = None) -> Optional[dict]:
    """Active sub-area by name, restricted to ``main_area`` when given"""
    conditions = [sub_areas.c.name == name, sub_areas.c.is_active == True]
    if main_area is not None:
        conditions.append(sub_areas.c.main_area == main_area)
    query = select(sub_areas).where(and_(*conditions)).order_by(sub_areas.c.id).limit(1)
    result = await db.fetch_one(query)
    return _record_to_dict(result, sub_areas) if result else None

async def create_sub_area(db: Database, name: str, main_area: str, delivery_price: float, is_active: bool = True) -> dict:
    query = sub_areas.insert().values(
        name=name,
        main_area=main_area,
        delivery_price=delivery_price,
        is_active=is_active,
        created_at=utcnow(),
    )
    sub_area_id = await db.execute(query)
    result = await db.fetch_one(select(sub_areas).where(sub_areas.c.id == sub_area_id))
    return _record_to_dict(result, sub_areas)

async def count_sub_areas(db: Database) -> int:
    return await db.fetch_val(select(func.count()).select_from(sub_areas)) or 0

# ========== ORDER CRUD ==========
async def insert_order(db: Database, order_data: dict) -> dict:
    """Insert an order; raises the driver's integrity error on a duplicate order number"""
    values = dict(order_data)
    values["items"] = json.dumps(values.get("items", []), ensure_ascii=False)
    values["timeline"] = json.dumps(values.get("timeline", []), ensure_ascii=False)
    values.setdefault("version", 1)
    values.setdefault("created_at", utcnow())
    order_id = await db.execute(orders.insert().values(**values))
    return await get_order_by_id(db, order_id)

async def get_order_by_id(db: Database, order_id: int) -> Optional[dict]:
    query = select(orders).where(orders.c.id == order_id)
    result = await db.fetch_one(query)
    return _order_to_dict(result) if result else None

async def get_customer_order(db: Database, order_id: int, customer_id: int) -> Optional[dict]:
    query = select(orders).where(and_(orders.c.id == order_id, orders.c.customer_id == customer_id))
    result = await db.fetch_one(query)
    return _order_to_dict(result) if result else None

async def get_orders(db: Database, status: Optional[str] = None, area: Optional[str] = None,
                     customer_id: Optional[int] = None, skip: int = 0, limit: int = 20) -> List[dict]:
    query = select(orders)
    if status:
        query = query.where(orders.c.status == status)
    if area:
        query = query.where(orders.c.area == area)
    if customer_id is not None:
        query = query.where(orders.c.customer_id == customer_id)
    query = query.order_by(orders.c.created_at.desc(), orders.c.id.desc()).offset(skip).limit(limit)
    results = await db.fetch_all(query)
    return [_order_to_dict(order) for order in results]

async def update_order_state(db: Database, order_id: int, expected_version: int, values: dict) -> bool:
    """Apply ``values`` only if the order is still at ``expected_version``"""
    values = dict(values)
    if "timeline" in values:
        values["timeline"] = json.dumps(values["timeline"], ensure_ascii=False)
    query = (
        update(orders)
        .where(and_(orders.c.id == order_id, orders.c.version == expected_version))
        .values(version=expected_version + 1, updated_at=utcnow(), **values)
        .returning(orders.c.id)
    )
    result = await db.fetch_one(query)
    return result is not None

# ========== NOTIFICATION CRUD ==========
PRIORITY_RANK = {"urgent": 1, "high": 2, "normal": 3, "low": 4}

def _not_expired():
    return or_(notifications.c.expires_at.is_(None), notifications.c.expires_at > utcnow())

async def create_notification(db: Database, notification_data: dict) -> dict:
    values = dict(notification_data)
    values["data"] = json.dumps(values.get("data") or {}, ensure_ascii=False, default=str)
    values.setdefault("is_read", False)
    values.setdefault("priority", "normal")
    values.setdefault("created_at", utcnow())
    notification_id = await db.execute(notifications.insert().values(**values))
    return await get_notification(db, notification_id)

async def get_notification(db: Database, notification_id: int) -> Optional[dict]:
    query = select(notifications).where(notifications.c.id == notification_id)
    result = await db.fetch_one(query)
    return _notification_to_dict(result) if result else None

async def get_admin_notifications(db: Database, skip: int = 0, limit: int = 20) -> List[dict]:
    priority_order = case(PRIORITY_RANK, value=notifications.c.priority, else_=3)
    query = (
        select(notifications)
        .where(and_(notifications.c.recipient == "admin", _not_expired()))
        .order_by(priority_order, notifications.c.created_at.desc(), notifications.c.id.desc())
        .offset(skip)
        .limit(limit)
    )
    results = await db.fetch_all(query)
    return [_notification_to_dict(n) for n in results]

def _customer_scope(customer_id: int):
    return or_(
        and_(notifications.c.recipient == "customer", notifications.c.customer_id == customer_id),
        notifications.c.recipient == "all",
    )

async def get_customer_notifications(db: Database, customer_id: int, skip: int = 0, limit: int = 20) -> List[dict]:
    query = (
        select(notifications)
        .where(and_(_customer_scope(customer_id), _not_expired()))
        .order_by(notifications.c.created_at.desc(), notifications.c.id.desc())
        .offset(skip)
        .limit(limit)
    )
    results = await db.fetch_all(query)
    return [_notification_to_dict(n) for n in results]

async def get_unread_count(db: Database, recipient: str, customer_id: Optional[int] = None) -> int:
    conditions = [notifications.c.recipient == recipient, notifications.c.is_read == False, _not_expired()]
    if customer_id is not None:
        conditions.append(notifications.c.customer_id == customer_id)
    query = select(func.count()).select_from(notifications).where(and_(*conditions))
    return await db.fetch_val(query) or 0

async def mark_notification_read(db: Database, notification_id: int) -> Optional[dict]:
    query = update(notifications).where(notifications.c.id == notification_id).values(is_read=True)
    await db.execute(query)
    return await get_notification(db, notification_id)

async def mark_all_notifications_read(db: Database, recipient: str, customer_id: Optional[int] = None):
    conditions = [notifications.c.recipient == recipient, notifications.c.is_read == False]
    if customer_id is not None:
        conditions.append(notifications.c.customer_id == customer_id)
    await db.execute(update(notifications).where(and_(*conditions)).values(is_read=True))
