# schemas.py
from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from datetime import datetime

# ========== AUTHENTICATION SCHEMAS ==========
class CustomerLogin(BaseModel):
    phone_number: str
    password: str

class CustomerRegister(BaseModel):
    store_name: str = Field(..., max_length=100)
    phone_number: str
    password: str
    area: str

class AdminLogin(BaseModel):
    admin_id: str
    secret_code: str

class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: Optional[Dict[str, Any]] = None

class PushTokenRegister(BaseModel):
    push_token: str

# ========== CUSTOMER SCHEMAS ==========
class CustomerUpdate(BaseModel):
    store_name: Optional[str] = Field(None, max_length=100)
    phone_number: Optional[str] = None
    area: Optional[str] = None
    status: Optional[str] = None
    password: Optional[str] = None
    notes: Optional[str] = Field(None, max_length=500)

class CustomerResponse(BaseModel):
    id: int
    store_name: str
    phone_number: str
    area: str
    status: str
    total_orders: int = 0
    last_order_date: Optional[datetime] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

# ========== ADMIN SCHEMAS ==========
class AdminCreate(BaseModel):
    admin_id: str
    secret_code: str
    name: str = "مدير النظام"
    role: str = "admin"

class AdminUpdate(BaseModel):
    name: Optional[str] = None
    secret_code: Optional[str] = None
    role: Optional[str] = None
    is_active: Optional[bool] = None

class AdminResponse(BaseModel):
    id: int
    admin_id: str
    name: Optional[str] = None
    role: str
    is_active: bool
    last_login: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

# ========== ORDER SCHEMAS ==========
class OrderItem(BaseModel):
    name: Optional[str] = None
    quantity: Optional[float] = None
    price: Optional[float] = None

class OrderCreate(BaseModel):
    items: List[OrderItem] = []
    delivery_address: Optional[str] = None
    sub_area: Optional[str] = None
    client_phone: Optional[str] = None
    notes: Optional[str] = Field(None, max_length=500)
    delivery_time: Optional[str] = None
    delivery_fee: Optional[float] = None

class OrderStatusUpdate(BaseModel):
    status: str

class TimelineEntry(BaseModel):
    status: str
    previous_status: Optional[str] = None
    note: Optional[str] = None
    updated_by: str
    updated_at: str

class OrderResponse(BaseModel):
    id: int
    order_number: str
    customer_id: int
    customer_phone: str
    client_phone: str
    store_name: str
    items: List[Dict[str, Any]]
    total_amount: float
    delivery_fee: float
    status: str
    delivery_address: str
    delivery_time: Optional[str] = None
    sub_area: str
    sub_area_id: Optional[int] = None
    sub_area_price: float
    notes: Optional[str] = None
    area: str
    timeline: List[TimelineEntry]
    delivered_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

# ========== NOTIFICATION SCHEMAS ==========
class NotificationResponse(BaseModel):
    id: int
    type: str
    title: str
    message: str
    data: Dict[str, Any] = {}
    recipient: str
    customer_id: Optional[int] = None
    order_id: Optional[int] = None
    is_read: bool
    priority: str
    expires_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class UnreadCount(BaseModel):
    unread_count: int

class PushTest(BaseModel):
    recipient: str = "admin"
    customer_id: Optional[int] = None
    title: str = "إشعار تجريبي"
    message: str = "هذا إشعار تجريبي"
    data: Dict[str, Any] = {}

