# models.py
from sqlalchemy import Column, Integer, String, Float, Boolean, Text, DateTime, ForeignKey
from sqlalchemy.sql import func
from database import Base

class Customer(Base):
    __tablename__ = "customers"

    id = Column(Integer, primary_key=True, index=True)
    store_name = Column(String(100), nullable=False)
    phone_number = Column(String, unique=True, index=True, nullable=False)
    hashed_password = Column(String, nullable=False)
    area = Column(String, nullable=False, index=True)
    status = Column(String, default="active")
    total_orders = Column(Integer, default=0)
    last_order_date = Column(DateTime(timezone=True))
    push_token = Column(String, index=True)
    notes = Column(Text)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

class Admin(Base):
    __tablename__ = "admins"

    id = Column(Integer, primary_key=True, index=True)
    admin_id = Column(String, unique=True, index=True, nullable=False)
    hashed_secret_code = Column(String, nullable=False)
    name = Column(String, default="مدير النظام")
    role = Column(String, default="admin")
    is_active = Column(Boolean, default=True)
    push_token = Column(String, index=True)
    last_login = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

class SubArea(Base):
    __tablename__ = "sub_areas"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False, index=True)
    main_area = Column(String, nullable=False, index=True)
    delivery_price = Column(Float, nullable=False, default=0.0)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    order_number = Column(String, unique=True, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False, index=True)
    customer_phone = Column(String, nullable=False)
    client_phone = Column(String, nullable=False)
    store_name = Column(String, nullable=False)
    items = Column(Text, nullable=False)  # Store as JSON string
    total_amount = Column(Float, nullable=False)
    delivery_fee = Column(Float, default=0.0)
    status = Column(String, default="pending", index=True)
    delivery_address = Column(Text, nullable=False)
    delivery_time = Column(String)
    sub_area = Column(String, nullable=False)
    sub_area_id = Column(Integer, ForeignKey("sub_areas.id"), nullable=True)
    sub_area_price = Column(Float, nullable=False, default=0.0)
    notes = Column(Text)
    area = Column(String, nullable=False, index=True)
    timeline = Column(Text, nullable=False)  # Store as JSON string
    version = Column(Integer, nullable=False, default=1)
    delivered_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    type = Column(String, nullable=False)
    title = Column(String, nullable=False)
    message = Column(Text, nullable=False)
    data = Column(Text, default="{}")  # Store as JSON string
    recipient = Column(String, default="admin", index=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=True)
    is_read = Column(Boolean, default=False)
    priority = Column(String, default="normal")
    expires_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
