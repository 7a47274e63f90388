# config.py
import os

# Database
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./delivery.db")

# JWT
JWT_SECRET = os.getenv("JWT_SECRET", "change-me-zajel-delivery-secret")
JWT_ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_DAYS = int(os.getenv("ACCESS_TOKEN_EXPIRE_DAYS", 7))

# Default super admin (created at startup when no admin exists)
DEFAULT_ADMIN_ID = os.getenv("ADMIN_ID", "admin2024")
DEFAULT_ADMIN_SECRET_CODE = os.getenv("ADMIN_SECRET_CODE", "1234")
DEFAULT_ADMIN_NAME = os.getenv("ADMIN_NAME", "مدير النظام")

# Push notifications
FIREBASE_CREDENTIALS = os.getenv("FIREBASE_CREDENTIALS")
EXPO_PUSH_URL = os.getenv("EXPO_PUSH_URL", "https://exp.host/--/api/v2/push/send")
PUSH_TIMEOUT_SECONDS = float(os.getenv("PUSH_TIMEOUT_SECONDS", 10))

# Server
ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.getenv(
        "ALLOWED_ORIGINS",
        "http://localhost:3000,http://localhost:19006,http://localhost:8081",
    ).split(",")
    if origin.strip()
]
PORT = int(os.getenv("PORT", 8000))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Delivery zones
CATCH_ALL_AREA = "مناطق البصرة الاخرى"
MAIN_AREAS = [
    "الطويسة",
    "الجزائر",
    "الجبيلة",
    "الجنينة",
    "التنومة",
    CATCH_ALL_AREA,
]

# Orders
ORDER_NUMBER_PREFIX = "ZJ"
ORDER_STATUSES = [
    "pending",
    "accepted",
    "confirmed",
    "preparing",
    "ready",
    "delivered",
    "completed",
    "cancelled",
]
TERMINAL_STATUSES = {"completed", "cancelled"}
DELIVERED_STATUSES = {"delivered", "completed"}
CLIENT_PHONE_PATTERN = r"^07[0-9]{9}$"
CUSTOMER_PHONE_PATTERN = r"^[0-9]{10,15}$"
MIN_SECRET_LENGTH = 4

# Notification priority thresholds on order total
HIGH_PRIORITY_TOTAL = 500
URGENT_PRIORITY_TOTAL = 1000

CUSTOMER_STATUSES = ["active", "suspended", "inactive"]
ADMIN_ROLES = ["super_admin", "admin", "manager"]
NOTIFICATION_TYPES = ["new_order", "order_status_update", "customer_registered", "system_alert"]
NOTIFICATION_RECIPIENTS = ["admin", "customer", "all"]
NOTIFICATION_PRIORITIES = ["low", "normal", "high", "urgent"]
