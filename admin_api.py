# admin_api.py
from fastapi import APIRouter, Depends, HTTPException, Query
from typing import List, Optional
from dependencies import (
    get_current_admin,
    get_current_super_admin,
    get_account_service,
    get_notification_service,
    get_order_lifecycle,
)
from errors import NotFoundError, ValidationError
import crud
import schemas
from database import database  # Import database directly

router = APIRouter(prefix="/api/v1/admin", tags=["admin"])

@router.get("/me", response_model=schemas.AdminResponse)
async def read_admin_me(current_admin = Depends(get_current_admin)):
    return current_admin

@router.post("/push-token")
async def register_admin_push_token(data: schemas.PushTokenRegister,
                                    current_admin = Depends(get_current_admin)):
    await crud.set_admin_push_token(database, current_admin["id"], data.push_token)
    return {"message": "Push token registered"}

# ========== ORDER MANAGEMENT ==========
@router.get("/orders/", response_model=List[schemas.OrderResponse])
async def admin_read_orders(
    skip: int = 0,
    limit: int = Query(100, ge=1, le=500),
    status: Optional[str] = None,
    area: Optional[str] = None,
    customer_id: Optional[int] = None,
    current_admin = Depends(get_current_admin)
):
    return await crud.get_orders(database, status=status, area=area, customer_id=customer_id,
                                 skip=skip, limit=limit)

@router.get("/orders/{order_id}", response_model=schemas.OrderResponse)
async def admin_read_order(order_id: int, current_admin = Depends(get_current_admin)):
    db_order = await crud.get_order_by_id(database, order_id)
    if db_order is None:
        raise NotFoundError("Order not found")
    return db_order

@router.put("/orders/{order_id}/status", response_model=schemas.OrderResponse)
async def admin_update_order_status(
    order_id: int,
    status_update: schemas.OrderStatusUpdate,
    current_admin = Depends(get_current_admin),
    lifecycle = Depends(get_order_lifecycle)
):
    return await lifecycle.update_status(order_id, status_update.status, actor="admin")

# ========== CUSTOMER MANAGEMENT ==========
@router.get("/customers/", response_model=List[schemas.CustomerResponse])
async def admin_read_customers(
    skip: int = 0,
    limit: int = Query(100, ge=1, le=500),
    area: Optional[str] = None,
    status: Optional[str] = None,
    current_admin = Depends(get_current_admin)
):
    return await crud.get_customers(database, area=area, status=status, skip=skip, limit=limit)

@router.get("/customers/{customer_id}", response_model=schemas.CustomerResponse)
async def admin_read_customer(customer_id: int, current_admin = Depends(get_current_admin)):
    db_customer = await crud.get_customer(database, customer_id)
    if db_customer is None:
        raise NotFoundError("Customer not found")
    return db_customer

@router.post("/customers/", response_model=schemas.CustomerResponse, status_code=201)
async def admin_create_customer(
    data: schemas.CustomerRegister,
    current_admin = Depends(get_current_admin),
    accounts = Depends(get_account_service)
):
    return await accounts.register_customer(data.store_name, data.phone_number, data.password, data.area)

@router.put("/customers/{customer_id}", response_model=schemas.CustomerResponse)
async def admin_update_customer(
    customer_id: int,
    customer_update: schemas.CustomerUpdate,
    current_admin = Depends(get_current_admin),
    accounts = Depends(get_account_service)
):
    return await accounts.update_customer(customer_id, customer_update.model_dump(exclude_unset=True))

@router.delete("/customers/{customer_id}")
async def admin_delete_customer(
    customer_id: int,
    current_admin = Depends(get_current_admin),
    accounts = Depends(get_account_service)
):
    await accounts.delete_customer(customer_id)
    return {"message": "Customer deleted successfully"}

# ========== NOTIFICATIONS ==========
@router.get("/notifications/", response_model=List[schemas.NotificationResponse])
async def admin_read_notifications(
    skip: int = 0,
    limit: int = Query(20, ge=1, le=100),
    current_admin = Depends(get_current_admin)
):
    return await crud.get_admin_notifications(database, skip=skip, limit=limit)

@router.get("/notifications/unread-count", response_model=schemas.UnreadCount)
async def admin_unread_count(current_admin = Depends(get_current_admin)):
    return {"unread_count": await crud.get_unread_count(database, "admin")}

@router.put("/notifications/mark-all-read")
async def admin_mark_all_read(current_admin = Depends(get_current_admin)):
    await crud.mark_all_notifications_read(database, "admin")
    return {"message": "All notifications marked as read"}

@router.put("/notifications/{notification_id}/read", response_model=schemas.NotificationResponse)
async def admin_mark_read(notification_id: int, current_admin = Depends(get_current_admin)):
    notification = await crud.get_notification(database, notification_id)
    if notification is None or notification["recipient"] != "admin":
        raise NotFoundError("Notification not found")
    return await crud.mark_notification_read(database, notification_id)

@router.post("/push/test")
async def send_test_push(
    push_test: schemas.PushTest,
    current_admin = Depends(get_current_admin),
    notifications = Depends(get_notification_service)
):
    if push_test.recipient == "customer":
        if push_test.customer_id is None:
            raise ValidationError("customer_id", "customer_id is required for customer pushes")
        customer = await crud.get_customer(database, push_test.customer_id)
        if customer is None:
            raise NotFoundError("Customer not found")
        tokens = [customer["push_token"]] if customer.get("push_token") else []
    elif push_test.recipient == "admin":
        tokens = await crud.get_active_admin_push_tokens(database)
    else:
        raise ValidationError("recipient", "recipient must be admin or customer")

    if not tokens:
        raise ValidationError("push_token", "No push token registered for this recipient")

    data = {"type": "system_alert", **push_test.data}
    result = await notifications.dispatcher.send(tokens, push_test.title, push_test.message, data)
    return {"status": "success", "data": result.to_dict()}

# ========== ADMIN USER MANAGEMENT (Super Admin Only) ==========
@router.get("/users/", response_model=List[schemas.AdminResponse])
async def read_admin_users(current_admin = Depends(get_current_super_admin)):
    return await crud.get_admins(database)

@router.post("/users/", response_model=schemas.AdminResponse, status_code=201)
async def create_admin_user(
    admin: schemas.AdminCreate,
    current_admin = Depends(get_current_super_admin),
    accounts = Depends(get_account_service)
):
    return await accounts.create_admin(admin.admin_id, admin.secret_code, admin.name, admin.role)

@router.put("/users/{admin_pk}", response_model=schemas.AdminResponse)
async def update_admin_user(
    admin_pk: int,
    admin_update: schemas.AdminUpdate,
    current_admin = Depends(get_current_super_admin),
    accounts = Depends(get_account_service)
):
    # Prevent locking yourself out
    if current_admin["id"] == admin_pk and admin_update.is_active is False:
        raise HTTPException(status_code=400, detail="Cannot disable your own account")
    return await accounts.update_admin(admin_pk, admin_update.model_dump(exclude_unset=True))
