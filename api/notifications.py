from fastapi import APIRouter, Depends, Query
from typing import List
from dependencies import get_current_customer
from errors import NotFoundError
from database import database
import crud
import schemas

router = APIRouter(prefix="/api/v1/notifications", tags=["notifications"])

@router.get("/customer", response_model=List[schemas.NotificationResponse])
async def read_customer_notifications(skip: int = 0, limit: int = Query(20, ge=1, le=100),
                                      current_customer = Depends(get_current_customer)):
    return await crud.get_customer_notifications(database, current_customer["id"], skip=skip, limit=limit)

@router.get("/customer/unread-count", response_model=schemas.UnreadCount)
async def customer_unread_count(current_customer = Depends(get_current_customer)):
    count = await crud.get_unread_count(database, "customer", current_customer["id"])
    return {"unread_count": count}

@router.put("/customer/mark-all-read")
async def customer_mark_all_read(current_customer = Depends(get_current_customer)):
    await crud.mark_all_notifications_read(database, "customer", current_customer["id"])
    return {"message": "All notifications marked as read"}

@router.put("/customer/{notification_id}/read", response_model=schemas.NotificationResponse)
async def customer_mark_read(notification_id: int, current_customer = Depends(get_current_customer)):
    notification = await crud.get_notification(database, notification_id)
    if notification is None:
        raise NotFoundError("Notification not found")
    # Broadcasts carry a single is_read flag shared by every customer
    owned = notification["recipient"] == "customer" and notification["customer_id"] == current_customer["id"]
    if not owned:
        raise NotFoundError("Notification not found")
    return await crud.mark_notification_read(database, notification_id)
