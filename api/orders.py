from fastapi import APIRouter, Depends
from typing import List, Optional
from dependencies import get_current_customer, get_order_lifecycle
from services.order_lifecycle import order_projection
from errors import NotFoundError
from database import database
import crud
import schemas

router = APIRouter(prefix="/api/v1/orders", tags=["orders"])

@router.post("/", status_code=201)
async def create_order(order: schemas.OrderCreate,
                       current_customer = Depends(get_current_customer),
                       lifecycle = Depends(get_order_lifecycle)):
    db_order = await lifecycle.create_order(
        current_customer,
        items=[item.model_dump() for item in order.items],
        delivery_address=order.delivery_address,
        sub_area=order.sub_area,
        client_phone=order.client_phone,
        notes=order.notes,
        delivery_time=order.delivery_time,
        delivery_fee=order.delivery_fee,
    )
    return {"status": "success", "data": {"order": order_projection(db_order)}}

@router.get("/my-orders", response_model=List[schemas.OrderResponse])
async def read_my_orders(status: Optional[str] = None, skip: int = 0, limit: int = 20,
                         current_customer = Depends(get_current_customer)):
    return await crud.get_orders(database, status=status, customer_id=current_customer["id"],
                                 skip=skip, limit=limit)

@router.get("/{order_id}", response_model=schemas.OrderResponse)
async def read_order(order_id: int, current_customer = Depends(get_current_customer)):
    db_order = await crud.get_customer_order(database, order_id, current_customer["id"])
    if db_order is None:
        raise NotFoundError("Order not found")
    return db_order

@router.post("/{order_id}/cancel", response_model=schemas.OrderResponse)
async def cancel_order(order_id: int,
                       current_customer = Depends(get_current_customer),
                       lifecycle = Depends(get_order_lifecycle)):
    return await lifecycle.cancel_by_customer(order_id, current_customer)
