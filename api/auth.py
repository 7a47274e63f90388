from fastapi import APIRouter, Depends, HTTPException
from dependencies import get_current_customer, get_account_service
from services.accounts import AuthenticationError
from database import database
import crud
import schemas

router = APIRouter(prefix="/api/v1/auth", tags=["auth"])

def _customer_payload(customer: dict) -> dict:
    return {
        "id": customer["id"],
        "store_name": customer["store_name"],
        "phone_number": customer["phone_number"],
        "area": customer["area"],
        "total_orders": customer["total_orders"],
        "status": customer["status"],
    }

@router.post("/customer/register", response_model=schemas.CustomerResponse, status_code=201)
async def register_customer(data: schemas.CustomerRegister, accounts = Depends(get_account_service)):
    return await accounts.register_customer(data.store_name, data.phone_number, data.password, data.area)

@router.post("/customer/login", response_model=schemas.Token)
async def customer_login(login_data: schemas.CustomerLogin, accounts = Depends(get_account_service)):
    try:
        customer = await accounts.authenticate_customer(login_data.phone_number, login_data.password)
    except AuthenticationError as e:
        raise HTTPException(status_code=401, detail=str(e))

    access_token = crud.create_access_token(data={"sub": str(customer["id"]), "user_type": "customer"})
    return {"access_token": access_token, "token_type": "bearer", "user": _customer_payload(customer)}

@router.get("/customer/profile", response_model=schemas.CustomerResponse)
async def customer_profile(current_customer = Depends(get_current_customer)):
    return current_customer

@router.post("/customer/push-token")
async def register_customer_push_token(data: schemas.PushTokenRegister,
                                       current_customer = Depends(get_current_customer)):
    await crud.set_customer_push_token(database, current_customer["id"], data.push_token)
    return {"message": "Push token registered"}

@router.post("/admin/login", response_model=schemas.Token)
async def admin_login(login_data: schemas.AdminLogin, accounts = Depends(get_account_service)):
    try:
        admin = await accounts.authenticate_admin(login_data.admin_id, login_data.secret_code)
    except AuthenticationError as e:
        raise HTTPException(status_code=401, detail=str(e))

    access_token = crud.create_access_token(
        data={"sub": str(admin["id"]), "user_type": "admin", "role": admin["role"]}
    )
    return {
        "access_token": access_token,
        "token_type": "bearer",
        "user": {
            "id": admin["id"],
            "admin_id": admin["admin_id"],
            "name": admin["name"],
            "role": admin["role"],
        },
    }
