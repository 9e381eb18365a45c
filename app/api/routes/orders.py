"""
Checkout: create orders and poll their payment status.
Payment itself happens in /payments/mpesa/stk-push.
"""
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from app.api.deps import get_current_user, get_optional_user
from app.db.session import get_db
from app.models.user import User
from app.schemas.orders import OrderCreate, OrderOut
from app.services.orders.service import OrderService
from app.utils.validation import normalize_phone

router = APIRouter(prefix="/orders", tags=["orders"])


@router.post("", status_code=status.HTTP_201_CREATED, response_model=OrderOut)
def create_order(
    body: OrderCreate,
    user: User | None = Depends(get_optional_user),
    db: Session = Depends(get_db),
):
    return OrderService(db).create_order(
        job_account_id=body.job_account_id,
        customer_name=body.customer_name,
        customer_phone=body.customer_phone,
        customer_email=body.customer_email,
        user_id=user.id if user else None,
    )


@router.get("", response_model=list[OrderOut])
def my_orders(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return OrderService(db).list_for_user(user.id)


# Must be declared before /{order_id}
@router.get("/lookup", response_model=list[OrderOut])
def lookup_orders(phone: str = Query(..., max_length=20), db: Session = Depends(get_db)):
    """Order history by phone number."""
    normalized = normalize_phone(phone)
    if normalized is None:
        raise HTTPException(400, "Invalid phone number format")
    return OrderService(db).list_by_phone(normalized)


@router.get("/{order_id}", response_model=OrderOut)
def get_order(order_id: str, db: Session = Depends(get_db)):
    """Status polling after an STK push."""
    order = OrderService(db).get_order(order_id)
    if not order:
        raise HTTPException(404, "Order not found")
    return order
