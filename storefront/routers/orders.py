"""Orders API router."""
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from storefront.auth import Principal, get_cart_owner, optional_principal, verify_token
from storefront.database import get_db
from storefront.dependencies import get_order_service
from storefront.errors import StorefrontError
from storefront.schemas import CheckoutRequest, CheckoutResponse, OrderResponse, OrdersListResponse
from storefront.services.order_service import CustomerInfo

router = APIRouter(prefix="/orders", tags=["orders"])


@router.post("/checkout", response_model=CheckoutResponse)
async def checkout(
    request: CheckoutRequest,
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_cart_owner),
    principal: Optional[Principal] = Depends(optional_principal),
    order_service = Depends(get_order_service)
):
    """Place an order from the caller's cart. Guests check out by session."""
    customer = CustomerInfo(
        name=request.customer_name,
        email=request.customer_email,
        address=request.customer_address,
        phone=request.customer_phone,
        city=request.customer_city,
        postal_code=request.customer_postal_code,
        country=request.customer_country,
        payment_method=request.payment_method
    )

    try:
        order = await order_service.place_order(
            db=db,
            owner_id=owner_id,
            customer=customer,
            shipping_method=request.shipping_method,
            user_id=principal.user_id if principal else None
        )
    except StorefrontError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)

    return {"message": "Order placed successfully", "order": order}


@router.get("", response_model=OrdersListResponse)
async def get_orders(
    db: Session = Depends(get_db),
    principal: Principal = Depends(verify_token),
    order_service = Depends(get_order_service)
):
    """Get user's orders - requires authentication."""
    orders = order_service.list_user_orders(db, principal.user_id)
    return {"orders": orders}


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(verify_token),
    order_service = Depends(get_order_service)
):
    try:
        return order_service.get_order(db, order_id, user_id=principal.user_id, is_admin=principal.is_admin)
    except StorefrontError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/{order_id}/cancel", response_model=OrderResponse)
async def cancel_order(
    order_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(verify_token),
    order_service = Depends(get_order_service)
):
    """Cancel one of the caller's pending orders."""
    try:
        return order_service.cancel_order(db, order_id, principal.user_id)
    except StorefrontError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
