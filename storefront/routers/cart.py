"""Cart API router.

Authenticated callers own a cart by user id; guests pass an
``X-Session-Id`` header instead.
"""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from storefront.auth import get_cart_owner
from storefront.database import get_db
from storefront.dependencies import get_cart_service
from storefront.errors import StorefrontError
from storefront.schemas import AddToCartRequest, AddToCartResponse, CartResponse, UpdateCartItemRequest

router = APIRouter(prefix="/cart", tags=["cart"])


@router.get("", response_model=CartResponse)
async def get_cart(
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_cart_owner),
    cart_service = Depends(get_cart_service)
):
    """Get the caller's cart."""
    return cart_service.get_cart(db, owner_id)


@router.post("/items", response_model=AddToCartResponse)
async def add_to_cart(
    request: AddToCartRequest,
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_cart_owner),
    cart_service = Depends(get_cart_service)
):
    """Add item to cart."""
    try:
        result = cart_service.add_to_cart(
            db=db,
            owner_id=owner_id,
            product_id=request.product_id,
            quantity=request.quantity
        )
    except StorefrontError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)

    return {"message": "Item added to cart", **result}


@router.put("/items/{product_id}", response_model=CartResponse)
async def update_cart_item(
    product_id: int,
    request: UpdateCartItemRequest,
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_cart_owner),
    cart_service = Depends(get_cart_service)
):
    """Set a line's quantity; 0 removes the line."""
    try:
        cart_service.update_item(db, owner_id, product_id, request.quantity)
    except StorefrontError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return cart_service.get_cart(db, owner_id)


@router.delete("/items/{product_id}", response_model=CartResponse)
async def remove_cart_item(
    product_id: int,
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_cart_owner),
    cart_service = Depends(get_cart_service)
):
    cart_service.remove_item(db, owner_id, product_id)
    return cart_service.get_cart(db, owner_id)


@router.delete("")
async def clear_cart(
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_cart_owner),
    cart_service = Depends(get_cart_service)
):
    cart_service.clear(db, owner_id)
    return {"message": "Cart cleared"}
