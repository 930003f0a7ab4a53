"""Reviews API router."""
from typing import List
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from storefront.auth import Principal, verify_token
from storefront.database import get_db
from storefront.dependencies import get_review_service
from storefront.errors import StorefrontError
from storefront.schemas import ReviewRequest, ReviewResponse, ReviewStatsResponse

router = APIRouter(tags=["reviews"])


@router.get("/products/{product_id}/reviews", response_model=List[ReviewResponse])
async def list_reviews(
    product_id: int,
    db: Session = Depends(get_db),
    review_service = Depends(get_review_service)
):
    return review_service.list_product_reviews(db, product_id)


@router.get("/products/{product_id}/reviews/stats", response_model=ReviewStatsResponse)
async def review_stats(
    product_id: int,
    db: Session = Depends(get_db),
    review_service = Depends(get_review_service)
):
    return review_service.review_stats(db, product_id)


@router.post("/products/{product_id}/reviews", response_model=ReviewResponse, status_code=201)
async def create_review(
    product_id: int,
    request: ReviewRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(verify_token),
    review_service = Depends(get_review_service)
):
    """Review a purchased product - requires authentication."""
    try:
        return review_service.create_review(
            db,
            product_id,
            principal.user_id,
            request.rating,
            request.comment
        )
    except StorefrontError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.put("/reviews/{review_id}", response_model=ReviewResponse)
async def update_review(
    review_id: int,
    request: ReviewRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(verify_token),
    review_service = Depends(get_review_service)
):
    try:
        return review_service.update_review(db, review_id, principal.user_id, request.rating, request.comment)
    except StorefrontError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.delete("/reviews/{review_id}")
async def delete_review(
    review_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(verify_token),
    review_service = Depends(get_review_service)
):
    try:
        review_service.delete_review(db, review_id, principal.user_id)
    except StorefrontError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return {"message": "Review deleted"}
