"""Products API router."""
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from opentelemetry import trace

from storefront.auth import Principal, require_admin
from storefront.database import get_db
from storefront.dependencies import get_catalog_service
from storefront.errors import StorefrontError
from storefront.schemas import AdminProductResponse, ProductCreate, ProductResponse, ProductUpdate

router = APIRouter(prefix="/products", tags=["products"])


@router.get("", response_model=List[ProductResponse])
async def list_products(
    category: Optional[str] = None,
    search: Optional[str] = None,
    db: Session = Depends(get_db),
    catalog = Depends(get_catalog_service)
):
    """Get all products - public endpoint."""
    span = trace.get_current_span()
    products = catalog.list_products(db, category=category, search=search)
    span.set_attribute("products.count", len(products))
    return products


@router.get("/slug/{slug}", response_model=ProductResponse)
async def get_product_by_slug(
    slug: str,
    db: Session = Depends(get_db),
    catalog = Depends(get_catalog_service)
):
    product = catalog.get_by_slug(db, slug)
    if product is None:
        raise HTTPException(status_code=404, detail="Product not found")
    return product


@router.get("/{product_id}", response_model=ProductResponse)
async def get_product(
    product_id: int,
    db: Session = Depends(get_db),
    catalog = Depends(get_catalog_service)
):
    """Get product by ID - public endpoint."""
    product = catalog.get_by_id(db, product_id)
    if product is None:
        raise HTTPException(status_code=404, detail="Product not found")
    return product


@router.post("", response_model=AdminProductResponse, status_code=201)
async def create_product(
    request: ProductCreate,
    db: Session = Depends(get_db),
    admin: Principal = Depends(require_admin),
    catalog = Depends(get_catalog_service)
):
    """Create a product - admin only."""
    try:
        return catalog.create_product(db, request.model_dump())
    except StorefrontError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.put("/{product_id}", response_model=AdminProductResponse)
async def update_product(
    product_id: int,
    request: ProductUpdate,
    db: Session = Depends(get_db),
    admin: Principal = Depends(require_admin),
    catalog = Depends(get_catalog_service)
):
    """Update a product - admin only."""
    try:
        return catalog.update_product(db, product_id, request.model_dump(exclude_unset=True))
    except StorefrontError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.delete("/{product_id}")
async def delete_product(
    product_id: int,
    db: Session = Depends(get_db),
    admin: Principal = Depends(require_admin),
    catalog = Depends(get_catalog_service)
):
    """Delete a product - admin only."""
    try:
        catalog.delete_product(db, product_id)
    except StorefrontError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return {"message": "Product deleted"}
