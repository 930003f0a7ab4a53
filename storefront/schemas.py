"""Pydantic schemas for request/response validation."""
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional

from storefront.config import DEFAULT_COUNTRY, DEFAULT_PAYMENT_METHOD, DEFAULT_SHIPPING_METHOD


class ProductCreate(BaseModel):
    """Schema for creating a product."""
    name: str = Field(..., min_length=1)
    slug: Optional[str] = None
    description: Optional[str] = None
    price: float = Field(..., ge=0)
    cost: float = Field(0.0, ge=0)
    stock: int = Field(0, ge=0)
    category: Optional[str] = None
    image_url: Optional[str] = None


class ProductUpdate(BaseModel):
    """Schema for updating a product; omitted fields are left unchanged."""
    name: Optional[str] = Field(None, min_length=1)
    slug: Optional[str] = None
    description: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    cost: Optional[float] = Field(None, ge=0)
    stock: Optional[int] = Field(None, ge=0)
    category: Optional[str] = None
    image_url: Optional[str] = None


class ProductResponse(BaseModel):
    """Schema for product response."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    slug: str
    description: Optional[str] = None
    price: float
    stock: int
    category: Optional[str] = None
    image_url: Optional[str] = None


class AdminProductResponse(ProductResponse):
    """Product response including the cost, for admins."""
    cost: float


class AddToCartRequest(BaseModel):
    """Schema for add to cart request."""
    product_id: int
    quantity: int = Field(1, ge=1)


class UpdateCartItemRequest(BaseModel):
    """Schema for setting a cart line's quantity; 0 removes the line."""
    quantity: int = Field(..., ge=0)


class AddToCartResponse(BaseModel):
    """Schema for add to cart response."""
    message: str
    product_id: int
    product_name: str
    quantity: int


class CartItemResponse(BaseModel):
    """Schema for cart item in response."""
    product_id: int
    product_name: str
    price: float
    quantity: int
    stock: int
    subtotal: float


class CartResponse(BaseModel):
    """Schema for cart response."""
    owner_id: str
    items: List[CartItemResponse]
    item_count: int
    subtotal: float
    tax: float
    total: float


class CheckoutRequest(BaseModel):
    """Schema for checkout request."""
    customer_name: str = ""
    customer_email: str = ""
    customer_address: str = ""
    customer_phone: Optional[str] = None
    customer_city: Optional[str] = None
    customer_postal_code: Optional[str] = None
    customer_country: Optional[str] = DEFAULT_COUNTRY
    shipping_method: str = DEFAULT_SHIPPING_METHOD
    payment_method: str = DEFAULT_PAYMENT_METHOD


class OrderItemResponse(BaseModel):
    """Schema for order item in response."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    product_id: int
    product_name: str
    quantity: int
    unit_price: float
    total_price: float


class OrderResponse(BaseModel):
    """Schema for order response."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: Optional[str] = None
    customer_name: str
    customer_email: str
    customer_address: str
    customer_phone: Optional[str] = None
    shipping_method: Optional[str] = None
    payment_method: Optional[str] = None
    shipping_cost: float
    subtotal: float
    total_amount: float
    status: str
    created_at: datetime
    items: List[OrderItemResponse]


class CheckoutResponse(BaseModel):
    """Schema for checkout response."""
    message: str
    order: OrderResponse


class OrdersListResponse(BaseModel):
    """Schema for orders list response."""
    orders: List[OrderResponse]


class UpdateOrderStatusRequest(BaseModel):
    status: str


class ReviewRequest(BaseModel):
    rating: int
    comment: Optional[str] = None


class ReviewResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    product_id: int
    user_id: str
    rating: int
    comment: Optional[str] = None
    created_at: datetime


class RatingCount(BaseModel):
    rating: int
    count: int


class ReviewStatsResponse(BaseModel):
    average_rating: float
    total_reviews: int
    rating_distribution: List[RatingCount]


class ProductProfitLossResponse(BaseModel):
    product_id: int
    product_name: str
    product_slug: str
    cost_price: float
    selling_price: float
    total_quantity_sold: int
    total_revenue: float
    total_cost: float
    profit: float
    profit_margin: float
    profit_per_unit: float


class ProfitLossResponse(BaseModel):
    total_revenue: float
    total_cost: float
    total_profit: float
    total_profit_margin: float
    total_products_sold: int
    products: List[ProductProfitLossResponse]


class SaleBreakdownResponse(BaseModel):
    product_id: int
    product_name: str
    total_sold: int
    total_revenue: float
    total_cost: float
    profit: float
    loss: float
    net_profit: float


class SalesReportResponse(BaseModel):
    total_sales: float
    total_cost: float
    total_profit: float
    total_loss: float
    net_profit: float
    sale_count: int
    products: List[SaleBreakdownResponse]


class NotificationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    type: str
    title: str
    message: str
    product_id: Optional[int] = None
    is_read: bool
    created_at: datetime


class NotificationsListResponse(BaseModel):
    notifications: List[NotificationResponse]
    unread_count: int


class LowStockCheckResponse(BaseModel):
    alerted: List[dict]
