"""Dependency injection for services."""
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional
import httpx
import redis
from fastapi import Request

from storefront.config import (
    API_TOKENS,
    CART_BACKEND,
    LOW_STOCK_DEDUP_HOURS,
    LOW_STOCK_THRESHOLD,
    NOTIFICATION_WEBHOOK_URL,
    SHIPPING_FEES,
)
from storefront.services.cart_service import CartService, create_cart_store
from storefront.services.catalog_service import CatalogService
from storefront.services.notification_service import NotificationService
from storefront.services.order_service import OrderService
from storefront.services.report_service import ReportService
from storefront.services.review_service import ReviewService
from storefront.services.sale_service import SaleService
from storefront.services.webhook_client import WebhookClient


@dataclass
class Services:
    """Service instances shared by every request."""
    catalog: CatalogService
    cart: CartService
    orders: OrderService
    sales: SaleService
    reports: ReportService
    reviews: ReviewService
    notifications: NotificationService


def admin_user_ids(tokens: Mapping[str, Dict[str, str]] = API_TOKENS) -> List[str]:
    """User ids that receive admin notifications."""
    ids = {identity["user_id"] for identity in tokens.values() if identity.get("role") == "admin"}
    return sorted(ids)


def build_services(
    http_client: Optional[httpx.AsyncClient] = None,
    redis_client: Optional[redis.Redis] = None,
    cart_backend: str = CART_BACKEND,
    webhook_url: str = NOTIFICATION_WEBHOOK_URL,
    shipping_fees: Mapping[str, float] = SHIPPING_FEES,
    low_stock_threshold: int = LOW_STOCK_THRESHOLD
) -> Services:
    """
    Wire the service graph.

    Args:
        http_client: Client used for outbound webhooks
        redis_client: Required when ``cart_backend`` is ``redis``
        cart_backend: ``database`` or ``redis``
        webhook_url: Notification endpoint; empty disables webhooks
        shipping_fees: Shipping cost per shipping method
        low_stock_threshold: Stock level at or below which admins are alerted

    Returns:
        Services bundle
    """
    catalog = CatalogService()
    notifications = NotificationService(
        admin_user_ids(),
        WebhookClient(http_client, webhook_url),
        catalog,
        threshold=low_stock_threshold,
        dedup_hours=LOW_STOCK_DEDUP_HOURS
    )
    cart = CartService(create_cart_store(cart_backend, redis_client), catalog)
    sales = SaleService()
    return Services(
        catalog=catalog,
        cart=cart,
        orders=OrderService(cart, catalog, sales, notifications, shipping_fees),
        sales=sales,
        reports=ReportService(),
        reviews=ReviewService(catalog, notifications),
        notifications=notifications
    )


def get_services(request: Request) -> Services:
    """Get the service bundle from app state."""
    return request.app.state.services


def get_catalog_service(request: Request) -> CatalogService:
    return get_services(request).catalog


def get_cart_service(request: Request) -> CartService:
    return get_services(request).cart


def get_order_service(request: Request) -> OrderService:
    return get_services(request).orders


def get_sale_service(request: Request) -> SaleService:
    return get_services(request).sales


def get_report_service(request: Request) -> ReportService:
    return get_services(request).reports


def get_review_service(request: Request) -> ReviewService:
    return get_services(request).reviews


def get_notification_service(request: Request) -> NotificationService:
    return get_services(request).notifications
