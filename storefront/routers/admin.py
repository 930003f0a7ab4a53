"""Admin API router: order fulfilment, reports and notifications."""
from datetime import datetime
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from storefront.auth import Principal, require_admin
from storefront.database import get_db
from storefront.dependencies import (
    get_notification_service,
    get_order_service,
    get_report_service,
    get_sale_service,
)
from storefront.errors import StorefrontError
from storefront.order_status import parse_status
from storefront.schemas import (
    LowStockCheckResponse,
    NotificationResponse,
    NotificationsListResponse,
    OrderResponse,
    OrdersListResponse,
    ProfitLossResponse,
    SalesReportResponse,
    UpdateOrderStatusRequest,
)

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/orders", response_model=OrdersListResponse)
async def list_orders(
    status: Optional[str] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    db: Session = Depends(get_db),
    admin: Principal = Depends(require_admin),
    order_service = Depends(get_order_service)
):
    try:
        status_value = parse_status(status).value if status else None
    except StorefrontError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return {"orders": order_service.list_orders(db, status=status_value, start=start, end=end)}


@router.put("/orders/{order_id}/status", response_model=OrderResponse)
async def update_order_status(
    order_id: int,
    request: UpdateOrderStatusRequest,
    db: Session = Depends(get_db),
    admin: Principal = Depends(require_admin),
    order_service = Depends(get_order_service)
):
    """Move an order along the fulfilment state machine."""
    try:
        return order_service.update_status(db, order_id, request.status)
    except StorefrontError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/reports/profit-loss", response_model=ProfitLossResponse)
async def profit_loss_report(
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    status: Optional[List[str]] = Query(None),
    db: Session = Depends(get_db),
    admin: Principal = Depends(require_admin),
    report_service = Depends(get_report_service)
):
    """Profit/loss per product from order items."""
    try:
        statuses = [parse_status(value).value for value in status or []]
    except StorefrontError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return report_service.profit_loss(db, start=start, end=end, statuses=statuses)


@router.get("/reports/sales", response_model=SalesReportResponse)
async def sales_report(
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    db: Session = Depends(get_db),
    admin: Principal = Depends(require_admin),
    sale_service = Depends(get_sale_service)
):
    """Profit/loss from recorded sales, using the cost captured at sale time."""
    return sale_service.sales_report(db, start=start, end=end)


@router.post("/check-low-stock", response_model=LowStockCheckResponse)
async def check_low_stock(
    db: Session = Depends(get_db),
    admin: Principal = Depends(require_admin),
    notification_service = Depends(get_notification_service)
):
    alerted = await notification_service.check_low_stock(db)
    return {"alerted": alerted}


@router.get("/notifications", response_model=NotificationsListResponse)
async def list_notifications(
    type: Optional[str] = None,
    is_read: Optional[bool] = None,
    db: Session = Depends(get_db),
    admin: Principal = Depends(require_admin),
    notification_service = Depends(get_notification_service)
):
    return {
        "notifications": notification_service.list_notifications(db, admin.user_id, type=type, is_read=is_read),
        "unread_count": notification_service.unread_count(db, admin.user_id)
    }


@router.post("/notifications/read-all")
async def mark_all_notifications_read(
    db: Session = Depends(get_db),
    admin: Principal = Depends(require_admin),
    notification_service = Depends(get_notification_service)
):
    updated = notification_service.mark_all_as_read(db, admin.user_id)
    return {"updated": updated}


@router.post("/notifications/{notification_id}/read", response_model=NotificationResponse)
async def mark_notification_read(
    notification_id: int,
    db: Session = Depends(get_db),
    admin: Principal = Depends(require_admin),
    notification_service = Depends(get_notification_service)
):
    try:
        return notification_service.mark_as_read(db, notification_id, admin.user_id)
    except StorefrontError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.delete("/notifications/{notification_id}")
async def delete_notification(
    notification_id: int,
    db: Session = Depends(get_db),
    admin: Principal = Depends(require_admin),
    notification_service = Depends(get_notification_service)
):
    try:
        notification_service.delete_notification(db, notification_id, admin.user_id)
    except StorefrontError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return {"message": "Notification deleted"}
