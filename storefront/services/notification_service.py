"""Admin notifications: low stock alerts and review announcements."""
import logging
from datetime import timedelta
from typing import Dict, List, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from storefront.errors import NotificationNotFoundError
from storefront.models import Notification, utcnow
from storefront.monitoring import low_stock_alerts_counter
from storefront.services.catalog_service import CatalogService
from storefront.services.webhook_client import WebhookClient

logger = logging.getLogger(__name__)


class NotificationService:
    """
    Creates and manages notifications addressed to admin users.

    Alert delivery is never fatal to the caller: database and webhook
    failures are logged and swallowed by the ``notify_*`` methods.
    """

    def __init__(
        self,
        admin_user_ids: Sequence[str],
        webhook: WebhookClient,
        catalog: CatalogService,
        threshold: int,
        dedup_hours: int
    ):
        self.admin_user_ids = list(admin_user_ids)
        self.webhook = webhook
        self.catalog = catalog
        self.threshold = threshold
        self.dedup_hours = dedup_hours

    def _has_recent_alert(self, db: Session, product_id: int) -> bool:
        since = utcnow() - timedelta(hours=self.dedup_hours)
        return db.query(Notification.id).filter(
            Notification.product_id == product_id,
            Notification.type == "low_stock",
            Notification.is_read.is_(False),
            Notification.created_at >= since
        ).first() is not None

    async def notify_low_stock(self, db: Session, product_id: int, product_name: str, stock: int) -> bool:
        """
        Alert admins that a product is running out.

        Args:
            db: Database session
            product_id: Product identifier
            product_name: Product name, used in the message
            stock: Units left

        Returns:
            True if an alert was recorded, False if it was suppressed or failed
        """
        if stock > self.threshold:
            return False

        try:
            if self._has_recent_alert(db, product_id):
                logger.debug("Low stock alert already pending", extra={"product_id": product_id})
                return False

            message = (
                f'Product "{product_name}" has only {stock} items remaining in stock. '
                f'Please restock soon.'
            )
            for admin_id in self.admin_user_ids:
                db.add(Notification(
                    user_id=admin_id,
                    type="low_stock",
                    title="Low Stock Alert",
                    message=message,
                    product_id=product_id
                ))
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error("Failed to record low stock alert", extra={
                "product_id": product_id,
                "error": str(e)
            })
            return False

        low_stock_alerts_counter.add(1, {"product_id": str(product_id)})
        logger.warning("Low stock", extra={
            "product_id": product_id,
            "product_name": product_name,
            "stock": stock,
            "threshold": self.threshold
        })

        self.webhook.dispatch("low_stock", {
            "product_id": product_id,
            "product_name": product_name,
            "stock": stock,
            "threshold": self.threshold
        })
        return True

    async def check_low_stock(self, db: Session) -> List[Dict[str, int]]:
        """Sweep the catalog and alert for every product at or below the threshold."""
        alerted = []
        for product in self.catalog.list_low_stock(db, self.threshold):
            if await self.notify_low_stock(db, product.id, product.name, product.stock):
                alerted.append({"product_id": product.id, "stock": product.stock})
        return alerted

    def notify_new_review(self, db: Session, product_id: int, product_name: str, rating: int) -> None:
        try:
            for admin_id in self.admin_user_ids:
                db.add(Notification(
                    user_id=admin_id,
                    type="new_review",
                    title="New Review",
                    message=f'"{product_name}" received a {rating}-star review.',
                    product_id=product_id
                ))
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error("Failed to record review notification", extra={
                "product_id": product_id,
                "error": str(e)
            })

    def list_notifications(
        self,
        db: Session,
        user_id: str,
        type: Optional[str] = None,
        is_read: Optional[bool] = None
    ) -> List[Notification]:
        query = db.query(Notification).filter(Notification.user_id == user_id)
        if type:
            query = query.filter(Notification.type == type)
        if is_read is not None:
            query = query.filter(Notification.is_read.is_(is_read))
        return query.order_by(Notification.created_at.desc(), Notification.id.desc()).all()

    def unread_count(self, db: Session, user_id: str) -> int:
        return db.query(Notification).filter(
            Notification.user_id == user_id,
            Notification.is_read.is_(False)
        ).count()

    def _get_owned(self, db: Session, notification_id: int, user_id: str) -> Notification:
        notification = db.query(Notification).filter(
            Notification.id == notification_id,
            Notification.user_id == user_id
        ).first()
        if notification is None:
            raise NotificationNotFoundError(notification_id)
        return notification

    def mark_as_read(self, db: Session, notification_id: int, user_id: str) -> Notification:
        notification = self._get_owned(db, notification_id, user_id)
        notification.is_read = True
        db.commit()
        db.refresh(notification)
        return notification

    def mark_all_as_read(self, db: Session, user_id: str) -> int:
        updated = db.query(Notification).filter(
            Notification.user_id == user_id,
            Notification.is_read.is_(False)
        ).update({Notification.is_read: True}, synchronize_session=False)
        db.commit()
        return updated

    def delete_notification(self, db: Session, notification_id: int, user_id: str) -> None:
        db.delete(self._get_owned(db, notification_id, user_id))
        db.commit()
