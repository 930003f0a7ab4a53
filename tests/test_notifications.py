import asyncio
import json

import httpx
import pytest

from storefront.errors import NotificationNotFoundError
from storefront.models import Notification
from storefront.services.notification_service import NotificationService
from storefront.services.webhook_client import WebhookClient

WEBHOOK_URL = "http://hooks.test/events"


def _recording_transport(received, status_code=200):
    def handler(request):
        received.append(json.loads(request.content))
        return httpx.Response(status_code)
    return httpx.MockTransport(handler)


class TestWebhookClient:
    def _send(self, transport, url=WEBHOOK_URL):
        async def send():
            async with httpx.AsyncClient(transport=transport) as http_client:
                return await WebhookClient(http_client, url).send_event("low_stock", {"product_id": 1})
        return asyncio.run(send())

    def test_delivers_event(self):
        received = []

        assert self._send(_recording_transport(received)) is True
        assert received == [{"type": "low_stock", "data": {"product_id": 1}}]

    def test_error_status(self):
        assert self._send(_recording_transport([], status_code=503)) is False

    def test_connection_error_is_swallowed(self):
        def refuse(request):
            raise httpx.ConnectError("Connection refused", request=request)

        assert self._send(httpx.MockTransport(refuse)) is False

    def test_malformed_url_is_swallowed(self):
        assert self._send(_recording_transport([]), url="http://[::1") is False

    def test_dispatch_returns_before_delivery(self):
        received = []

        async def dispatch():
            async with httpx.AsyncClient(transport=_recording_transport(received)) as http_client:
                webhook = WebhookClient(http_client, WEBHOOK_URL)
                webhook.dispatch("low_stock", {"product_id": 1})
                delivered_before_drain = list(received)
                await webhook.drain()
                return delivered_before_drain

        assert asyncio.run(dispatch()) == []
        assert received == [{"type": "low_stock", "data": {"product_id": 1}}]

    def test_disabled_without_url(self):
        received = []

        assert self._send(_recording_transport(received), url="") is False
        assert received == []


class TestLowStockAlerts:
    def test_alert_is_deduplicated_until_read(self, db, services, make_product):
        product = make_product(name="Desk Mousepad XL", stock=2)
        notify = services.notifications.notify_low_stock

        assert asyncio.run(notify(db, product.id, product.name, 2)) is True
        assert asyncio.run(notify(db, product.id, product.name, 1)) is False
        assert db.query(Notification).count() == 1

        services.notifications.mark_all_as_read(db, "admin_456")

        assert asyncio.run(notify(db, product.id, product.name, 1)) is True
        assert db.query(Notification).count() == 2

    def test_no_alert_above_threshold(self, db, services, make_product):
        product = make_product(stock=10)

        assert asyncio.run(services.notifications.notify_low_stock(db, product.id, product.name, 10)) is False
        assert db.query(Notification).count() == 0

    def test_check_low_stock_sweep(self, db, services, make_product):
        make_product(name="Plenty", stock=40)
        scarce = make_product(name="Scarce", stock=1)

        alerted = asyncio.run(services.notifications.check_low_stock(db))

        assert alerted == [{"product_id": scarce.id, "stock": 1}]
        assert asyncio.run(services.notifications.check_low_stock(db)) == []

    def test_alert_is_posted_to_webhook(self, db, services, make_product):
        product = make_product(name="Wireless Mouse", stock=0)
        received = []

        async def notify():
            async with httpx.AsyncClient(transport=_recording_transport(received)) as http_client:
                notifier = NotificationService(
                    ["admin_456"],
                    WebhookClient(http_client, WEBHOOK_URL),
                    services.catalog,
                    threshold=3,
                    dedup_hours=24
                )
                alerted = await notifier.notify_low_stock(db, product.id, product.name, 0)
                await notifier.webhook.drain()
                return alerted

        assert asyncio.run(notify()) is True
        assert received[0]["type"] == "low_stock"
        assert received[0]["data"]["product_id"] == product.id
        assert received[0]["data"]["stock"] == 0

    def test_webhook_failure_keeps_notification(self, db, services, make_product):
        product = make_product(stock=1)

        async def notify():
            async with httpx.AsyncClient(transport=_recording_transport([], status_code=500)) as http_client:
                notifier = NotificationService(
                    ["admin_456"], WebhookClient(http_client, WEBHOOK_URL), services.catalog, 3, 24
                )
                alerted = await notifier.notify_low_stock(db, product.id, product.name, 1)
                await notifier.webhook.drain()
                return alerted

        assert asyncio.run(notify()) is True
        assert db.query(Notification).count() == 1


class TestInbox:
    @pytest.fixture()
    def inbox(self, db, services, make_product):
        first = make_product(stock=1)
        second = make_product(stock=2)
        asyncio.run(services.notifications.notify_low_stock(db, first.id, first.name, 1))
        asyncio.run(services.notifications.notify_low_stock(db, second.id, second.name, 2))
        return services.notifications.list_notifications(db, "admin_456")

    def test_listing_and_unread_count(self, db, services, inbox):
        assert len(inbox) == 2
        assert services.notifications.unread_count(db, "admin_456") == 2
        assert services.notifications.list_notifications(db, "admin_456", type="new_review") == []

    def test_mark_one_read(self, db, services, inbox):
        services.notifications.mark_as_read(db, inbox[0].id, "admin_456")

        assert services.notifications.unread_count(db, "admin_456") == 1
        unread = services.notifications.list_notifications(db, "admin_456", is_read=False)
        assert [n.id for n in unread] == [inbox[1].id]

    def test_mark_all_read(self, db, services, inbox):
        assert services.notifications.mark_all_as_read(db, "admin_456") == 2
        assert services.notifications.unread_count(db, "admin_456") == 0

    def test_delete(self, db, services, inbox):
        services.notifications.delete_notification(db, inbox[0].id, "admin_456")

        assert len(services.notifications.list_notifications(db, "admin_456")) == 1

    def test_other_users_cannot_touch(self, db, services, inbox):
        with pytest.raises(NotificationNotFoundError):
            services.notifications.mark_as_read(db, inbox[0].id, "user_123")
        with pytest.raises(NotificationNotFoundError):
            services.notifications.delete_notification(db, inbox[0].id, "user_123")
