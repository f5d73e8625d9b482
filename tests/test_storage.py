"""Tests for WebhookStorage against an in-memory Qdrant."""

from datetime import timedelta

import httpx
import pytest
from qdrant_client import AsyncQdrantClient
from qdrant_client.http.exceptions import ResponseHandlingException

from hookrelay.exceptions import StorageError
from hookrelay.models import DeliveryFilters, DeliveryStatus, utcnow
from hookrelay.storage import DeliveryRepository, EndpointRepository, WebhookStorage
from hookrelay.storage.base import paginate
from hookrelay.storage.retry import _is_transient


class TestStorageLifecycle:
    """Tests for client lifecycle."""

    async def test_memory_url_initializes(self):
        """":memory:" opens an in-process store with both collections."""
        store = WebhookStorage(url=":memory:", prefix="life")
        await store.initialize()
        try:
            names = {c.name for c in (await store.client.get_collections()).collections}
            assert names == {"life_endpoints", "life_deliveries"}
        finally:
            await store.close()

    async def test_unreachable_server_raises_storage_error(self, monkeypatch):
        """Connection failures during setup surface as StorageError."""

        async def refuse(self):
            raise ResponseHandlingException(httpx.ConnectError("Connection refused"))

        monkeypatch.setattr(WebhookStorage, "_ensure_collections", refuse)
        store = WebhookStorage(url=":memory:", prefix="down")

        with pytest.raises(StorageError, match="Could not initialize Qdrant"):
            await store.initialize()
        assert store._client is None

    def test_wrapped_transport_errors_are_transient(self):
        """Transport errors wrapped by qdrant-client are retried; others are not."""
        assert _is_transient(ResponseHandlingException(httpx.ConnectError("refused")))
        assert _is_transient(ResponseHandlingException(httpx.ReadTimeout("slow")))
        assert not _is_transient(ResponseHandlingException(ValueError("bad payload")))

    def test_client_before_initialize(self):
        """Using the client before initialize is an error."""
        with pytest.raises(RuntimeError, match="not initialized"):
            WebhookStorage(prefix="x").client

    def test_point_ids_are_stable_uuids(self):
        """Record IDs hash to the same UUID-shaped point ID every time."""
        first = WebhookStorage._key_to_point_id("whk_abc")
        assert first == WebhookStorage._key_to_point_id("whk_abc")
        assert len(first) == 36 and first.count("-") == 4

    def test_implements_repositories(self, storage):
        """The storage satisfies both repository protocols."""
        assert isinstance(storage, EndpointRepository)
        assert isinstance(storage, DeliveryRepository)


class TestEndpointStorage:
    """Tests for endpoint operations."""

    async def test_round_trip(self, storage, make_endpoint):
        """Stored endpoints come back unchanged."""
        endpoint = make_endpoint()
        await storage.store_endpoint(endpoint)
        assert await storage.get_endpoint(endpoint.id) == endpoint

    async def test_get_missing(self, storage):
        """Unknown IDs return None."""
        assert await storage.get_endpoint("whk_missing") is None

    async def test_list_by_owner_newest_first(self, storage, make_endpoint):
        """Listing filters by owner and sorts by created_at descending."""
        now = utcnow()
        older = make_endpoint(created_at=now - timedelta(hours=2))
        newer = make_endpoint(created_at=now)
        other = make_endpoint(owner_id="user_2")
        for endpoint in (older, newer, other):
            await storage.store_endpoint(endpoint)

        listed = await storage.list_endpoints(owner_id="user_1")
        assert [e.id for e in listed] == [newer.id, older.id]

    async def test_list_subscribed_skips_inactive(self, storage, make_endpoint):
        """Only active endpoints subscribed to the event are returned."""
        match = make_endpoint(events=["PAYMENT_FAILED"])
        inactive = make_endpoint(events=["PAYMENT_FAILED"], is_active=False)
        unrelated = make_endpoint(events=["USER_CREATED"])
        for endpoint in (match, inactive, unrelated):
            await storage.store_endpoint(endpoint)

        subscribed = await storage.list_subscribed_endpoints("PAYMENT_FAILED")
        assert [e.id for e in subscribed] == [match.id]

    async def test_count_by_active_state(self, storage, make_endpoint):
        """Counts split by is_active."""
        await storage.store_endpoint(make_endpoint())
        await storage.store_endpoint(make_endpoint())
        await storage.store_endpoint(make_endpoint(is_active=False))

        assert await storage.count_endpoints() == 3
        assert await storage.count_endpoints(is_active=True) == 2
        assert await storage.count_endpoints(is_active=False) == 1

    async def test_failing_endpoints_ordered(self, storage, make_endpoint):
        """Failing endpoints come highest failure_count first."""
        healthy = make_endpoint()
        some = make_endpoint(failure_count=2)
        many = make_endpoint(failure_count=9)
        for endpoint in (healthy, some, many):
            await storage.store_endpoint(endpoint)

        failing = await storage.list_failing_endpoints(limit=10)
        assert [e.id for e in failing] == [many.id, some.id]

    async def test_delete(self, storage, make_endpoint):
        """Deleting reports whether the endpoint existed."""
        endpoint = make_endpoint()
        await storage.store_endpoint(endpoint)

        assert await storage.delete_endpoint(endpoint.id) is True
        assert await storage.get_endpoint(endpoint.id) is None
        assert await storage.delete_endpoint(endpoint.id) is False


class TestDeliveryStorage:
    """Tests for delivery operations."""

    async def test_round_trip(self, storage, make_delivery):
        """Stored deliveries come back unchanged, status included."""
        delivery = make_delivery("whk_1", status=DeliveryStatus.FAILED, attempts=2)
        await storage.store_delivery(delivery)
        assert await storage.get_delivery(delivery.id) == delivery

    async def test_list_filters_and_pages(self, storage, make_delivery):
        """Listing applies filters, sorts newest first and pages."""
        now = utcnow()
        rows = [
            make_delivery("whk_1", created_at=now - timedelta(minutes=i)) for i in range(5)
        ]
        rows.append(make_delivery("whk_2", created_at=now))
        for delivery in rows:
            await storage.store_delivery(delivery)

        page, total = await storage.list_deliveries(
            DeliveryFilters(endpoint_id="whk_1", page=2, limit=2)
        )
        assert total == 5
        assert [d.id for d in page] == [rows[2].id, rows[3].id]

    async def test_list_by_status_and_event(self, storage, make_delivery):
        """Status and event filters combine."""
        target = make_delivery("whk_1", event="PAYMENT_FAILED", status=DeliveryStatus.FAILED)
        await storage.store_delivery(target)
        await storage.store_delivery(make_delivery("whk_1", event="PAYMENT_FAILED"))
        await storage.store_delivery(make_delivery("whk_1", status=DeliveryStatus.FAILED))

        page, total = await storage.list_deliveries(
            DeliveryFilters(status=DeliveryStatus.FAILED, event="PAYMENT_FAILED")
        )
        assert total == 1
        assert page[0].id == target.id

    async def test_list_by_date_range(self, storage, make_delivery):
        """start_date and end_date bound created_at inclusively."""
        now = utcnow()
        old = make_delivery("whk_1", created_at=now - timedelta(days=3))
        mid = make_delivery("whk_1", created_at=now - timedelta(days=1))
        await storage.store_delivery(old)
        await storage.store_delivery(mid)

        page, total = await storage.list_deliveries(
            DeliveryFilters(start_date=now - timedelta(days=2), end_date=now)
        )
        assert total == 1
        assert page[0].id == mid.id

    async def test_list_by_owner(self, storage, make_endpoint, make_delivery):
        """An owner filter resolves to that owner's endpoints."""
        mine = make_endpoint()
        theirs = make_endpoint(owner_id="user_2")
        await storage.store_endpoint(mine)
        await storage.store_endpoint(theirs)
        await storage.store_delivery(make_delivery(mine.id))
        await storage.store_delivery(make_delivery(theirs.id))

        page, total = await storage.list_deliveries(DeliveryFilters(owner_id="user_1"))
        assert total == 1
        assert page[0].endpoint_id == mine.id

        assert await storage.list_deliveries(DeliveryFilters(owner_id="nobody")) == ([], 0)

    async def test_due_deliveries(self, storage, make_delivery):
        """New and overdue PENDING rows are due, oldest first."""
        now = utcnow()
        new = make_delivery("whk_1", created_at=now - timedelta(minutes=1))
        overdue = make_delivery(
            "whk_1",
            attempts=1,
            created_at=now - timedelta(minutes=10),
            next_retry_at=now - timedelta(seconds=5),
        )
        future = make_delivery("whk_1", attempts=1, next_retry_at=now + timedelta(hours=1))
        done = make_delivery("whk_1", status=DeliveryStatus.DELIVERED, attempts=1)
        for delivery in (new, overdue, future, done):
            await storage.store_delivery(delivery)

        due = await storage.list_due_deliveries(now, limit=10)
        assert [d.id for d in due] == [overdue.id, new.id]

    async def test_due_retries(self, storage, make_delivery):
        """Only scheduled retries that are due and have budget left."""
        now = utcnow()
        later = make_delivery("whk_1", attempts=1, next_retry_at=now - timedelta(minutes=1))
        sooner = make_delivery("whk_1", attempts=2, next_retry_at=now - timedelta(minutes=5))
        spent = make_delivery(
            "whk_1", attempts=5, max_attempts=5, next_retry_at=now - timedelta(minutes=2)
        )
        short_budget = make_delivery(
            "whk_1", attempts=3, max_attempts=3, next_retry_at=now - timedelta(minutes=3)
        )
        long_budget = make_delivery(
            "whk_1", attempts=6, max_attempts=10, next_retry_at=now - timedelta(seconds=30)
        )
        new = make_delivery("whk_1")
        for delivery in (later, sooner, spent, short_budget, long_budget, new):
            await storage.store_delivery(delivery)

        due = await storage.list_due_retries(now, limit=10)
        assert [d.id for d in due] == [sooner.id, later.id, long_budget.id]

    async def test_scans_read_past_page_size(self, make_delivery):
        """Listings and due scans see every record, however small the page size."""
        store = WebhookStorage(prefix="paged", max_scroll_limit=2)
        store._client = AsyncQdrantClient(location=":memory:")
        await store._ensure_collections()
        try:
            now = utcnow()
            deliveries = [
                make_delivery("whk_1", created_at=now - timedelta(minutes=i)) for i in range(5)
            ]
            for delivery in deliveries:
                await store.store_delivery(delivery)

            page, total = await store.list_deliveries(DeliveryFilters(limit=2))
            assert total == 5
            assert [d.id for d in page] == [deliveries[0].id, deliveries[1].id]

            due = await store.list_due_deliveries(now, limit=1)
            assert [d.id for d in due] == [deliveries[4].id]
        finally:
            await store.close()

    async def test_count_by_status(self, storage, make_delivery):
        """Per-status counts can be scoped to an endpoint."""
        await storage.store_delivery(make_delivery("whk_1"))
        await storage.store_delivery(
            make_delivery("whk_1", status=DeliveryStatus.DELIVERED, attempts=1)
        )
        await storage.store_delivery(make_delivery("whk_2"))

        counts = await storage.count_deliveries_by_status("whk_1")
        assert counts[DeliveryStatus.PENDING] == 1
        assert counts[DeliveryStatus.DELIVERED] == 1
        assert counts[DeliveryStatus.FAILED] == 0
        assert (await storage.count_deliveries_by_status())[DeliveryStatus.PENDING] == 2
        assert await storage.count_deliveries("whk_1") == 2

    async def test_delete_for_endpoint(self, storage, make_delivery):
        """All of an endpoint's deliveries are removed, others stay."""
        await storage.store_delivery(make_delivery("whk_1"))
        await storage.store_delivery(make_delivery("whk_1"))
        keep = make_delivery("whk_2")
        await storage.store_delivery(keep)

        assert await storage.delete_deliveries_for_endpoint("whk_1") == 2
        assert await storage.count_deliveries() == 1
        assert await storage.get_delivery(keep.id) is not None


class TestPaginate:
    """Tests for the page slicing helper."""

    def test_pages_are_one_based(self):
        """Page 1 starts at the first record."""
        assert paginate([1, 2, 3, 4, 5], 1, 2) == [1, 2]
        assert paginate([1, 2, 3, 4, 5], 3, 2) == [5]
        assert paginate([1, 2, 3], 4, 2) == []
