"""
Inactivity scanner: threshold boundary, ordering, empty store, store outage.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from inheritor.services.errors import StoreUnavailable
from inheritor.services.scanner import InactivityScanner
from tests.conftest import DAY, T0, W1, W2, W3


class TestInactivityScanner:

    @pytest.mark.asyncio
    async def test_boundary_is_inclusive(self, store):
        await store.upsert(W1, T0)
        scanner = InactivityScanner(store)

        assert await scanner.scan(T0 + DAY - 1, DAY) == []
        candidates = await scanner.scan(T0 + DAY, DAY)
        assert [r.wallet_id for r in candidates] == [W1]

    @pytest.mark.asyncio
    async def test_only_inactive_wallets_selected(self, store):
        await store.upsert(W1, T0)
        await store.upsert(W2, T0 + DAY)
        await store.upsert(W3, T0 - DAY)

        candidates = await InactivityScanner(store).scan(T0 + DAY, DAY)

        assert [r.wallet_id for r in candidates] == [W1, W3]

    @pytest.mark.asyncio
    async def test_settled_wallets_never_selected(self, store):
        await store.upsert(W1, T0)
        await store.upsert(W2, T0)
        await store.mark_settled(W1, "0xabc", T0)

        candidates = await InactivityScanner(store).scan(T0 + 10 * DAY, DAY)

        assert [r.wallet_id for r in candidates] == [W2]

    @pytest.mark.asyncio
    async def test_empty_store(self, store):
        assert await InactivityScanner(store).scan(T0, DAY) == []

    @pytest.mark.asyncio
    async def test_zero_threshold_selects_everything_active(self, store):
        await store.upsert(W2, T0)
        await store.upsert(W1, T0)
        candidates = await InactivityScanner(store).scan(T0, 0)
        assert [r.wallet_id for r in candidates] == [W1, W2]

    @pytest.mark.asyncio
    async def test_negative_threshold_rejected(self, store):
        with pytest.raises(ValueError):
            await InactivityScanner(store).scan(T0, -1)

    @pytest.mark.asyncio
    async def test_store_unavailable_propagates(self):
        store = MagicMock()
        store.list_active = AsyncMock(side_effect=StoreUnavailable("redis down"))
        with pytest.raises(StoreUnavailable):
            await InactivityScanner(store).scan(T0, DAY)
