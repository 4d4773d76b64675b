from datetime import datetime, timedelta

import pytest

from garden_notifier.exceptions import ScanError
from garden_notifier.services.scanner import TimeWindowScanner

from conftest import NOW, TODAY


class TestTimeWindowScanner:
    """Test the three time-window queries against the database."""

    @pytest.mark.asyncio
    async def test_overdue_excludes_today_and_finished_tasks(self, stores, clock, make_user, make_task):
        user = await make_user()
        late = await make_task(user, title="late", due=NOW - timedelta(days=2))
        older = await make_task(user, title="older", due=NOW - timedelta(days=5))
        await make_task(user, title="done", due=NOW - timedelta(days=3), status="completed")
        await make_task(user, title="today", due=datetime(2024, 6, 15, 0, 0))

        scan = await TimeWindowScanner(stores.tasks, stores.crops, clock).scan()

        assert scan.today == TODAY
        assert [t.id for t in scan.overdue_tasks] == [older.id, late.id]
        assert scan.overdue_tasks[0].user.email == "gardener@example.com"

    @pytest.mark.asyncio
    async def test_today_is_ordered_by_user_then_priority(self, stores, clock, make_user, make_task):
        first = await make_user(email="a@example.com")
        second = await make_user(email="b@example.com")
        low = await make_task(first, title="low", priority="low", due=datetime(2024, 6, 15, 8))
        high = await make_task(first, title="high", priority="high", due=datetime(2024, 6, 15, 18))
        other = await make_task(second, title="other", priority="high", due=datetime(2024, 6, 15, 7))
        await make_task(first, title="tomorrow", due=datetime(2024, 6, 16, 0, 0))

        scan = await TimeWindowScanner(stores.tasks, stores.crops, clock).scan()

        assert [t.id for t in scan.today_tasks] == [high.id, low.id, other.id]

    @pytest.mark.asyncio
    async def test_harvest_window_is_inclusive(self, stores, clock, make_user, make_crop):
        user = await make_user()
        today = await make_crop(user, name="Lettuce", harvest=TODAY)
        edge = await make_crop(user, name="Pumpkin", harvest=TODAY + timedelta(days=7))
        await make_crop(user, name="Corn", harvest=TODAY + timedelta(days=8))
        await make_crop(user, name="Bean", harvest=TODAY - timedelta(days=1))
        await make_crop(user, name="Pea", harvest=TODAY + timedelta(days=1), status="harvested")

        scan = await TimeWindowScanner(stores.tasks, stores.crops, clock, harvest_days_ahead=7).scan()

        assert [c.id for c in scan.upcoming_crops] == [today.id, edge.id]

    @pytest.mark.asyncio
    async def test_query_failure_raises_scan_error(self, stores, clock):
        class BrokenTaskStore:
            async def get_all_overdue_tasks(self, today):
                raise RuntimeError("connection lost")

        with pytest.raises(ScanError, match="overdue"):
            await TimeWindowScanner(BrokenTaskStore(), stores.crops, clock).scan()
