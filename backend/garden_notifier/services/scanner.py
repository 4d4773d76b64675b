"""Time-window scanner - finds overdue tasks, today's tasks and upcoming harvests."""
import logging

from ..exceptions import ScanError
from ..repositories import CropStore, TaskStore
from ..utils.clock import Clock
from .event_generator import ScanResult

logger = logging.getLogger(__name__)

DEFAULT_HARVEST_DAYS_AHEAD = 7


class TimeWindowScanner:
    """Runs the three time-window queries for the clock's current day."""

    def __init__(
        self,
        task_store: TaskStore,
        crop_store: CropStore,
        clock: Clock,
        harvest_days_ahead: int = DEFAULT_HARVEST_DAYS_AHEAD,
    ):
        self.task_store = task_store
        self.crop_store = crop_store
        self.clock = clock
        self.harvest_days_ahead = harvest_days_ahead

    async def scan(self) -> ScanResult:
        """Query all windows. Any failure aborts the scan with ScanError."""
        today = self.clock.now().date()
        result = ScanResult(today=today)

        try:
            result.overdue_tasks = await self.task_store.get_all_overdue_tasks(today)
        except Exception as e:
            raise ScanError(f"failed to get overdue tasks: {e}") from e

        try:
            result.today_tasks = await self.task_store.get_all_today_tasks(today)
        except Exception as e:
            raise ScanError(f"failed to get today's tasks: {e}") from e

        try:
            result.upcoming_crops = await self.crop_store.get_upcoming_harvests(today, self.harvest_days_ahead)
        except Exception as e:
            raise ScanError(f"failed to get upcoming harvests: {e}") from e

        logger.info(
            f"Scan for {today.isoformat()}: {len(result.overdue_tasks)} overdue tasks, "
            f"{len(result.today_tasks)} tasks due today, {len(result.upcoming_crops)} upcoming harvests"
        )
        return result
