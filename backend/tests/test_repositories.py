from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

import pytest

from garden_notifier.config import settings
from garden_notifier.models import DeviceToken
from garden_notifier.utils.clock import local_now


class TestDeviceTokenStore:
    """Test device token registration and removal."""

    @pytest.mark.asyncio
    async def test_register_reactivates_replaced_token(self, stores, make_user, make_device, fetch_all):
        user = await make_user()
        old = await make_device(user, token="android-old", platform="android", is_active=False)

        device = await stores.devices.register(user.id, "android", "android-new")

        assert device.id == old.id
        assert device.is_active is True
        assert [d.token for d in await fetch_all(DeviceToken)] == ["android-new"]

    @pytest.mark.asyncio
    async def test_one_token_per_platform(self, stores, make_user, fetch_all):
        user = await make_user()

        await stores.devices.register(user.id, "ios", "ios-token")
        await stores.devices.register(user.id, "web", "web-token")

        assert sorted(d.platform for d in await fetch_all(DeviceToken)) == ["ios", "web"]

    @pytest.mark.asyncio
    async def test_active_tokens_exclude_deactivated(self, stores, make_user, make_device):
        user = await make_user()
        ios = await make_device(user, token="ios-token", platform="ios")
        await make_device(user, token="android-token", platform="android")

        await stores.devices.deactivate_token(ios.id)

        assert [d.token for d in await stores.devices.get_active_by_user_id(user.id)] == ["android-token"]

    @pytest.mark.asyncio
    async def test_delete_every_platform(self, stores, make_user, make_device):
        user = await make_user()
        other = await make_user(email="neighbour@example.com")
        await make_device(user, token="ios-token", platform="ios")
        await make_device(user, token="android-token", platform="android")
        await make_device(other, token="other-token", platform="ios")

        assert await stores.devices.delete_for_user(user.id) == 2
        assert len(await stores.devices.get_active_by_user_id(other.id)) == 1


class TestUserStore:
    """Test user and settings loading."""

    @pytest.mark.asyncio
    async def test_user_loaded_with_settings(self, stores, make_user):
        user = await make_user(settings={"push_enabled": False})

        loaded = await stores.users.get_by_id(user.id)

        assert loaded.email == "gardener@example.com"
        assert loaded.notification_settings.push_enabled is False

    @pytest.mark.asyncio
    async def test_missing_user(self, stores):
        assert await stores.users.get_by_id(404) is None

    @pytest.mark.asyncio
    async def test_save_creates_row_with_defaults(self, stores, make_user):
        user = await make_user()

        saved = await stores.users.save_notification_settings(user.id, {"task_reminders": False})

        assert saved.task_reminders is False
        assert saved.push_enabled is True
        assert saved.growth_record_notifications is False

    @pytest.mark.asyncio
    async def test_save_ignores_none_values(self, stores, make_user):
        user = await make_user(settings={"email_enabled": False})

        saved = await stores.users.save_notification_settings(
            user.id, {"email_enabled": None, "harvest_reminders": False}
        )

        assert saved.email_enabled is False
        assert saved.harvest_reminders is False


class TestRowTimestamps:
    """Row timestamps share the configured timezone with the pipeline's clock."""

    @pytest.mark.asyncio
    async def test_device_timestamps_use_configured_timezone(self, stores, make_user, monkeypatch):
        monkeypatch.setattr(settings, "timezone", "Asia/Tokyo")
        user = await make_user()

        device = await stores.devices.register(user.id, "ios", "ios-token")

        tokyo_now = datetime.now(ZoneInfo("Asia/Tokyo")).replace(tzinfo=None)
        assert abs(device.created_at - tokyo_now) < timedelta(minutes=1)
        assert abs(device.updated_at - tokyo_now) < timedelta(minutes=1)

    @pytest.mark.asyncio
    async def test_deactivation_stamps_configured_timezone(
        self, stores, make_user, make_device, fetch_all, monkeypatch
    ):
        monkeypatch.setattr(settings, "timezone", "America/Los_Angeles")
        user = await make_user()
        device = await make_device(user)

        await stores.devices.deactivate_token(device.id)

        la_now = datetime.now(ZoneInfo("America/Los_Angeles")).replace(tzinfo=None)
        assert abs((await fetch_all(DeviceToken))[0].updated_at - la_now) < timedelta(minutes=1)

    def test_local_now_follows_timezone_setting(self, monkeypatch):
        monkeypatch.setattr(settings, "timezone", "Asia/Tokyo")
        tokyo = local_now()
        monkeypatch.setattr(settings, "timezone", "UTC")
        utc = local_now()

        assert abs((tokyo - utc) - timedelta(hours=9)) < timedelta(minutes=1)
