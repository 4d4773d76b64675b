"""Token lifecycle - deactivates device tokens the push provider has rejected."""
import logging

from ..models import DeviceToken
from ..repositories import DeviceTokenStore

logger = logging.getLogger(__name__)

# Error codes meaning the token will never work again (SNS, FCM and APNs)
PERMANENT_TOKEN_ERRORS = (
    "InvalidPlatformToken",
    "EndpointDisabled",
    "InvalidRegistration",
    "BadDeviceToken",
    "Unregistered",
)


def is_permanent_token_error(error: BaseException) -> bool:
    """True when a push failure shows the device token is permanently invalid."""
    last_error = getattr(error, "last_error", None)
    if last_error is not None and is_permanent_token_error(last_error):
        return True
    code = getattr(error, "code", None)
    if code in PERMANENT_TOKEN_ERRORS:
        return True
    message = str(error)
    return any(marker in message for marker in PERMANENT_TOKEN_ERRORS)


class TokenLifecycleManager:
    def __init__(self, device_store: DeviceTokenStore):
        self.device_store = device_store

    async def handle_push_failure(self, device: DeviceToken, error: BaseException) -> bool:
        """Deactivate ``device`` if ``error`` marks its token invalid.

        Returns True when the token was deactivated. Store failures are logged
        and never raised.
        """
        if not is_permanent_token_error(error):
            return False

        try:
            await self.device_store.deactivate_token(device.id)
        except Exception as e:
            logger.error(f"Failed to deactivate device token {device.id} for user {device.user_id}: {e}")
            return False

        logger.warning(
            f"Deactivated {device.platform} token for user {device.user_id} "
            f"({device.token[:16]}...): {error}"
        )
        return True
