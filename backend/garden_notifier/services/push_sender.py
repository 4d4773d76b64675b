"""Push notification providers: Amazon SNS for every platform, APNs direct for iOS."""
import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Dict, Optional, Protocol

import boto3
from aioapns import APNs, NotificationRequest, PushType
from botocore.exceptions import BotoCoreError, ClientError

from ..config import Settings
from ..exceptions import DeliveryError
from ..models import DeviceToken

logger = logging.getLogger(__name__)

# APNs status codes worth another attempt
_APNS_RETRYABLE_STATUSES = ("429", "500", "503")


class PushProvider(Protocol):
    async def publish(self, device: DeviceToken, message: Dict[str, str]) -> str:
        """Deliver an SNS-style message map to one device, returning the message id."""


class SnsPushProvider:
    """Publishes through Amazon SNS mobile push platform applications.

    A platform endpoint is created (or looked up, SNS makes this idempotent)
    for the device token and the message map is published to it with
    ``MessageStructure=json``.
    """

    def __init__(
        self,
        region: str,
        platform_arn_ios: str = "",
        platform_arn_android: str = "",
        client=None,
    ):
        self.client = client or boto3.client("sns", region_name=region)
        self.platform_arns = {
            "ios": platform_arn_ios,
            "android": platform_arn_android,
            "web": platform_arn_android,
        }

    def _publish_sync(self, token: str, platform: str, message: Dict[str, str]) -> str:
        platform_arn = self.platform_arns.get(platform)
        if not platform_arn:
            raise DeliveryError(
                f"no SNS platform application configured for {platform}",
                code="PlatformNotConfigured",
                retryable=False,
            )

        try:
            endpoint = self.client.create_platform_endpoint(
                PlatformApplicationArn=platform_arn,
                Token=token,
            )
            response = self.client.publish(
                TargetArn=endpoint["EndpointArn"],
                Message=json.dumps(message),
                MessageStructure="json",
            )
        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code", "Unknown")
            raise DeliveryError(f"SNS publish failed ({error_code}): {e}", code=error_code) from e
        except BotoCoreError as e:
            raise DeliveryError(f"SNS request failed: {e}") from e

        return response["MessageId"]

    async def publish(self, device: DeviceToken, message: Dict[str, str]) -> str:
        message_id = await asyncio.to_thread(self._publish_sync, device.token, device.platform, message)
        logger.info(f"Push notification sent to {device.token[:16]}... ({device.platform}, id={message_id})")
        return message_id


@dataclass
class PushConfig:
    """APNs configuration."""
    key_path: str = ""  # Path to .p8 key file
    key_id: str = ""
    team_id: str = ""
    bundle_id: str = ""
    use_sandbox: bool = True  # Use sandbox for development


class ApnsPushProvider:
    """Sends directly to Apple Push Notification service. iOS tokens only."""

    def __init__(self, config: PushConfig, client: Optional[APNs] = None):
        self._config = config
        self._client = client
        if self._client is None:
            self.configure(config)

    def configure(self, config: PushConfig):
        """Configure the APNs client."""
        self._config = config
        self._client = None

        if not all([config.key_path, config.key_id, config.team_id, config.bundle_id]):
            logger.warning("APNs push backend selected but not fully configured")
            return

        try:
            self._client = APNs(
                key=config.key_path,
                key_id=config.key_id,
                team_id=config.team_id,
                topic=config.bundle_id,
                use_sandbox=config.use_sandbox,
            )
            logger.info(f"APNs client configured (sandbox={config.use_sandbox})")
        except Exception as e:
            logger.error(f"Failed to configure APNs client: {e}")
            self._client = None

    async def publish(self, device: DeviceToken, message: Dict[str, str]) -> str:
        if device.platform != "ios":
            raise DeliveryError(
                f"APNs cannot deliver to {device.platform} devices",
                code="UnsupportedPlatform",
                retryable=False,
            )
        if self._client is None:
            raise DeliveryError("APNs client is not configured", code="NotConfigured", retryable=False)

        key = "APNS_SANDBOX" if self._config.use_sandbox else "APNS"
        request = NotificationRequest(
            device_token=device.token,
            message=json.loads(message[key]),
            push_type=PushType.ALERT,
        )
        response = await self._client.send_notification(request)

        if not response.is_successful:
            raise DeliveryError(
                f"APNs rejected notification: {response.description} (status {response.status})",
                code=response.description,
                retryable=str(response.status) in _APNS_RETRYABLE_STATUSES,
            )

        logger.info(f"Push notification sent to {device.token[:16]}... (apns)")
        return response.notification_id


def build_push_provider(settings: Settings) -> PushProvider:
    """Create the push provider selected by ``PUSH_BACKEND``."""
    if settings.push_backend == "apns":
        return ApnsPushProvider(
            PushConfig(
                key_path=settings.apns_key_path,
                key_id=settings.apns_key_id,
                team_id=settings.apns_team_id,
                bundle_id=settings.apns_bundle_id,
                use_sandbox=settings.apns_use_sandbox,
            )
        )
    return SnsPushProvider(
        region=settings.aws_region,
        platform_arn_ios=settings.sns_platform_arn_ios,
        platform_arn_android=settings.sns_platform_arn_android,
    )
