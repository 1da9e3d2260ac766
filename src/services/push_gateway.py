"""Firebase Cloud Messaging gateway for push delivery."""

import logging
import threading
from dataclasses import dataclass
from typing import Any, Protocol

import firebase_admin
from firebase_admin import credentials, messaging
from firebase_admin import exceptions as firebase_exceptions

from src.config import Settings, get_settings

logger = logging.getLogger(__name__)

# Error codes recorded in the delivery log.
TOKEN_NOT_REGISTERED = "registration-token-not-registered"
INVALID_TOKEN = "invalid-registration-token"
MISMATCHED_CREDENTIAL = "mismatched-credential"
RATE_EXCEEDED = "message-rate-exceeded"
SERVER_UNAVAILABLE = "server-unavailable"
INVALID_ARGUMENT = "invalid-argument"
INVALID_PAYLOAD = "invalid-payload"
GATEWAY_UNAVAILABLE = "gateway-unavailable"
INTERNAL_ERROR = "internal-error"

# A token that failed with one of these will never work again.
PERMANENT_ERROR_CODES = frozenset({TOKEN_NOT_REGISTERED, INVALID_TOKEN, MISMATCHED_CREDENTIAL})


@dataclass(frozen=True)
class GatewayResult:
    """Outcome of sending to one device token."""

    success: bool
    message_id: str | None = None
    error_code: str | None = None
    error_message: str | None = None

    @property
    def is_permanent_failure(self) -> bool:
        """Check if the token should be deactivated."""
        return not self.success and self.error_code in PERMANENT_ERROR_CODES

    @classmethod
    def ok(cls, message_id: str) -> "GatewayResult":
        return cls(success=True, message_id=message_id)

    @classmethod
    def failed(cls, error_code: str, error_message: str | None = None) -> "GatewayResult":
        return cls(success=False, error_code=error_code, error_message=error_message)


class PushGateway(Protocol):
    """Anything that can deliver one payload to one device."""

    def send(self, payload: dict[str, Any]) -> GatewayResult: ...


def classify_error(exc: Exception) -> GatewayResult:
    """Map a Firebase exception to a logged error code."""
    message = str(exc)
    if isinstance(exc, messaging.UnregisteredError):
        return GatewayResult.failed(TOKEN_NOT_REGISTERED, message)
    if isinstance(exc, messaging.SenderIdMismatchError):
        return GatewayResult.failed(MISMATCHED_CREDENTIAL, message)
    if isinstance(exc, messaging.QuotaExceededError):
        return GatewayResult.failed(RATE_EXCEEDED, message)
    if isinstance(exc, firebase_exceptions.InvalidArgumentError):
        # FCM reports malformed tokens as INVALID_ARGUMENT with a token-specific message.
        if "registration token" in message.lower():
            return GatewayResult.failed(INVALID_TOKEN, message)
        return GatewayResult.failed(INVALID_ARGUMENT, message)
    if isinstance(exc, firebase_exceptions.UnavailableError):
        return GatewayResult.failed(SERVER_UNAVAILABLE, message)
    if isinstance(exc, firebase_exceptions.FirebaseError):
        code = str(exc.code or INTERNAL_ERROR).lower().replace("_", "-")
        return GatewayResult.failed(code, message)
    if isinstance(exc, ValueError):
        return GatewayResult.failed(INVALID_PAYLOAD, message)
    return GatewayResult.failed(INTERNAL_ERROR, message)


def build_fcm_message(payload: dict[str, Any]) -> messaging.Message:
    """Convert a payload from `build_push_payload` into an FCM message."""
    apns = None
    if "apns" in payload:
        aps = payload["apns"]["aps"]
        apns = messaging.APNSConfig(
            headers=payload["apns"]["headers"],
            payload=messaging.APNSPayload(
                aps=messaging.Aps(
                    alert=messaging.ApsAlert(
                        title=aps["alert"]["title"], body=aps["alert"]["body"]
                    ),
                    badge=aps.get("badge"),
                    sound=aps.get("sound"),
                    mutable_content=aps.get("mutable_content"),
                    thread_id=aps.get("thread_id"),
                    category=aps.get("category"),
                )
            ),
        )

    android = None
    if "android" in payload:
        notification = payload["android"]["notification"]
        android = messaging.AndroidConfig(
            priority=payload["android"]["priority"],
            notification=messaging.AndroidNotification(
                title=notification["title"],
                body=notification["body"],
                icon=notification.get("icon"),
                color=notification.get("color"),
                sound=notification.get("sound"),
                channel_id=notification.get("channel_id"),
                notification_count=notification.get("notification_count"),
                default_vibrate_timings=notification.get("default_vibrate_timings"),
            ),
        )

    webpush = None
    if "webpush" in payload:
        notification = payload["webpush"]["notification"]
        webpush = messaging.WebpushConfig(
            headers=payload["webpush"]["headers"],
            notification=messaging.WebpushNotification(
                title=notification["title"],
                body=notification["body"],
                icon=notification.get("icon"),
                tag=notification.get("tag"),
                silent=notification.get("silent"),
            ),
        )

    return messaging.Message(
        token=payload["token"],
        data=payload["data"],
        apns=apns,
        android=android,
        webpush=webpush,
    )


class FirebasePushGateway:
    """Sends push notifications through the Firebase Admin SDK."""

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()
        self._app: firebase_admin.App | None = None
        self._init_failed = False
        self._init_lock = threading.Lock()

    def _init_app(self) -> firebase_admin.App | None:
        """Initialize the Firebase app once, from a service account or ADC."""
        with self._init_lock:
            if self._app is not None or self._init_failed:
                return self._app

            try:
                self._app = firebase_admin.get_app()
                return self._app
            except ValueError:
                pass

            try:
                if self.settings.firebase_credentials_path:
                    cred = credentials.Certificate(self.settings.firebase_credentials_path)
                else:
                    cred = credentials.ApplicationDefault()
                options = {}
                if self.settings.firebase_project_id:
                    options["projectId"] = self.settings.firebase_project_id
                self._app = firebase_admin.initialize_app(cred, options or None)
                logger.info("Firebase Admin initialized for push delivery")
            except (ValueError, OSError) as e:
                self._init_failed = True
                logger.warning(f"Firebase Admin init failed, push delivery disabled: {e}")

            return self._app

    def send(self, payload: dict[str, Any]) -> GatewayResult:
        """Send one payload to one device token."""
        app = self._init_app()
        if app is None:
            return GatewayResult.failed(GATEWAY_UNAVAILABLE, "Firebase is not configured")

        try:
            message_id = messaging.send(build_fcm_message(payload), app=app)
        except (firebase_exceptions.FirebaseError, ValueError) as e:
            result = classify_error(e)
            logger.warning(
                f"FCM send failed for token {payload['token'][:16]}...: "
                f"{result.error_code} {result.error_message}"
            )
            return result

        logger.debug(f"FCM message {message_id} sent to {payload['token'][:16]}...")
        return GatewayResult.ok(message_id)


_gateway: FirebasePushGateway | None = None


def get_push_gateway() -> FirebasePushGateway:
    """Get the process-wide push gateway."""
    global _gateway
    if _gateway is None:
        _gateway = FirebasePushGateway()
    return _gateway
