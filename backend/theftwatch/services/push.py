"""
Theft-alert delivery to iOS devices through Apple Push Notification service (APNs).

Token-based auth: a provider JWT signed with the team's .p8 key (ES256), reused until shortly
before APNs would reject it and dropped early when APNs answers ExpiredProviderToken.
Config: APNS_KEY_ID, APNS_TEAM_ID, APNS_BUNDLE_ID and one of APNS_KEY_P8_BASE64 / APNS_KEY_P8_PATH.
When unconfigured, apns_configured() is False and alerts stay pending for the realtime stream.
"""
import base64
import binascii
import logging
import time
from dataclasses import dataclass
from pathlib import Path

import httpx
import jwt

from theftwatch.config import settings

logger = logging.getLogger(__name__)

APNS_SANDBOX = "https://api.sandbox.push.apple.com"
APNS_PRODUCTION = "https://api.push.apple.com"

# APNs refuses provider tokens issued more than an hour ago
PROVIDER_TOKEN_TTL_SECONDS = 50 * 60


@dataclass
class _ProviderToken:
    value: str
    key_id: str
    refresh_at: float


_provider_token: _ProviderToken | None = None


def _signing_key() -> str | None:
    """PEM text of the .p8 key; the inline base64 setting wins over the file path."""
    if settings.apns_key_p8_base64:
        try:
            return base64.b64decode(settings.apns_key_p8_base64, validate=True).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError) as e:
            logger.warning("APNS_KEY_P8_BASE64 is not a base64-encoded key: %s", e)
            return None
    if not settings.apns_key_p8_path:
        return None
    try:
        return Path(settings.apns_key_p8_path).read_text(encoding="utf-8")
    except OSError as e:
        logger.warning("Cannot read APNs key at %s: %s", settings.apns_key_p8_path, e)
        return None


def apns_configured() -> bool:
    return bool(
        settings.apns_key_id
        and settings.apns_team_id
        and settings.apns_bundle_id
        and (settings.apns_key_p8_base64 or settings.apns_key_p8_path)
    )


def forget_provider_token() -> None:
    global _provider_token
    _provider_token = None


def _provider_jwt(now: float | None = None) -> str | None:
    """Current provider token, signing a fresh one when none is cached, it is stale, or the key id changed."""
    global _provider_token
    key_id, team_id = settings.apns_key_id, settings.apns_team_id
    if not (key_id and team_id):
        return None
    now = time.time() if now is None else now
    cached = _provider_token
    if cached is not None and cached.key_id == key_id and now < cached.refresh_at:
        return cached.value
    pem = _signing_key()
    if pem is None:
        return None
    try:
        value = jwt.encode({"iss": team_id, "iat": int(now)}, pem, algorithm="ES256", headers={"kid": key_id})
    except (jwt.PyJWTError, ValueError) as e:
        logger.warning("Signing APNs provider token with key %s failed: %s", key_id, e, exc_info=True)
        return None
    _provider_token = _ProviderToken(value=value, key_id=key_id, refresh_at=now + PROVIDER_TOKEN_TTL_SECONDS)
    return value


def send_apns(
    client: httpx.Client,
    device_token: str,
    title: str,
    body: str,
    data: dict | None = None,
) -> bool:
    """
    Send one push notification to an iOS device via APNs.
    Returns True if sent successfully, False otherwise (config missing or APNs error).
    """
    bundle_id = settings.apns_bundle_id
    if not bundle_id:
        logger.debug("APNS_BUNDLE_ID not set; skipping push")
        return False
    jwt_token = _provider_jwt()
    if not jwt_token:
        logger.debug("APNs not configured (key/team/bundle); skipping push")
        return False
    base_url = APNS_SANDBOX if settings.apns_use_sandbox else APNS_PRODUCTION
    url = f"{base_url}/3/device/{device_token}"
    headers = {
        "authorization": f"bearer {jwt_token}",
        "apns-topic": bundle_id,
        "apns-push-type": "alert",
        "apns-priority": "10",
    }
    payload = {
        "aps": {
            "alert": {"title": title, "body": body},
            "sound": "default",
        },
        **(data or {}),
    }
    try:
        resp = client.post(url, json=payload, headers=headers)
    except httpx.HTTPError as e:
        logger.warning("APNs request failed: %s", e, exc_info=True)
        return False
    if resp.status_code == 200:
        return True
    if resp.status_code == 403 and _rejection_reason(resp) == "ExpiredProviderToken":
        forget_provider_token()
    logger.warning("APNs returned %s for token %s...: %s", resp.status_code, device_token[:20], resp.text)
    return False


def _rejection_reason(resp: httpx.Response) -> str | None:
    try:
        return resp.json().get("reason")
    except (ValueError, AttributeError):
        return None


def push_client() -> httpx.Client:
    return httpx.Client(http2=True, timeout=10.0)


def send_theft_alert_push(
    client: httpx.Client,
    device_token: str,
    message: str,
    report_id: int,
    distance_meters: int,
) -> bool:
    """Push one theft alert: title carries the distance, body the alert message."""
    if distance_meters >= 1000:
        title = f"Theft alert {distance_meters / 1000:.1f} km away"
    else:
        title = f"Theft alert {distance_meters} m away"
    return send_apns(client, device_token, title, message, data={"report_id": report_id})
