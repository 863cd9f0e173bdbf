from urllib.parse import parse_qs, urlparse

import pytest

from theftwatch.config import settings
from theftwatch.core.errors import AuthorizationError
from theftwatch.services import storage


def test_split_ref():
    assert storage.split_ref("evidence/u1/photo.jpg") == ("evidence", "u1/photo.jpg")
    with pytest.raises(ValueError):
        storage.split_ref("no-path")


def test_public_bucket_gets_stable_url():
    url = storage.resolve_photo_url("report-photos/u1/a b.jpg")
    assert url == f"{settings.storage_public_base_url}/public/report-photos/u1/a%20b.jpg"


def test_full_urls_pass_through():
    assert storage.resolve_photo_url("https://cdn.example.com/x.jpg") == "https://cdn.example.com/x.jpg"
    assert storage.resolve_photo_url(None) is None


def test_private_bucket_signed_url_round_trip():
    url = storage.resolve_photo_url("evidence/u1/photo.jpg")

    parsed = urlparse(url)
    assert parsed.path.endswith("/sign/evidence/u1/photo.jpg")
    (token,) = parse_qs(parsed.query)["token"]
    assert storage.verify_signed_token(token) == ("evidence", "u1/photo.jpg")


def test_token_signed_with_other_secret_rejected():
    forged = storage.jwt.encode(
        {"bucket": "id-proofs", "path": "u1/id.png", "aud": "storage", "exp": 4102444800},
        "not-the-signing-secret-for-storage-links",
        algorithm="HS256",
    )
    with pytest.raises(AuthorizationError):
        storage.verify_signed_token(forged)


def test_expired_token_rejected():
    expired = storage.jwt.encode(
        {"bucket": "evidence", "path": "u1/photo.jpg", "aud": "storage", "iat": 0, "exp": 60},
        settings.storage_signing_secret,
        algorithm="HS256",
    )
    with pytest.raises(AuthorizationError):
        storage.verify_signed_token(expired)


def test_ttl_is_clamped():
    url = storage.create_signed_url("evidence", "u1/photo.jpg", ttl_seconds=5)
    token = parse_qs(urlparse(url).query)["token"][0]

    claims = storage.jwt.decode(
        token, settings.storage_signing_secret, algorithms=["HS256"], audience="storage"
    )
    assert claims["exp"] - claims["iat"] == 60


def test_missing_secret_degrades_to_raw_reference(monkeypatch):
    monkeypatch.setattr(settings, "storage_signing_secret", "")

    assert storage.resolve_photo_url("evidence/u1/photo.jpg") == "evidence/u1/photo.jpg"
    with pytest.raises(AuthorizationError):
        storage.verify_signed_token("anything")
