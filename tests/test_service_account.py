# tests/test_service_account.py
import base64
import json
from urllib.parse import parse_qs

import httpx
import pytest
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from providers.auth.secret_manager import SecretAccessError, fetch_secret
from providers.auth.service_account import (
    AccessToken,
    AuthExchangeError,
    JWT_BEARER_GRANT,
    build_assertion,
    load_service_account,
    mint_access_token,
)

TOKEN_URI = "https://oauth2.googleapis.com/token"


@pytest.fixture(scope="module")
def rsa_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture
def credential(rsa_key):
    pem = rsa_key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    ).decode("ascii")
    return load_service_account({
        "type": "service_account",
        "project_id": "demo",
        "client_email": "vault@demo.iam.gserviceaccount.com",
        "private_key": pem,
        "token_uri": TOKEN_URI,
    })


def _b64decode(segment: str) -> bytes:
    return base64.urlsafe_b64decode(segment + "=" * (-len(segment) % 4))


def test_assertion_is_signed_rs256_jwt(credential, rsa_key):
    jwt = build_assertion(credential, now=1_700_000_000)
    header_b64, claim_b64, sig_b64 = jwt.split(".")

    assert json.loads(_b64decode(header_b64)) == {"alg": "RS256", "typ": "JWT"}
    claim = json.loads(_b64decode(claim_b64))
    assert claim == {
        "iss": "vault@demo.iam.gserviceaccount.com",
        "scope": "https://www.googleapis.com/auth/cloud-platform",
        "aud": TOKEN_URI,
        "iat": 1_700_000_000,
        "exp": 1_700_003_600,
    }
    assert "=" not in jwt

    rsa_key.public_key().verify(
        _b64decode(sig_b64),
        f"{header_b64}.{claim_b64}".encode("ascii"),
        padding.PKCS1v15(),
        hashes.SHA256(),
    )


@pytest.mark.asyncio
async def test_mint_posts_jwt_bearer_grant(credential):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["form"] = parse_qs(request.content.decode("ascii"))
        return httpx.Response(200, json={"access_token": "ya29.token", "expires_in": 3599, "token_type": "Bearer"})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
        token = await mint_access_token(credential, http_client=http)

    assert token.access_token == "ya29.token"
    assert token.expires_in == 3599
    assert seen["url"] == TOKEN_URI
    assert seen["form"]["grant_type"] == [JWT_BEARER_GRANT]
    assert seen["form"]["assertion"][0].count(".") == 2


@pytest.mark.asyncio
async def test_rejected_exchange_raises_with_provider_description(credential):
    def handler(request):
        return httpx.Response(400, json={"error": "invalid_grant", "error_description": "Invalid JWT Signature."})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
        with pytest.raises(AuthExchangeError) as exc_info:
            await mint_access_token(credential, http_client=http)

    assert "Invalid JWT Signature." in str(exc_info.value)
    assert exc_info.value.status_code == 400


@pytest.mark.asyncio
async def test_rejected_exchange_falls_back_to_error_code(credential):
    def handler(request):
        return httpx.Response(401, json={"error": "unauthorized_client"})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
        with pytest.raises(AuthExchangeError, match="unauthorized_client"):
            await mint_access_token(credential, http_client=http)


def test_load_service_account_from_file_and_json(tmp_path, credential):
    doc = {"client_email": credential.client_email, "private_key": credential.private_key, "extra": 1}
    path = tmp_path / "key.json"
    path.write_text(json.dumps(doc), encoding="utf-8")

    from_file = load_service_account(str(path))
    from_text = load_service_account(json.dumps(doc))
    assert from_file == from_text
    assert from_file.token_uri == TOKEN_URI


def test_access_token_expiry():
    token = AccessToken("t", expires_in=3600, issued_at=1000.0)
    assert not token.is_expired(now=1000.0 + 3000)
    assert token.is_expired(now=1000.0 + 3400)


@pytest.mark.asyncio
async def test_fetch_secret_decodes_payload():
    payload = base64.b64encode(b"veo-api-key").decode("ascii")

    def handler(request):
        assert request.headers["authorization"] == "Bearer tok"
        assert request.url.path == "/v1/projects/demo/secrets/GCP-VEO-PROMPT/versions/latest:access"
        return httpx.Response(200, json={"name": "x", "payload": {"data": payload}})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
        assert await fetch_secret("tok", "demo", "GCP-VEO-PROMPT", http_client=http) == "veo-api-key"


@pytest.mark.asyncio
async def test_fetch_secret_failure_carries_provider_message():
    def handler(request):
        return httpx.Response(403, json={"error": {"code": 403, "message": "Permission denied on secret"}})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
        with pytest.raises(SecretAccessError, match="Permission denied on secret") as exc_info:
            await fetch_secret("tok", "demo", "missing", http_client=http)
    assert exc_info.value.status_code == 403
    assert exc_info.value.secret == "missing"
