import httpx
import pytest

from cowtracker.auth import IdentityClient
from cowtracker.core.errors import Upstream


def client_for(handler):
    return IdentityClient("https://id.example.com/", "anon-key", transport=httpx.MockTransport(handler))


async def test_valid_token_returns_identity():
    seen = {}

    def handler(request: httpx.Request):
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["authorization"]
        seen["apikey"] = request.headers["apikey"]
        return httpx.Response(200, json={"id": "auth-worker", "email": "worker@finca.co"})

    identity = await client_for(handler).get_user("tok")

    assert identity == {"id": "auth-worker", "email": "worker@finca.co"}
    assert seen == {
        "url": "https://id.example.com/auth/v1/user",
        "auth": "Bearer tok",
        "apikey": "anon-key",
    }


@pytest.mark.parametrize("status_code", [401, 403])
async def test_rejected_token_returns_none(status_code):
    client = client_for(lambda request: httpx.Response(status_code, json={"msg": "bad jwt"}))

    assert await client.get_user("tok") is None


async def test_identity_without_id_returns_none():
    client = client_for(lambda request: httpx.Response(200, json={}))

    assert await client.get_user("tok") is None


async def test_provider_error_is_upstream():
    client = client_for(lambda request: httpx.Response(502, text="bad gateway"))

    with pytest.raises(Upstream):
        await client.get_user("tok")


async def test_unreachable_provider_is_upstream():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(Upstream):
        await client_for(handler).get_user("tok")
