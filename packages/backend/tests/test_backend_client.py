"""Backend client tests — queries, RPCs, identity and shared resources.

Learn: Tests cover:
1. Query params and headers sent for a filtered SELECT
2. Exact counts read back from Content-Range
3. maybe_single() collapsing rows, and rejecting more than one
4. Error bodies mapped to BackendError (message, code, status)
5. Transport failures and non-JSON bodies surface as results, never exceptions
6. get_user() with and without a token
7. with_token() views never close the shared pool or feed
"""

import json

import httpx
import pytest

from conftest import TOKEN, USER_ID, FakeChangeFeed
from eduverse.backend.client import BackendClient
from eduverse.backend.errors import BackendError
from eduverse.backend.query import parse_content_range


# ═══════════════════════════════════════════════════════════
# Queries
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_select_sends_filters_and_modifiers(backend, fake_backend):
    fake_backend.rows["user_roles"] = [{"role": "teacher"}]

    result = await (
        backend.table("user_roles")
        .select("role, school_id")
        .eq("user_id", USER_ID)
        .in_("role", ["teacher", "principal"])
        .is_("revoked_at", None)
        .order("role", ascending=False)
        .limit(5)
        .execute()
    )

    assert result.ok
    assert result.data == [{"role": "teacher"}]
    (request,) = fake_backend.requests_to("/rest/v1/user_roles")
    assert request.method == "GET"
    assert list(request.url.params.multi_items()) == [
        ("select", "role,school_id"),
        ("user_id", f"eq.{USER_ID}"),
        ("role", "in.(teacher,principal)"),
        ("revoked_at", "is.null"),
        ("order", "role.desc"),
        ("limit", "5"),
    ]


@pytest.mark.asyncio
async def test_anonymous_requests_use_anon_key(backend, fake_backend):
    await backend.table("schools").select().execute()

    (request,) = fake_backend.requests_to("/rest/v1/schools")
    assert request.headers["apikey"] == "anon-key"
    assert request.headers["authorization"] == "Bearer anon-key"


@pytest.mark.asyncio
async def test_user_requests_send_bearer_token(user_backend, fake_backend):
    await user_backend.table("schools").select().execute()

    (request,) = fake_backend.requests_to("/rest/v1/schools")
    assert request.headers["apikey"] == "anon-key"
    assert request.headers["authorization"] == f"Bearer {TOKEN}"


@pytest.mark.asyncio
async def test_head_count(backend, fake_backend):
    fake_backend.counts["app_notifications"] = 12

    result = await backend.table("app_notifications").select("id", count="exact", head=True).execute()

    assert result.count == 12
    assert result.data is None


@pytest.mark.asyncio
async def test_get_with_count_returns_rows_and_total(backend, fake_backend):
    fake_backend.rows["schools"] = [{"id": "a"}, {"id": "b"}]

    result = await backend.table("schools").select("id", count="exact").execute()

    assert result.count == 2
    assert len(result.data) == 2


@pytest.mark.asyncio
async def test_unknown_count_mode_rejected(backend):
    with pytest.raises(ValueError):
        backend.table("schools").select("id", count="fuzzy")


@pytest.mark.parametrize(
    "header, expected",
    [("0-24/57", 57), ("*/0", 0), ("0-9/*", None), (None, None), ("garbage", None)],
)
def test_parse_content_range(header, expected):
    assert parse_content_range(header) == expected


# ═══════════════════════════════════════════════════════════
# maybe_single
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_maybe_single_returns_row_or_none(backend, fake_backend):
    fake_backend.rows["platform_super_admins"] = [{"user_id": USER_ID}]
    one = await backend.table("platform_super_admins").select().maybe_single().execute()
    assert one.data == {"user_id": USER_ID}

    fake_backend.rows["platform_super_admins"] = []
    none = await backend.table("platform_super_admins").select().maybe_single().execute()
    assert none.ok
    assert none.data is None


@pytest.mark.asyncio
async def test_maybe_single_rejects_multiple_rows(backend, fake_backend):
    fake_backend.rows["school_memberships"] = [{"id": 1}, {"id": 2}]

    result = await backend.table("school_memberships").select().maybe_single().execute()

    assert result.error.code == "PGRST116"
    assert result.error.status == 406


# ═══════════════════════════════════════════════════════════
# Errors
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_error_body_mapped(backend, fake_backend):
    fake_backend.failures["/rest/v1/user_roles"] = (
        403,
        {"message": "permission denied for table user_roles", "code": "42501"},
    )

    result = await backend.table("user_roles").select().execute()

    assert not result.ok
    assert result.error.message == "permission denied for table user_roles"
    assert result.error.code == "42501"
    assert result.error.status == 403


def test_error_from_non_json_response():
    response = httpx.Response(502, text="Bad Gateway")
    error = BackendError.from_response(response)
    assert error.status == 502
    assert error.message


@pytest.mark.asyncio
async def test_transport_error_becomes_result(feed):
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    http = httpx.AsyncClient(transport=httpx.MockTransport(refuse), base_url="http://backend.test")
    client = BackendClient(http=http, feed=feed, anon_key="anon-key", access_token=TOKEN)

    query = await client.table("schools").select().execute()
    rpc = await client.rpc("can_manage_staff", {"_school_id": "s1"})
    identity = await client.auth.get_user()

    assert query.error.code == "network"
    assert rpc.error.code == "network"
    assert identity.user is None
    assert identity.error.code == "network"
    assert await client.ping() is False
    await client.aclose()


@pytest.mark.asyncio
async def test_non_json_success_body_becomes_result(user_backend, fake_backend):
    # A proxy answering 200 with an HTML page instead of the backend
    page = "<html><body>Service temporarily unavailable</body></html>"
    fake_backend.failures["/rest/v1/schools"] = (200, page)
    fake_backend.failures["/rest/v1/rpc/can_manage_staff"] = (200, page)
    fake_backend.failures["/auth/v1/user"] = (200, page)

    query = await user_backend.table("schools").select().execute()
    rpc = await user_backend.rpc("can_manage_staff", {"_school_id": "s1"})
    identity = await user_backend.auth.get_user()

    assert query.error.code == "invalid_response"
    assert query.error.status == 200
    assert rpc.error.code == "invalid_response"
    assert identity.user is None
    assert identity.error.code == "invalid_response"


# ═══════════════════════════════════════════════════════════
# RPC
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_rpc_posts_params(user_backend, fake_backend):
    fake_backend.rpcs["can_manage_staff"] = True

    result = await user_backend.rpc("can_manage_staff", {"_school_id": "s1"})

    assert result.data is True
    (request,) = fake_backend.requests_to("/rest/v1/rpc/can_manage_staff")
    assert request.method == "POST"
    assert json.loads(request.content) == {"_school_id": "s1"}


# ═══════════════════════════════════════════════════════════
# Identity
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_get_user_with_token(user_backend):
    result = await user_backend.auth.get_user()
    assert result.user.id == USER_ID
    assert result.user.email == "teacher@example.com"
    assert result.error is None


@pytest.mark.asyncio
async def test_get_user_rejected_token(user_backend, fake_backend):
    fake_backend.user = None

    result = await user_backend.auth.get_user()

    assert result.user is None
    assert result.error.status == 401
    assert result.error.message == "invalid JWT"


@pytest.mark.asyncio
async def test_get_user_without_token_makes_no_request(backend, fake_backend):
    result = await backend.auth.get_user()

    assert result.user is None
    assert result.error is None
    assert fake_backend.requests == []


# ═══════════════════════════════════════════════════════════
# Shared resources
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_token_view_does_not_close_shared_resources(fake_backend):
    feed = FakeChangeFeed()
    http = httpx.AsyncClient(transport=httpx.MockTransport(fake_backend), base_url="http://backend.test")
    root = BackendClient(http=http, feed=feed, anon_key="anon-key")

    async with root.with_token(TOKEN) as view:
        assert view.http is root.http
        assert view.feed is root.feed

    assert feed.closed is False
    assert http.is_closed is False

    await root.aclose()
    assert feed.closed is True
    assert http.is_closed is True


@pytest.mark.asyncio
async def test_ping(backend):
    assert await backend.ping() is True
