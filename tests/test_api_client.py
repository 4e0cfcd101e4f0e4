import asyncio

import httpx
import pytest

from api_client import GENERIC_ERROR, ApiClient, ApiError, TokenStore, extract_message


def _response(status: int, **kwargs) -> httpx.Response:
    return httpx.Response(status, request=httpx.Request("GET", "http://api.test/x"), **kwargs)


@pytest.mark.parametrize(
    "body, expected",
    [
        ({"message": "Email already registered"}, "Email already registered"),
        ({"error": "Forbidden"}, "Forbidden"),
        ({"error": {"error": "Invalid credentials"}}, "Invalid credentials"),
        ({"detail": [{"loc": ["body", "name"], "msg": "Field required"}]}, "Field required"),
        ({"status": "nope"}, None),
    ],
)
def test_extract_message_reads_common_error_shapes(body, expected) -> None:
    assert extract_message(_response(400, json=body)) == expected


def test_extract_message_uses_plain_text_body() -> None:
    assert extract_message(_response(500, text="upstream exploded")) == "upstream exploded"
    assert extract_message(_response(500, text="")) is None


def test_api_error_falls_back_to_generic_message() -> None:
    err = ApiError(None, 500)
    assert err.detail is None
    assert err.message == GENERIC_ERROR
    assert str(err) == GENERIC_ERROR


def test_token_store_round_trip(tmp_path) -> None:
    store = TokenStore(tmp_path / "nested" / "token.json")
    assert store.load() is None
    store.save("abc")
    assert store.load() == "abc"
    store.clear()
    assert store.load() is None
    store.clear()


def test_token_store_ignores_corrupt_file(tmp_path) -> None:
    path = tmp_path / "token.json"
    path.write_text("{not json", encoding="utf-8")
    assert TokenStore(path).load() is None


def test_bearer_token_attached_to_every_request(dashboard, store) -> None:
    dashboard.api.token_store.save("tok-xyz")

    async def scenario():
        await dashboard.admin.get_user_stats()
        await dashboard.vendor.get_product("p1")

    asyncio.run(scenario())
    assert store.auth_headers == ["Bearer tok-xyz", "Bearer tok-xyz"]


def test_no_token_sends_no_authorization_header(dashboard, store) -> None:
    asyncio.run(dashboard.admin.get_user_stats())
    assert store.auth_headers == [None]


def test_response_envelope_is_unwrapped(dashboard) -> None:
    users = asyncio.run(dashboard.admin.get_user_stats())
    assert isinstance(users, list)
    assert users[0]["email"] == "asha@example.com"


def test_server_error_raises_api_error_with_body_message(dashboard, store) -> None:
    store.fail("GET", "/admin/user-stats", 403, {"message": "Admins only"})
    with pytest.raises(ApiError) as info:
        asyncio.run(dashboard.admin.get_user_stats())
    assert info.value.status_code == 403
    assert info.value.detail == "Admins only"


def test_transport_failure_raises_api_error_without_status(tmp_path) -> None:
    def refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = ApiClient("http://api.test/api/v1", TokenStore(tmp_path / "t.json"), httpx.MockTransport(refuse))
    with pytest.raises(ApiError) as info:
        asyncio.run(client.get("/admin/user-stats"))
    assert info.value.status_code is None
    assert info.value.detail is None


def test_empty_params_are_not_sent(tmp_path) -> None:
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.url)
        return httpx.Response(200, json={"data": []})

    client = ApiClient("http://api.test/api/v1", TokenStore(tmp_path / "t.json"), httpx.MockTransport(handler))
    asyncio.run(client.get("/vendor-orders", params={"page": 0, "status": "", "search": None}))
    assert seen[0].path == "/api/v1/vendor-orders"
    assert dict(seen[0].params) == {"page": "0"}


def test_upload_posts_multipart_and_returns_paths(dashboard, store) -> None:
    paths = asyncio.run(
        dashboard.admin.upload_course_files([("notes.pdf", b"%PDF", "application/pdf")], "private")
    )
    assert paths == ["uploads/private/notes.pdf"]
    assert store.uploads == [("uploads/private/notes.pdf", "private")]


def test_download_returns_blob_and_filename(dashboard) -> None:
    content, filename, media_type = asyncio.run(dashboard.admin.download_note("c1", 0))
    assert content.startswith(b"%PDF")
    assert filename == "week1.pdf"
    assert media_type.startswith("application/pdf")
