"""
Async HTTP access to the remote marketplace API.

Every request carries the bearer token kept in the local token store. Every
failure, whether the server answered with an error or the request never
completed, surfaces as ``ApiError`` with the best message the response body
offers.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import httpx

logger = logging.getLogger(__name__)

GENERIC_ERROR = "Something went wrong"

# (filename, content, content type)
UploadFile = Tuple[str, bytes, str]


class ApiError(Exception):
    """A failed call. ``detail`` is the server's own message, if it sent one."""

    def __init__(self, detail: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(detail or GENERIC_ERROR)
        self.detail = detail
        self.message = detail or GENERIC_ERROR
        self.status_code = status_code


def extract_message(response: httpx.Response) -> Optional[str]:
    try:
        body = response.json()
    except ValueError:
        text = response.text.strip()
        return text[:200] if text else None

    if not isinstance(body, dict):
        return None
    for key in ("message", "error", "detail"):
        value = body.get(key)
        if isinstance(value, str) and value:
            return value
        if isinstance(value, dict):
            nested = value.get("error") or value.get("message")
            if isinstance(nested, str) and nested:
                return nested
        if isinstance(value, list) and value:
            # FastAPI style validation errors
            first = value[0]
            if isinstance(first, dict) and first.get("msg"):
                return str(first["msg"])
    return None


class TokenStore:
    """Persistent bearer-token storage, one JSON file per dashboard user."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def load(self) -> Optional[str]:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, ValueError):
            logger.warning("Ignoring unreadable token file %s", self.path)
            return None
        token = data.get("token") if isinstance(data, dict) else None
        return token or None

    def save(self, token: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps({"token": token}), encoding="utf-8")

    def clear(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass


def _unwrap(body: Any) -> Any:
    if isinstance(body, dict) and "data" in body:
        return body["data"]
    return body


class ApiClient:
    def __init__(
        self,
        base_url: str,
        token_store: TokenStore,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token_store = token_store
        self._http = httpx.AsyncClient(base_url=self.base_url, transport=transport)

    async def aclose(self) -> None:
        await self._http.aclose()

    def _headers(self) -> Dict[str, str]:
        token = self.token_store.load()
        return {"Authorization": f"Bearer {token}"} if token else {}

    async def _send(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            response = await self._http.request(method, path, headers=self._headers(), **kwargs)
        except httpx.HTTPError as exc:
            logger.warning("%s %s failed: %s", method, path, exc)
            raise ApiError(status_code=None) from exc
        if response.is_error:
            message = extract_message(response)
            logger.warning("%s %s -> %s %s", method, path, response.status_code, message)
            raise ApiError(message, response.status_code)
        return response

    async def request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json: Any = None,
    ) -> Any:
        if params:
            params = {k: v for k, v in params.items() if v not in (None, "")}
        response = await self._send(method, path, params=params or None, json=json)
        if not response.content:
            return None
        try:
            return _unwrap(response.json())
        except ValueError:
            return response.text

    async def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return await self.request("GET", path, params=params)

    async def post(self, path: str, json: Any = None) -> Any:
        return await self.request("POST", path, json=json)

    async def put(self, path: str, json: Any = None) -> Any:
        return await self.request("PUT", path, json=json)

    async def patch(self, path: str, json: Any = None) -> Any:
        return await self.request("PATCH", path, json=json)

    async def delete(self, path: str, json: Any = None) -> Any:
        return await self.request("DELETE", path, json=json)

    async def upload(
        self, path: str, files: Sequence[UploadFile], visibility: str = "public"
    ) -> List[str]:
        """Submit files as multipart form data and return the stored paths."""
        parts = [("files", (name, content, content_type)) for name, content, content_type in files]
        response = await self._send("POST", path, params={"visibility": visibility}, files=parts)
        stored = _unwrap(response.json())
        if isinstance(stored, str):
            return [stored]
        return list(stored or [])

    async def download(self, path: str) -> Tuple[bytes, str, str]:
        response = await self._send("GET", path)
        filename = path.rstrip("/").rsplit("/", 1)[-1]
        disposition = response.headers.get("content-disposition", "")
        if "filename=" in disposition:
            filename = disposition.split("filename=", 1)[1].strip().strip('"')
        media_type = response.headers.get("content-type", "application/octet-stream")
        return response.content, filename, media_type
