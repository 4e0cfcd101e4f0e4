"""
List-Filter-Edit controller shared by every dashboard screen.

A controller owns the client-side view of one remote collection: the current
query, the page or cursor position and the last page of items the server
returned. Reads replace that state only when they succeed. Mutations go to
the server first and are followed by a re-fetch; nothing is applied
optimistically, so a failed mutation leaves the view untouched.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import (
    Any, Awaitable, Callable, Dict, Generic, List, Literal, Optional, Sequence, Set, Type, TypeVar, Union,
)

from pydantic import BaseModel, ValidationError

from api_client import ApiError, UploadFile
from notifications import Notifier
from schemas import ListQuery, Page

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)
F = TypeVar("F", bound=BaseModel)

Pagination = Literal["offset", "cursor", "none"]
Fetcher = Callable[[ListQuery, int, Optional[str]], Awaitable[Page]]
Payload = Dict[str, Any]


class FormValidationError(Exception):
    def __init__(self, errors: Dict[str, str]):
        super().__init__("; ".join(f"{k}: {v}" for k, v in errors.items()))
        self.errors = errors


def validate_form(schema: Type[F], data: Any) -> F:
    try:
        return schema.model_validate(data)
    except ValidationError as exc:
        errors = {}
        for error in exc.errors():
            field = ".".join(str(part) for part in error["loc"]) or "__root__"
            errors.setdefault(field, error["msg"])
        raise FormValidationError(errors) from exc


class Debouncer:
    """Runs ``action`` once the triggers have been quiet for ``delay`` seconds.

    Only the timer is ever cancelled. Once the action starts it runs to
    completion.
    """

    def __init__(self, delay: float, action: Callable[[], Awaitable[Any]]):
        self.delay = delay
        self.action = action
        self._timer: Optional[asyncio.TimerHandle] = None
        self._inflight: Set[asyncio.Future] = set()

    @property
    def pending(self) -> bool:
        return self._timer is not None

    def trigger(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
        self._timer = asyncio.get_running_loop().call_later(self.delay, self._fire)

    def _fire(self) -> None:
        self._timer = None
        task = asyncio.ensure_future(self.action())
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    async def wait(self) -> None:
        loop = asyncio.get_running_loop()
        while self._timer is not None or self._inflight:
            if self._timer is not None:
                await asyncio.sleep(max(0.0, self._timer.when() - loop.time()))
                await asyncio.sleep(0)
                continue
            await asyncio.gather(*list(self._inflight), return_exceptions=True)


@dataclass
class PendingUpload:
    """Files to upload before the entity is saved, and where their paths go.

    ``visibility`` may be a function of the validated payload.
    """

    files: Sequence[UploadFile]
    attach: Callable[[Payload, List[str]], None]
    visibility: Union[str, Callable[[Payload], str]] = "public"

    def visibility_for(self, payload: Payload) -> str:
        if callable(self.visibility):
            return self.visibility(payload)
        return self.visibility


class ResourceController(Generic[T]):
    def __init__(
        self,
        name: str,
        fetch: Fetcher,
        model: Type[T],
        notifier: Notifier,
        pagination: Pagination = "offset",
        local_filter: Optional[Callable[[T, ListQuery], bool]] = None,
        local_fields: Sequence[str] = (),
        debounce_seconds: float = 0.3,
    ):
        self.name = name
        self.fetch = fetch
        self.model = model
        self.notifier = notifier
        self.pagination = pagination
        self.local_filter = local_filter
        self.local_fields = frozenset(local_fields)
        self.query = ListQuery()
        self.items: List[T] = []
        self.page = 0
        self.total_pages = 1
        self.has_more = False
        self.cursor: Optional[str] = None
        self.loading = False
        self.error: Optional[str] = None
        self.error_status: Optional[int] = None
        self.loaded = False
        self.debouncer = Debouncer(debounce_seconds, self.refresh)

    # --- reads ---

    async def _load(self, page: int, cursor: Optional[str], append: bool) -> bool:
        self.loading = True
        try:
            result = await self.fetch(self.query, page, cursor)
            items = [self.model.model_validate(item) for item in result.items]
        except ApiError as exc:
            self.error = exc.detail or f"Failed to fetch {self.name}"
            self.notifier.error(self.error)
            return False
        except ValidationError as exc:
            logger.warning("Unexpected %s payload: %s", self.name, exc)
            self.error = f"Failed to fetch {self.name}"
            self.notifier.error(self.error)
            return False
        finally:
            self.loading = False

        self.error = None
        self.loaded = True
        self.items = self.items + items if append else items
        self.page = page
        self.total_pages = result.total_pages
        self.has_more = result.has_more
        self.cursor = result.next_cursor
        return True

    async def refresh(self) -> bool:
        if self.pagination == "cursor":
            return await self._load(0, None, append=False)
        return await self._load(self.page, None, append=False)

    async def load_more(self) -> bool:
        if self.pagination != "cursor" or not self.has_more or self.loading:
            return False
        return await self._load(self.page + 1, self.cursor, append=True)

    async def next_page(self) -> bool:
        if self.pagination != "offset" or not self.can_next:
            return False
        return await self._load(self.page + 1, None, append=False)

    async def previous_page(self) -> bool:
        if self.pagination != "offset" or not self.can_previous:
            return False
        return await self._load(self.page - 1, None, append=False)

    async def go_to(self, page: int) -> bool:
        if self.pagination != "offset" or page < 0:
            return False
        return await self._load(page, None, append=False)

    @property
    def can_previous(self) -> bool:
        return self.pagination == "offset" and self.page > 0

    @property
    def can_next(self) -> bool:
        if self.pagination == "none":
            return False
        return self.has_more

    @property
    def visible_items(self) -> List[T]:
        if self.local_filter is None:
            return list(self.items)
        return [item for item in self.items if self.local_filter(item, self.query)]

    def set_filters(self, **changes: Any) -> None:
        """Apply filter changes and schedule a debounced re-fetch from the first page.

        Changes confined to ``local_fields`` only re-filter the items already held.
        Invalid values raise ``FormValidationError`` and leave the query as it was.
        """
        query = validate_form(ListQuery, {**self.query.model_dump(), **changes})
        changed = {k for k in changes if getattr(self.query, k) != getattr(query, k)}
        self.query = query
        if not changed or changed <= self.local_fields:
            return
        self.page = 0
        self.cursor = None
        self.debouncer.trigger()

    def reset_filters(self) -> None:
        self.set_filters(**ListQuery().model_dump())

    # --- writes ---

    async def mutate(self, send: Callable[[], Awaitable[Any]], success: str, failure: str) -> bool:
        try:
            await send()
        except ApiError as exc:
            self.error = exc.detail or failure
            self.error_status = exc.status_code
            self.notifier.error(self.error)
            return False
        self.error = None
        self.error_status = None
        self.notifier.success(success)
        await self.refresh()
        return True

    async def submit(
        self,
        schema: Type[F],
        data: Any,
        send: Callable[[Payload], Awaitable[Any]],
        success: str,
        failure: str,
    ) -> bool:
        """Validate ``data`` against ``schema`` and send it. Invalid forms raise
        ``FormValidationError`` before any request is made."""
        payload = validate_form(schema, data).model_dump(by_alias=True, mode="json")
        return await self.mutate(lambda: send(payload), success, failure)

    async def moderate(
        self,
        schema: Type[F],
        data: Payload,
        send: Callable[[Payload], Awaitable[Any]],
        success: str,
        failure: str,
    ) -> bool:
        """Confirmation step for moderation actions. Without a reason it does nothing."""
        self.error = None
        self.error_status = None
        reason = data.get("reason")
        if not isinstance(reason, str) or not reason.strip():
            return False
        return await self.submit(schema, data, send, success, failure)

    async def submit_with_uploads(
        self,
        schema: Type[F],
        data: Any,
        uploads: Sequence[PendingUpload],
        upload: Callable[[Sequence[UploadFile], str], Awaitable[List[str]]],
        discard: Callable[[List[str]], Awaitable[Any]],
        send: Callable[[Payload], Awaitable[Any]],
        success: str,
        failure: str,
    ) -> bool:
        """Upload files, reference their paths in the payload, then save.

        If saving fails the uploaded files are deleted again.
        """
        payload = validate_form(schema, data).model_dump(by_alias=True, mode="json")
        uploaded: List[str] = []
        try:
            for pending in uploads:
                if not pending.files:
                    continue
                paths = await upload(pending.files, pending.visibility_for(payload))
                uploaded.extend(paths)
                pending.attach(payload, paths)
        except ApiError as exc:
            self.notifier.error(exc.detail or "Failed to upload files")
            await self._discard(discard, uploaded)
            return False

        saved = await self.mutate(lambda: send(payload), success, failure)
        if not saved:
            await self._discard(discard, uploaded)
        return saved

    async def _discard(self, discard: Callable[[List[str]], Awaitable[Any]], paths: List[str]) -> None:
        if not paths:
            return
        try:
            await discard(paths)
        except ApiError as exc:
            logger.error("Could not remove orphaned uploads %s: %s", paths, exc.message)

    def as_view(self) -> Dict[str, Any]:
        return {
            "items": [item.model_dump(mode="json") for item in self.visible_items],
            "query": self.query.model_dump(),
            "page": self.page,
            "total_pages": self.total_pages,
            "has_more": self.has_more,
            "can_previous": self.can_previous,
            "can_next": self.can_next,
            "loading": self.loading,
            "error": self.error,
        }
