"""Drive a paginated endpoint through the client, one logical request per page."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any, AsyncIterator, Callable, Mapping, Sequence

from .models import RequestSpec
from .outcomes import RequestOutcome

if TYPE_CHECKING:
    from .client import ResilientHttpClient


@dataclass(frozen=True)
class PaginationState:
    page_index: int = 0
    items_so_far: int = 0
    last_page: Any = None
    last_request: RequestSpec | None = None


NextRequest = Callable[[Any, PaginationState], "RequestSpec | None"]
ExtractItems = Callable[[Any], Sequence[Any]]


@dataclass
class PaginationResult:
    items: list[Any] = field(default_factory=list)
    pages: int = 0
    page_outcomes: list[RequestOutcome] = field(default_factory=list)
    truncated: bool = False
    truncation_reason: str | None = None


def _with_query(spec: RequestSpec, params: Mapping[str, Any]) -> RequestSpec:
    query = dict(spec.query or {})
    query.update(params)
    return replace(spec, query=query, correlation=None)


def offset_limit(
    page_size: int,
    *,
    extract_items: ExtractItems,
    offset_param: str = "offset",
    limit_param: str = "limit",
) -> NextRequest:
    """Advance ``offset`` by ``page_size`` until a page comes back empty."""

    def next_request(page: Any, state: PaginationState) -> RequestSpec | None:
        if state.last_request is None or not extract_items(page):
            return None
        return _with_query(
            state.last_request,
            {offset_param: state.page_index * page_size, limit_param: page_size},
        )

    return next_request


def cursor(
    get_next_cursor: Callable[[Any], str | None],
    *,
    cursor_param: str = "cursor",
) -> NextRequest:
    """Follow a server-provided cursor until it is missing."""

    def next_request(page: Any, state: PaginationState) -> RequestSpec | None:
        token = get_next_cursor(page)
        if not token or state.last_request is None:
            return None
        return _with_query(state.last_request, {cursor_param: token})

    return next_request


async def paginate_iter(
    client: ResilientHttpClient,
    initial: RequestSpec,
    next_request: NextRequest,
    *,
    max_pages: int | None = None,
) -> AsyncIterator[Any]:
    state = PaginationState()
    spec: RequestSpec | None = initial
    while spec is not None:
        page = await client.execute(spec)
        yield page
        state = PaginationState(
            page_index=state.page_index + 1,
            items_so_far=state.items_so_far,
            last_page=page,
            last_request=spec,
        )
        if max_pages is not None and state.page_index >= max_pages:
            return
        spec = next_request(page, state)


async def paginate_all(
    client: ResilientHttpClient,
    initial: RequestSpec,
    next_request: NextRequest,
    *,
    extract_items: ExtractItems,
    max_pages: int | None = None,
    max_items: int | None = None,
) -> PaginationResult:
    """Collect items from every page, stopping early at ``max_pages``/``max_items``."""
    result = PaginationResult()
    state = PaginationState()
    spec: RequestSpec | None = initial
    while spec is not None:
        execution = await client.send(spec)
        page = execution.value
        result.items.extend(extract_items(page))
        result.pages += 1
        result.page_outcomes.append(execution.outcome)
        state = PaginationState(
            page_index=state.page_index + 1,
            items_so_far=len(result.items),
            last_page=page,
            last_request=spec,
        )
        if max_items is not None and len(result.items) >= max_items:
            del result.items[max_items:]
            result.truncated = True
            result.truncation_reason = "max_items"
            break
        spec = next_request(page, state)
        if spec is not None and max_pages is not None and result.pages >= max_pages:
            result.truncated = True
            result.truncation_reason = "max_pages"
            break
    return result
