"""
QueryBuilder - Renders minimal GraphQL documents from a QueryPlan.

The plan is resolved first (field selection, limit clamping, cursor
synthesis), then rendered through the Selection tree, so the same inputs
always produce the same document text.
"""

import base64
import json
from typing import Iterable

from loguru import logger

from shopql.graphql.fields import field_set_for
from shopql.graphql.types import SUB_RESOURCES, QueryMode, QueryPlan, ResourceKind, Selection, sel
from shopql.services.errors import ValidationError

DEFAULT_LIMIT = 50
MAX_LIMIT = 250

PAGE_INFO = sel("pageInfo", "hasNextPage", "hasPreviousPage", "startCursor", "endCursor")


def quote(value: str) -> str:
    """GraphQL string literal; JSON escaping is a valid subset."""
    return json.dumps(value)


def offset_to_cursor(offset: int | None) -> str | None:
    """
    Synthesize a cursor from an offset.

    Emulates offset paging with a Relay-style ``arrayconnection`` cursor.
    Upstream cursors are opaque, so this is best effort and not true random
    access; callers that need stable paging should follow ``end_cursor``.
    """
    if not offset or offset <= 0:
        return None
    return base64.b64encode(f"arrayconnection:{offset}".encode()).decode()


def clamp_limit(limit: int | None, default: int = DEFAULT_LIMIT, maximum: int = MAX_LIMIT) -> int:
    if limit is None:
        return default
    return max(1, min(int(limit), maximum))


def plan_query(
    kind: ResourceKind,
    mode: QueryMode = QueryMode.LIST,
    limit: int | None = None,
    cursor: str | None = None,
    offset: int | None = None,
    filter_query: str | None = None,
    fields: Iterable[str] = (),
    global_id: str | None = None,
    sub_resource: str | None = None,
    default_limit: int = DEFAULT_LIMIT,
    max_limit: int = MAX_LIMIT,
) -> QueryPlan:
    """
    Resolve request parameters into an immutable QueryPlan.

    Single-item reads always carry the large fields; a field list on a
    single read only narrows the default fields. Sub-resource reads are
    planned as lists nested under the parent item.
    """
    requested = tuple(f.strip() for f in fields if f and f.strip())

    if sub_resource:
        if (kind, sub_resource) not in SUB_RESOURCES:
            raise ValidationError(f"Unknown sub-resource '{sub_resource}' for {kind.plural}")
        if not global_id:
            raise ValidationError(f"Sub-resource '{sub_resource}' requires a {kind.singular} id")
        if filter_query:
            logger.debug(f"Ignoring filter on {kind.plural}.{sub_resource}: not supported upstream")
            filter_query = None
        mode = QueryMode.LIST
    elif mode == QueryMode.SINGLE and not global_id:
        raise ValidationError(f"Single {kind.singular} query requires an id")

    include_large = mode == QueryMode.SINGLE
    selections = field_set_for(kind, sub_resource).select(requested, include_large=include_large)

    return QueryPlan(
        kind=kind,
        mode=mode,
        selections=selections,
        limit=clamp_limit(limit, default_limit, max_limit),
        cursor=cursor or offset_to_cursor(offset),
        filter_query=filter_query or None,
        global_id=global_id,
        sub_resource=sub_resource,
        requested_fields=requested,
    )


def connection(name: str, plan: QueryPlan) -> Selection:
    """``name(first, after, query) { pageInfo edges { cursor node } }``"""
    args: list[tuple[str, str]] = [("first", str(plan.limit))]
    if plan.cursor:
        args.append(("after", quote(plan.cursor)))
    if plan.filter_query:
        args.append(("query", quote(plan.filter_query)))
    return sel(
        name,
        PAGE_INFO,
        sel("edges", "cursor", Selection("node", plan.selections)),
        args=tuple(args),
    )


def operation_name(plan: QueryPlan) -> str:
    if plan.sub_resource:
        return f"get{plan.kind.value}{plan.sub_resource.capitalize()}"
    if plan.mode == QueryMode.SINGLE:
        return f"get{plan.kind.value}"
    return f"get{plan.kind.value}s"


def build_query(plan: QueryPlan) -> str:
    """Render the GraphQL document for a plan."""
    id_arg = (("id", quote(plan.global_id or "")),)

    if plan.sub_resource:
        root = sel(plan.kind.singular, "id", connection(plan.sub_resource, plan), args=id_arg)
    elif plan.mode == QueryMode.SINGLE:
        root = Selection(plan.kind.singular, plan.selections, id_arg)
    else:
        root = connection(plan.kind.plural, plan)

    return f"query {operation_name(plan)} {{\n{root.render(1)}\n}}"
