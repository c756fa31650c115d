"""
Core types shared by the query builder, filter translator and normalizer.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator


class ResourceKind(str, Enum):
    """Upstream resource kinds exposed as REST resources."""

    PRODUCT = "Product"
    ORDER = "Order"
    CUSTOMER = "Customer"
    COLLECTION = "Collection"

    @property
    def plural(self) -> str:
        """Connection root field, also the REST resource name and cache namespace."""
        return f"{self.value.lower()}s"

    @property
    def singular(self) -> str:
        """Single-item root field."""
        return self.value.lower()

    @classmethod
    def from_resource(cls, name: str) -> "ResourceKind":
        """Resolve a REST resource name ('products', 'order', 'Customer', ...)."""
        normalized = name.strip().lower()
        for kind in cls:
            if normalized in (kind.plural, kind.singular):
                return kind
        raise ValueError(f"Unknown resource: {name}")


class QueryMode(str, Enum):
    LIST = "list"
    SINGLE = "single"


# Sub-resources reachable from a single item, and the kind they return
SUB_RESOURCES: dict[tuple[ResourceKind, str], ResourceKind] = {
    (ResourceKind.PRODUCT, "variants"): ResourceKind.PRODUCT,
    (ResourceKind.COLLECTION, "products"): ResourceKind.PRODUCT,
}


@dataclass(frozen=True)
class Selection:
    """
    One field of a GraphQL selection set.

    ``args`` is an ordered tuple of (name, rendered value) pairs and
    ``children`` the nested selection, empty for scalars.
    """

    name: str
    children: tuple["Selection", ...] = ()
    args: tuple[tuple[str, str], ...] = ()

    def render(self, indent: int = 0) -> str:
        pad = "  " * indent
        head = self.name
        if self.args:
            head += "(" + ", ".join(f"{k}: {v}" for k, v in self.args) + ")"
        if not self.children:
            return f"{pad}{head}"
        inner = "\n".join(child.render(indent + 1) for child in self.children)
        return f"{pad}{head} {{\n{inner}\n{pad}}}"


def sel(name: str, *children: "Selection | str", args: tuple[tuple[str, str], ...] = ()) -> Selection:
    """Shorthand: strings become scalar selections."""
    return Selection(
        name=name,
        children=tuple(Selection(c) if isinstance(c, str) else c for c in children),
        args=args,
    )


@dataclass(frozen=True)
class QueryPlan:
    """Everything needed to render one upstream query."""

    kind: ResourceKind
    mode: QueryMode
    selections: tuple[Selection, ...]
    limit: int = 50
    cursor: str | None = None
    filter_query: str | None = None
    global_id: str | None = None
    sub_resource: str | None = None
    requested_fields: tuple[str, ...] = field(default_factory=tuple)

    @property
    def operation(self) -> str:
        """Operation name used for breakers, cache namespaces and metrics."""
        if self.sub_resource:
            return f"{self.kind.plural}.{self.sub_resource}"
        if self.mode == QueryMode.SINGLE:
            return f"{self.kind.plural}.single"
        return self.kind.plural


class ShopCredentials(BaseModel):
    """Already-resolved credentials for one shop."""

    shop_domain: str
    access_token: str = Field(repr=False)
    api_version: str = "2024-01"

    @field_validator("shop_domain")
    @classmethod
    def _strip_scheme(cls, value: str) -> str:
        return value.replace("https://", "").replace("http://", "").strip().rstrip("/")

    @property
    def graphql_url(self) -> str:
        return f"https://{self.shop_domain}/admin/api/{self.api_version}/graphql.json"


class ResourceRequest(BaseModel):
    """REST-style request as received from the routing layer."""

    resource: str
    id: str | None = None
    sub_resource: str | None = None
    limit: int | None = None
    offset: int | None = None
    cursor: str | None = None
    fields: str | list[str] | None = None
    filter: str | None = None
    ids: str | list[str | int] | None = None
    passthrough: dict[str, Any] = Field(default_factory=dict)

    def field_list(self) -> list[str]:
        if not self.fields:
            return []
        raw = self.fields.split(",") if isinstance(self.fields, str) else self.fields
        return [f.strip() for f in raw if f and f.strip()]

    def id_list(self) -> list[str]:
        if not self.ids:
            return []
        raw = self.ids.split(",") if isinstance(self.ids, str) else self.ids
        return [str(i).strip() for i in raw if str(i).strip()]

    def cache_params(self) -> dict[str, Any]:
        """Parameters that identify the result, used for the cache key."""
        params: dict[str, Any] = {
            "id": self.id,
            "sub_resource": self.sub_resource,
            "limit": self.limit,
            "offset": self.offset,
            "cursor": self.cursor,
            "fields": ",".join(sorted(self.field_list())) or None,
            "filter": self.filter,
            "ids": ",".join(self.id_list()) or None,
        }
        for key, value in self.passthrough.items():
            params.setdefault(key, value)
        return {k: v for k, v in params.items() if v is not None}
