"""
Global id codec.

Upstream ids look like ``gid://shopify/Product/123``; callers only ever see
the trailing integer. Decoding is total: anything malformed maps to None.
"""

import re
from typing import NamedTuple

from shopql.graphql.types import ResourceKind
from shopql.services.errors import ValidationError

GID_NAMESPACE = "gid://shopify"

_GID_PATTERN = re.compile(
    r"^gid://(?P<namespace>[A-Za-z0-9_-]+)/(?P<kind>[A-Za-z]+)/(?P<numeric>[0-9]+)(?:\?.*)?$"
)


class GlobalId(NamedTuple):
    namespace: str
    kind: str
    numeric: int


def to_global_id(kind: ResourceKind | str, numeric_id: int | str) -> str:
    """Encode a caller id; raises ValidationError for anything but a positive integer."""
    kind_name = kind.value if isinstance(kind, ResourceKind) else str(kind)
    text = str(numeric_id).strip()
    if isinstance(numeric_id, bool) or not re.fullmatch(r"[0-9]+", text) or int(text) <= 0:
        raise ValidationError(f"Invalid {kind_name} id: {numeric_id!r}")
    return f"{GID_NAMESPACE}/{kind_name}/{int(text)}"


def parse_global_id(value: object) -> GlobalId | None:
    if not isinstance(value, str):
        return None
    match = _GID_PATTERN.match(value.strip())
    if not match:
        return None
    return GlobalId(
        namespace=match.group("namespace"),
        kind=match.group("kind"),
        numeric=int(match.group("numeric")),
    )


def to_numeric_id(global_id: object) -> int | None:
    """Decode a global id to its integer part, None when unresolvable."""
    parsed = parse_global_id(global_id)
    return parsed.numeric if parsed else None
