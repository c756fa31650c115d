"""
Per-kind field sets.

Each kind has a lightweight default selection and a set of "large" nested
selections that are only fetched when asked for (or on single-item reads).
Callers may name fields either the upstream way (``productType``) or the
flat way (``product_type``).
"""

import re
from dataclasses import dataclass
from typing import Iterable

from shopql.graphql.types import ResourceKind, Selection, sel

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")

ADDRESS = ("address1", "address2", "city", "province", "country", "zip")

IMAGE = ("id", "url", "altText")


def to_snake(name: str) -> str:
    return _CAMEL_BOUNDARY.sub("_", name).lower()


def first(n: int) -> tuple[tuple[str, str], ...]:
    return (("first", str(n)),)


@dataclass(frozen=True)
class LargeField:
    selection: Selection
    triggers: frozenset[str]


@dataclass(frozen=True)
class FieldSet:
    """Default selections plus on-demand large selections for one node type."""

    defaults: tuple[Selection, ...]
    large: tuple[LargeField, ...] = ()
    # flat name -> upstream default field, for names to_snake can't derive
    aliases: tuple[tuple[str, str], ...] = ()

    def names_for(self, selection: Selection) -> set[str]:
        names = {selection.name, to_snake(selection.name)}
        names.update(flat for flat, upstream in self.aliases if upstream == selection.name)
        return names

    def select(self, requested: Iterable[str] = (), include_large: bool = False) -> tuple[Selection, ...]:
        """
        Resolve the selection set for a request.

        Output order follows the field set definition, never the request, so
        the rendered document only depends on *which* fields were asked for.
        """
        wanted = {name.strip() for name in requested if name and name.strip()}

        if wanted:
            chosen = [
                s for s in self.defaults if s.name == "id" or wanted & self.names_for(s)
            ]
        else:
            chosen = list(self.defaults)

        for field in self.large:
            if include_large or wanted & field.triggers:
                chosen.append(field.selection)
        return tuple(chosen)


VARIANT_NODE = (
    "id",
    "title",
    "price",
    "sku",
    "inventoryQuantity",
    sel("selectedOptions", "name", "value"),
)

PRODUCT_FIELDS = FieldSet(
    defaults=tuple(
        sel(name)
        for name in (
            "id",
            "title",
            "handle",
            "vendor",
            "productType",
            "status",
            "createdAt",
            "updatedAt",
            "publishedAt",
            "tags",
        )
    ),
    large=(
        LargeField(sel("description"), frozenset({"description"})),
        LargeField(sel("descriptionHtml"), frozenset({"descriptionHtml", "body_html"})),
        LargeField(
            sel("featuredImage", *IMAGE),
            frozenset({"featuredImage", "featured_image", "image", "images"}),
        ),
        LargeField(
            sel("images", sel("edges", sel("node", *IMAGE)), args=first(10)),
            frozenset({"images"}),
        ),
        LargeField(sel("options", "id", "name", "values"), frozenset({"options"})),
        LargeField(
            sel("variants", sel("edges", sel("node", *VARIANT_NODE)), args=first(100)),
            frozenset({"variants"}),
        ),
    ),
)

# Node selection of the product -> variants sub-resource
VARIANT_FIELDS = FieldSet(
    defaults=(
        sel("id"),
        sel("title"),
        sel("price"),
        sel("sku"),
        sel("inventoryQuantity"),
        sel("taxable"),
        sel("barcode"),
        sel("createdAt"),
        sel("updatedAt"),
        sel("selectedOptions", "name", "value"),
    ),
    aliases=(
        ("option1", "selectedOptions"),
        ("option2", "selectedOptions"),
        ("option3", "selectedOptions"),
    ),
)

ORDER_FIELDS = FieldSet(
    defaults=(
        sel("id"),
        sel("name"),
        sel("email"),
        sel("phone"),
        sel("createdAt"),
        sel("updatedAt"),
        sel("processedAt"),
        sel("displayFinancialStatus"),
        sel("displayFulfillmentStatus"),
        sel("confirmed"),
        sel("totalPrice"),
        sel("subtotalPrice"),
        sel("totalTax"),
        sel("currencyCode"),
        sel("customer", "id", "email", "firstName", "lastName"),
        sel("tags"),
    ),
    large=(
        LargeField(
            sel(
                "lineItems",
                sel(
                    "edges",
                    sel(
                        "node",
                        "id",
                        "title",
                        "quantity",
                        "price",
                        sel("product", "id", "title"),
                        sel("variant", "id", "title", "sku"),
                    ),
                ),
                args=first(100),
            ),
            frozenset({"lineItems", "line_items"}),
        ),
        LargeField(
            sel("billingAddress", *ADDRESS),
            frozenset({"billingAddress", "billing_address", "addresses"}),
        ),
        LargeField(
            sel("shippingAddress", *ADDRESS),
            frozenset({"shippingAddress", "shipping_address", "addresses"}),
        ),
    ),
    aliases=(
        ("order_number", "name"),
        ("financial_status", "displayFinancialStatus"),
        ("fulfillment_status", "displayFulfillmentStatus"),
        ("currency", "currencyCode"),
        ("customer_id", "customer"),
    ),
)

CUSTOMER_FIELDS = FieldSet(
    defaults=tuple(
        sel(name)
        for name in (
            "id",
            "email",
            "firstName",
            "lastName",
            "phone",
            "createdAt",
            "updatedAt",
            "verifiedEmail",
            "state",
            "tags",
        )
    ),
    large=(
        LargeField(sel("addresses", *ADDRESS, args=first(10)), frozenset({"addresses"})),
        LargeField(
            sel("defaultAddress", *ADDRESS),
            frozenset({"defaultAddress", "default_address", "addresses"}),
        ),
    ),
)

COLLECTION_FIELDS = FieldSet(
    defaults=tuple(sel(name) for name in ("id", "title", "handle", "description", "updatedAt")),
)

FIELD_SETS: dict[ResourceKind, FieldSet] = {
    ResourceKind.PRODUCT: PRODUCT_FIELDS,
    ResourceKind.ORDER: ORDER_FIELDS,
    ResourceKind.CUSTOMER: CUSTOMER_FIELDS,
    ResourceKind.COLLECTION: COLLECTION_FIELDS,
}


def field_set_for(kind: ResourceKind, sub_resource: str | None = None) -> FieldSet:
    """Field set of the nodes a query returns."""
    if kind == ResourceKind.PRODUCT and sub_resource == "variants":
        return VARIANT_FIELDS
    if kind == ResourceKind.COLLECTION and sub_resource == "products":
        return PRODUCT_FIELDS
    return FIELD_SETS[kind]
