"""
ResponseNormalizer - Flattens GraphQL responses into REST records.

- Walks ``edges[].node`` for lists, the root object for single reads and the
  nested connection for sub-resources
- Decodes every global id (record, variants, images, options, line items,
  embedded customer) to its numeric form
- Renames camelCase fields to the flat convention and lower-cases enum-ish
  values
- Adds ``*_count`` fields for nested collections and joins ``tags``
"""

from dataclasses import dataclass
from typing import Any, Callable

from shopql.graphql.ids import to_numeric_id
from shopql.graphql.records import (
    AddressRecord,
    CollectionRecord,
    CustomerRecord,
    ImageRecord,
    LineItemRecord,
    OptionRecord,
    OrderCustomer,
    OrderRecord,
    ProductRecord,
    Record,
    VariantRecord,
)
from shopql.graphql.types import QueryMode, ResourceKind
from shopql.services.errors import UnknownResourceError, UpstreamQueryError

TAG_SEPARATOR = ", "

PRODUCT_SCALARS = {
    "title": "title",
    "handle": "handle",
    "vendor": "vendor",
    "productType": "product_type",
    "status": "status",
    "createdAt": "created_at",
    "updatedAt": "updated_at",
    "publishedAt": "published_at",
    "description": "description",
    "descriptionHtml": "body_html",
}

VARIANT_SCALARS = {
    "title": "title",
    "price": "price",
    "sku": "sku",
    "inventoryQuantity": "inventory_quantity",
    "taxable": "taxable",
    "barcode": "barcode",
    "createdAt": "created_at",
    "updatedAt": "updated_at",
}

ORDER_SCALARS = {
    "name": "name",
    "email": "email",
    "phone": "phone",
    "createdAt": "created_at",
    "updatedAt": "updated_at",
    "processedAt": "processed_at",
    "displayFinancialStatus": "financial_status",
    "displayFulfillmentStatus": "fulfillment_status",
    "confirmed": "confirmed",
    "totalPrice": "total_price",
    "subtotalPrice": "subtotal_price",
    "totalTax": "total_tax",
    "currencyCode": "currency",
}

CUSTOMER_SCALARS = {
    "email": "email",
    "firstName": "first_name",
    "lastName": "last_name",
    "phone": "phone",
    "createdAt": "created_at",
    "updatedAt": "updated_at",
    "verifiedEmail": "verified_email",
    "state": "state",
}

COLLECTION_SCALARS = {
    "title": "title",
    "handle": "handle",
    "description": "description",
    "updatedAt": "updated_at",
}

# Values upstream sends as enums (ACTIVE, PAID, ...)
LOWERCASE_FIELDS = frozenset({"status", "financial_status", "fulfillment_status", "state"})

# Money fields arrive as strings or numbers depending on api version
MONEY_FIELDS = frozenset({"price", "total_price", "subtotal_price", "total_tax"})


@dataclass
class PageInfo:
    has_next_page: bool = False
    has_previous_page: bool = False
    start_cursor: str | None = None
    end_cursor: str | None = None

    @classmethod
    def from_upstream(cls, page_info: dict[str, Any] | None) -> "PageInfo":
        page_info = page_info or {}
        return cls(
            has_next_page=bool(page_info.get("hasNextPage", False)),
            has_previous_page=bool(page_info.get("hasPreviousPage", False)),
            start_cursor=page_info.get("startCursor"),
            end_cursor=page_info.get("endCursor"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "has_next_page": self.has_next_page,
            "has_previous_page": self.has_previous_page,
            "start_cursor": self.start_cursor,
            "end_cursor": self.end_cursor,
        }


@dataclass
class NormalizedResult:
    records: list[Record]
    page_info: PageInfo | None = None

    def to_response(self) -> dict[str, Any]:
        response: dict[str, Any] = {"resource": [record.to_dict() for record in self.records]}
        if self.page_info is not None:
            response["meta"] = self.page_info.to_dict()
        return response


def nodes(connection: Any) -> list[dict[str, Any]]:
    """Nodes of a connection; plain lists pass through."""
    if isinstance(connection, list):
        return [item for item in connection if isinstance(item, dict)]
    if not isinstance(connection, dict):
        return []
    return [
        edge["node"]
        for edge in connection.get("edges") or []
        if isinstance(edge, dict) and isinstance(edge.get("node"), dict)
    ]


def join_tags(tags: Any) -> str:
    if isinstance(tags, list):
        return TAG_SEPARATOR.join(str(tag) for tag in tags)
    return "" if tags is None else str(tags)


def scalars(node: dict[str, Any], names: dict[str, str]) -> dict[str, Any]:
    """Rename the scalar fields present in ``node``."""
    data: dict[str, Any] = {}
    for upstream, flat in names.items():
        if upstream not in node:
            continue
        value = node[upstream]
        if flat in LOWERCASE_FIELDS and isinstance(value, str):
            value = value.lower()
        elif flat in MONEY_FIELDS and value is not None:
            value = str(value)
        data[flat] = value
    if "id" in node:
        data["id"] = to_numeric_id(node["id"])
    if "tags" in node:
        data["tags"] = join_tags(node["tags"])
    return data


def normalize_image(node: dict[str, Any]) -> ImageRecord:
    return ImageRecord(**scalars(node, {"url": "src", "altText": "alt"}))


def normalize_variant(node: dict[str, Any], product_id: int | None = None) -> VariantRecord:
    data = scalars(node, VARIANT_SCALARS)
    data["product_id"] = product_id
    if "selectedOptions" in node:
        options = node["selectedOptions"] or []
        for position in range(3):
            option = options[position] if position < len(options) else None
            data[f"option{position + 1}"] = option.get("value") if isinstance(option, dict) else None
    return VariantRecord(**data)


def normalize_product(node: dict[str, Any]) -> ProductRecord:
    data = scalars(node, PRODUCT_SCALARS)

    if node.get("featuredImage") is not None:
        data["image"] = normalize_image(node["featuredImage"])
    if "images" in node:
        data["images"] = [normalize_image(n) for n in nodes(node["images"])]
        data["images_count"] = len(data["images"])
    if "options" in node:
        data["options"] = [
            OptionRecord(**scalars(option, {"name": "name", "values": "values"}))
            for option in node["options"] or []
        ]
    if "variants" in node:
        product_id = data.get("id")
        data["variants"] = [normalize_variant(n, product_id) for n in nodes(node["variants"])]
        data["variants_count"] = len(data["variants"])

    return ProductRecord(**data)


def normalize_order(node: dict[str, Any]) -> OrderRecord:
    data = scalars(node, ORDER_SCALARS)
    if "name" in data:
        data["order_number"] = data["name"]

    customer = node.get("customer")
    if customer is not None:
        embedded = OrderCustomer(
            **scalars(
                customer,
                {"email": "email", "firstName": "first_name", "lastName": "last_name"},
            )
        )
        data["customer_id"] = embedded.id
        data["customer"] = embedded

    if "lineItems" in node:
        items = []
        for item in nodes(node["lineItems"]):
            line = scalars(item, {"title": "title", "quantity": "quantity", "price": "price"})
            product = item.get("product") or {}
            variant = item.get("variant") or {}
            line["product_id"] = to_numeric_id(product.get("id"))
            line["variant_id"] = to_numeric_id(variant.get("id"))
            if "sku" in variant:
                line["sku"] = variant["sku"]
            items.append(LineItemRecord(**line))
        data["line_items"] = items
        data["line_items_count"] = len(items)

    for upstream, flat in (("billingAddress", "billing_address"), ("shippingAddress", "shipping_address")):
        if node.get(upstream) is not None:
            data[flat] = AddressRecord.model_validate(node[upstream])

    return OrderRecord(**data)


def normalize_customer(node: dict[str, Any]) -> CustomerRecord:
    data = scalars(node, CUSTOMER_SCALARS)
    if "addresses" in node:
        data["addresses"] = [AddressRecord.model_validate(a) for a in nodes(node["addresses"])]
        data["addresses_count"] = len(data["addresses"])
    if node.get("defaultAddress") is not None:
        data["default_address"] = AddressRecord.model_validate(node["defaultAddress"])
    return CustomerRecord(**data)


def normalize_collection(node: dict[str, Any]) -> CollectionRecord:
    return CollectionRecord(**scalars(node, COLLECTION_SCALARS))


NORMALIZERS: dict[ResourceKind, Callable[[dict[str, Any]], Record]] = {
    ResourceKind.PRODUCT: normalize_product,
    ResourceKind.ORDER: normalize_order,
    ResourceKind.CUSTOMER: normalize_customer,
    ResourceKind.COLLECTION: normalize_collection,
}


def normalize(
    kind: ResourceKind,
    raw: dict[str, Any],
    mode: QueryMode = QueryMode.LIST,
    sub_resource: str | None = None,
) -> NormalizedResult:
    """
    Flatten a raw GraphQL response.

    Raises:
        UpstreamQueryError: the response carries an ``errors`` list
        UnknownResourceError: a single (or parent) item is missing
    """
    if raw.get("errors"):
        raise UpstreamQueryError(raw["errors"], service_id=kind.plural)

    data = raw.get("data") or {}

    if sub_resource:
        parent = data.get(kind.singular)
        if parent is None:
            raise UnknownResourceError(f"{kind.value} not found", service_id=kind.plural)
        connection = parent.get(sub_resource) or {}
        if sub_resource == "variants":
            product_id = to_numeric_id(parent.get("id"))
            records: list[Record] = [normalize_variant(n, product_id) for n in nodes(connection)]
        else:
            records = [normalize_product(n) for n in nodes(connection)]
        return NormalizedResult(records, PageInfo.from_upstream(connection.get("pageInfo")))

    if mode == QueryMode.SINGLE:
        node = data.get(kind.singular)
        if node is None:
            raise UnknownResourceError(f"{kind.value} not found", service_id=kind.plural)
        return NormalizedResult([NORMALIZERS[kind](node)])

    connection = data.get(kind.plural) or {}
    normalizer = NORMALIZERS[kind]
    return NormalizedResult(
        [normalizer(n) for n in nodes(connection)],
        PageInfo.from_upstream(connection.get("pageInfo")),
    )
