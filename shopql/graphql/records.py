"""
Flat REST records, one model per resource kind.

Normalization only sets the fields that were actually selected upstream and
``to_dict`` dumps with ``exclude_unset``, so a narrow field list yields a
narrow record.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict


class Record(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class ImageRecord(Record):
    src: str | None = None
    alt: str | None = None


class OptionRecord(Record):
    name: str | None = None
    values: list[str] = []


class VariantRecord(Record):
    product_id: int | None = None
    title: str | None = None
    price: str | None = None
    sku: str | None = None
    inventory_quantity: int | None = None
    taxable: bool | None = None
    barcode: str | None = None
    created_at: str | None = None
    updated_at: str | None = None
    option1: str | None = None
    option2: str | None = None
    option3: str | None = None


class ProductRecord(Record):
    title: str | None = None
    handle: str | None = None
    vendor: str | None = None
    product_type: str | None = None
    status: str | None = None
    created_at: str | None = None
    updated_at: str | None = None
    published_at: str | None = None
    tags: str | None = None
    description: str | None = None
    body_html: str | None = None
    image: ImageRecord | None = None
    images: list[ImageRecord] | None = None
    images_count: int | None = None
    options: list[OptionRecord] | None = None
    variants: list[VariantRecord] | None = None
    variants_count: int | None = None


class AddressRecord(BaseModel):
    model_config = ConfigDict(extra="ignore")

    address1: str | None = None
    address2: str | None = None
    city: str | None = None
    province: str | None = None
    country: str | None = None
    zip: str | None = None


class OrderCustomer(Record):
    email: str | None = None
    first_name: str | None = None
    last_name: str | None = None


class LineItemRecord(Record):
    title: str | None = None
    quantity: int | None = None
    price: str | None = None
    product_id: int | None = None
    variant_id: int | None = None
    sku: str | None = None


class OrderRecord(Record):
    name: str | None = None
    order_number: str | None = None
    email: str | None = None
    phone: str | None = None
    created_at: str | None = None
    updated_at: str | None = None
    processed_at: str | None = None
    financial_status: str | None = None
    fulfillment_status: str | None = None
    confirmed: bool | None = None
    total_price: str | None = None
    subtotal_price: str | None = None
    total_tax: str | None = None
    currency: str | None = None
    tags: str | None = None
    customer_id: int | None = None
    customer: OrderCustomer | None = None
    line_items: list[LineItemRecord] | None = None
    line_items_count: int | None = None
    billing_address: AddressRecord | None = None
    shipping_address: AddressRecord | None = None


class CustomerRecord(Record):
    email: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    phone: str | None = None
    created_at: str | None = None
    updated_at: str | None = None
    verified_email: bool | None = None
    state: str | None = None
    tags: str | None = None
    addresses: list[AddressRecord] | None = None
    addresses_count: int | None = None
    default_address: AddressRecord | None = None


class CollectionRecord(Record):
    title: str | None = None
    handle: str | None = None
    description: str | None = None
    updated_at: str | None = None
