from pydantic import BaseModel, ConfigDict


class ShopifyAddress(BaseModel):
    model_config = ConfigDict(extra="allow")
    phone: str | None = None
    country_code: str | None = None


class ShopifyCustomer(BaseModel):
    model_config = ConfigDict(extra="allow")
    first_name: str | None = None
    last_name: str | None = None
    email: str | None = None
    phone: str | None = None
    default_address: ShopifyAddress | None = None


class ShopifyOrderWebhook(BaseModel):
    """`orders/create` webhook body; unknown fields are kept for the raw payload."""

    model_config = ConfigDict(extra="allow")
    id: int | str
    order_number: int | str | None = None
    name: str | None = None
    email: str | None = None
    phone: str | None = None
    total_price: str | None = None
    currency: str | None = None
    gateway: str | None = None
    payment_gateway_names: list[str] | None = None
    customer: ShopifyCustomer | None = None
    billing_address: ShopifyAddress | None = None
    shipping_address: ShopifyAddress | None = None
