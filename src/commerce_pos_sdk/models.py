from __future__ import annotations

from decimal import Decimal
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer, field_validator, model_validator
from pydantic.alias_generators import to_camel

Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]


class WireModel(BaseModel):
    """Base for payloads exchanged with the commerce API (camelCase on the wire)."""

    model_config = ConfigDict(extra="allow", populate_by_name=True, alias_generator=to_camel)


class ProductImage(WireModel):
    url: str | None = None
    variants: dict[str, str] | None = None

    @property
    def thumbnail(self) -> str | None:
        if self.variants and self.variants.get("thumbnail"):
            return self.variants["thumbnail"]
        return self.url


class ProductVariant(WireModel):
    sku: str
    attributes: dict[str, str] = Field(default_factory=dict)
    price_modifier: Money = Decimal("0")
    stock: int | None = None
    barcode: str | None = None

    @field_validator("price_modifier", mode="before")
    @classmethod
    def _null_modifier(cls, value: Any) -> Any:
        return 0 if value is None else value


class VariantStock(WireModel):
    sku: str
    attributes: dict[str, str] = Field(default_factory=dict)
    quantity: int = 0
    price_modifier: Money | None = None
    barcode: str | None = None


class BranchStock(WireModel):
    quantity: int = 0
    in_stock: bool = False
    low_stock: bool = False
    variants: list[VariantStock] = Field(default_factory=list)


class PosProduct(WireModel):
    id: str = Field(alias="_id")
    name: str
    base_price: Money
    slug: str | None = None
    sku: str | None = None
    barcode: str | None = None
    product_type: str | None = None
    variants: list[ProductVariant] = Field(default_factory=list)
    branch_stock: BranchStock | None = None
    images: list[ProductImage] = Field(default_factory=list)

    def find_variant(self, sku: str) -> ProductVariant | None:
        return next((variant for variant in self.variants if variant.sku == sku), None)

    def variant_stock(self, sku: str) -> int:
        """Branch stock for one variant; falls back to the variant's own counter."""
        if self.branch_stock is not None:
            for entry in self.branch_stock.variants:
                if entry.sku == sku:
                    return entry.quantity
        variant = self.find_variant(sku)
        if variant is not None and variant.stock is not None:
            return variant.stock
        return 0

    @property
    def thumbnail(self) -> str | None:
        return self.images[0].thumbnail if self.images else None


class PosProductsPage(WireModel):
    docs: list[PosProduct] = Field(default_factory=list)
    has_more: bool = False
    next: str | None = None
    summary: dict[str, Any] | None = None
    branch: dict[str, Any] | None = None


class LookupResult(WireModel):
    product: PosProduct
    variant_sku: str | None = None
    matched_variant: ProductVariant | None = None
    quantity: int = 0
    branch_id: str | None = None

    def as_cart_product(self) -> PosProduct:
        """Product shaped for the cart, with stock taken from the lookup."""
        if self.product.branch_stock is not None:
            return self.product
        stock_variants: list[VariantStock] = []
        if self.variant_sku:
            stock_variants.append(
                VariantStock(
                    sku=self.variant_sku,
                    attributes=self.matched_variant.attributes if self.matched_variant else {},
                    quantity=self.quantity,
                    price_modifier=self.matched_variant.price_modifier if self.matched_variant else None,
                )
            )
        variants = list(self.product.variants)
        if self.matched_variant is not None and self.product.find_variant(self.matched_variant.sku) is None:
            variants.append(self.matched_variant)
        branch_stock = BranchStock(
            quantity=self.quantity,
            in_stock=self.quantity > 0,
            variants=stock_variants,
        )
        return self.product.model_copy(update={"branch_stock": branch_stock, "variants": variants})


class PaymentMethodConfig(WireModel):
    id: str | None = Field(default=None, alias="_id")
    type: str
    provider: str | None = None
    name: str = ""
    wallet_number: str | None = None
    note: str | None = None
    is_active: bool = True


class Customer(WireModel):
    id: str = Field(alias="_id")
    name: str = ""
    phone: str | None = None
    tier: str | None = None
    membership_card_id: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _lift_membership(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        membership = data.get("membership")
        if not isinstance(membership, dict):
            return data
        lifted = dict(data)
        if not lifted.get("tier") and membership.get("tier"):
            lifted["tier"] = membership["tier"]
        if not lifted.get("membershipCardId") and membership.get("cardId"):
            lifted["membershipCardId"] = str(membership["cardId"])
        return lifted
