import logging
import os
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Iterable, Mapping, Optional, Sequence

from .models import CartLine, Product, Variation
from .money import Money, clamp_non_negative, round_half_up

logger = logging.getLogger("pos_checkout.pricing")

KEY_SEPARATOR = "___"
VARIATION_SEPARATOR = "|||"
DEFAULT_VARIATION_KEY = "default"

PROMOTION_KINDS = ("percent", "fixed", "price")
CART_DISCOUNT_KINDS = ("percent", "fixed")


@dataclass(frozen=True)
class Promotion:
    kind: str  # "percent" | "fixed" | "price"
    value: int

    def __post_init__(self):
        if self.kind not in PROMOTION_KINDS:
            raise ValueError(f"unknown promotion kind: {self.kind}")


@dataclass(frozen=True)
class CartDiscount:
    kind: str  # "percent" | "fixed"
    value: int

    def __post_init__(self):
        if self.kind not in CART_DISCOUNT_KINDS:
            raise ValueError(f"unknown cart discount kind: {self.kind}")


def unit_price(product: Product, selection: Iterable[Variation] = ()) -> Money:
    return product.base_price + sum(v.price_modifier for v in selection)


def generate_key(product: Product, selection: Iterable[Variation] = ()) -> str:
    names = sorted(v.name for v in selection)
    variation_key = VARIATION_SEPARATOR.join(names) or DEFAULT_VARIATION_KEY
    return f"{product.id}{KEY_SEPARATOR}{variation_key}"


def promoted_price(price: Money, promotion: Optional[Promotion]) -> Money:
    if promotion is None:
        return price
    if promotion.kind == "percent":
        return clamp_non_negative(round_half_up(Decimal(price) * (100 - Decimal(promotion.value)) / 100))
    if promotion.kind == "fixed":
        return clamp_non_negative(price - promotion.value)
    return clamp_non_negative(promotion.value)


def cart_discount_amount(after_items_total: Money, discount: Optional[CartDiscount]) -> Money:
    if discount is None or after_items_total <= 0:
        return 0
    if discount.kind == "percent":
        return clamp_non_negative(round_half_up(Decimal(after_items_total) * Decimal(discount.value) / 100))
    return min(after_items_total, clamp_non_negative(discount.value))


def line_price(line: CartLine) -> Money:
    return unit_price(line.product, line.selected_variations)


def calculate_subtotal(lines: Sequence[CartLine]) -> Money:
    subtotal = sum(line_price(line) * line.quantity for line in lines)
    logger.info("subtotal=%s", subtotal)
    return subtotal


def item_discounts(lines: Sequence[CartLine], promotions: Mapping[str, Promotion]) -> Money:
    total = 0
    for line in lines:
        price = line_price(line)
        total += (price - promoted_price(price, promotions.get(line.product.id))) * line.quantity
    logger.debug("item discounts=%s", total)
    return total


def promotions_from_config(raw: Mapping[str, Mapping[str, object]]) -> Dict[str, Promotion]:
    return {pid: Promotion(kind=str(p["type"]), value=int(p["value"])) for pid, p in raw.items()}


def coupon_discount(code: Optional[str] = None, coupons: Optional[Mapping[str, Mapping[str, object]]] = None) -> Optional[CartDiscount]:
    """优惠码 -> 整单折扣；未传入 code 时读取环境变量 COUPON_CODE。"""
    if code is None:
        code = os.environ.get("COUPON_CODE", "")
    entry = (coupons or {}).get(code.strip().upper()) if code else None
    if entry is None:
        return None
    logger.info("coupon applied code=%s", code)
    return CartDiscount(kind=str(entry["type"]), value=int(entry["value"]))
