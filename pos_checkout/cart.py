import logging
from typing import TYPE_CHECKING, Dict, Iterable, Iterator, List, Mapping, Optional

from .config import Settings
from .errors import CartLockedError, InvalidQuantity, TipLockedError
from .models import CartLine, Product, UnitInstance, Variation
from .money import Money, clamp_non_negative, parse_amount
from .pricing import (
    CartDiscount,
    Promotion,
    calculate_subtotal,
    cart_discount_amount,
    generate_key,
    item_discounts,
    line_price,
)

if TYPE_CHECKING:
    from .split import SplitAllocator

logger = logging.getLogger("pos_checkout.cart")


class Cart:
    """一次结算的购物车：按规格组合归并的商品行、小计、折扣、小费与总额。"""

    def __init__(self, settings: Optional[Settings] = None, promotions: Optional[Mapping[str, Promotion]] = None):
        self.settings = settings or Settings()
        self._lines: Dict[str, CartLine] = {}
        self.tip_amount: Money = 0
        self.is_split_mode = False
        self.promotions: Dict[str, Promotion] = dict(promotions or {})
        self.cart_discount: Optional[CartDiscount] = None
        self.external_discount: Money = 0
        self.split: Optional["SplitAllocator"] = None

    # -- lines --

    def __iter__(self) -> Iterator[CartLine]:
        return iter(list(self._lines.values()))

    def __len__(self) -> int:
        return len(self._lines)

    def __contains__(self, key: object) -> bool:
        return key in self._lines

    def lines(self) -> List[CartLine]:
        return list(self._lines.values())

    def get(self, key: str) -> Optional[CartLine]:
        return self._lines.get(key)

    def item_count(self) -> int:
        return sum(line.quantity for line in self._lines.values())

    def _check_unlocked(self) -> None:
        if self.any_paid:
            raise CartLockedError("cart cannot change after a payer has paid")

    def _lines_changed(self) -> None:
        if self.split is not None:
            self.split.prune_assignments()

    def add_item(self, product: Product, selection: Iterable[Variation] = (), qty: int = 1) -> str:
        self._check_unlocked()
        if qty < 1:
            raise InvalidQuantity(f"quantity must be >= 1, got {qty}")
        selection = tuple(selection)
        key = generate_key(product, selection)
        line = self._lines.get(key)
        if line is None:
            self._lines[key] = CartLine(key=key, product=product, selected_variations=selection,
                                        quantity=min(qty, self.settings.max_quantity))
        else:
            line.quantity = min(line.quantity + qty, self.settings.max_quantity)
        logger.debug("add key=%s qty=%s -> %s", key, qty, self._lines[key].quantity)
        return key

    def update_quantity(self, key: str, delta: int) -> None:
        self._check_unlocked()
        line = self._lines.get(key)
        if line is None:
            return
        new_qty = line.quantity + delta
        if new_qty <= 0:
            del self._lines[key]
            logger.debug("removed key=%s", key)
        else:
            line.quantity = min(new_qty, self.settings.max_quantity)
        self._lines_changed()

    def remove_item(self, key: str) -> None:
        self._check_unlocked()
        if self._lines.pop(key, None) is not None:
            self._lines_changed()

    def clear(self) -> None:
        self._lines.clear()
        self.tip_amount = 0
        self.is_split_mode = False
        self.cart_discount = None
        self.external_discount = 0
        if self.split is not None:
            self.split.reset()
        logger.info("cart cleared")

    def unit_instances(self) -> List[UnitInstance]:
        out = []
        for line in self._lines.values():
            price = line_price(line)
            for i in range(line.quantity):
                out.append(UnitInstance(
                    instance_id=f"{line.key}#{i}",
                    key=line.key,
                    ordinal=i,
                    product=line.product,
                    selected_variations=line.selected_variations,
                    unit_price=price,
                ))
        return out

    # -- discounts --

    def set_promotions(self, promotions: Mapping[str, Promotion]) -> None:
        self._check_unlocked()
        self.promotions = dict(promotions)

    def set_cart_discount(self, discount: Optional[CartDiscount]) -> None:
        self._check_unlocked()
        self.cart_discount = discount

    def set_external_discount(self, amount: Money) -> None:
        self._check_unlocked()
        self.external_discount = clamp_non_negative(amount)

    # -- totals --

    def subtotal(self) -> Money:
        return calculate_subtotal(self.lines())

    def item_discount_total(self) -> Money:
        return item_discounts(self.lines(), self.promotions)

    def cart_discount_total(self) -> Money:
        after_items = self.subtotal() - self.item_discount_total() - self.external_discount
        return cart_discount_amount(after_items, self.cart_discount)

    def discount(self) -> Money:
        return self.item_discount_total() + self.external_discount + self.cart_discount_total()

    def total_without_tip(self) -> Money:
        return clamp_non_negative(self.subtotal() - self.discount())

    def total(self) -> Money:
        tip = 0 if self.is_split_mode else self.tip_amount
        return self.total_without_tip() + tip

    # -- tip --

    @property
    def any_paid(self) -> bool:
        return self.split is not None and self.split.any_paid

    def set_tip(self, amount: Money) -> None:
        if self.any_paid:
            raise TipLockedError("tip cannot change after a payer has paid")
        self.tip_amount = clamp_non_negative(amount)
        logger.debug("tip=%s", self.tip_amount)

    def set_tip_from_string(self, text: str) -> None:
        self.set_tip(parse_amount(text))
