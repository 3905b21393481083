from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

from pos_checkout.cart import Cart
from pos_checkout.config import Settings
from pos_checkout.models import Product, Variation
from pos_checkout.split import SplitAllocator


@dataclass(frozen=True)
class Defaults:
    base_price: int = 1000


def make_variation(name: str = "Large", modifier: int = 80, group: Optional[str] = None) -> Variation:
    return Variation(name=name, price_modifier=modifier, group=group)


def make_product(pid: str = "P1", base: int = Defaults.base_price, variations: Sequence[Variation] = ()) -> Product:
    return Product(id=pid, base_price=base, variations=tuple(variations), name=pid.title())


def make_products(n: int = 1, base: int = Defaults.base_price) -> List[Product]:
    return [make_product(f"P{i}", base + i * 100) for i in range(n)]


def make_latte() -> Product:
    return make_product("latte", 450, [make_variation("Large", 80, "size"), make_variation("Almond Milk", 50, "milk")])


def make_croissant() -> Product:
    return make_product("croissant", 300)


def make_cart(entries: Iterable[Tuple[Product, Sequence[Variation], int]] = (), settings: Optional[Settings] = None) -> Cart:
    c = Cart(settings or Settings())
    for product, selection, qty in entries:
        c.add_item(product, selection, qty)
    return c


def make_priced_cart(prices: Sequence[int]) -> Cart:
    """每个价格一行、数量 1，便于按项目分账的场景构造"""
    return make_cart((make_product(f"item-{i}", p), (), 1) for i, p in enumerate(prices))


def make_split(cart: Cart, payers: int = 2, mode: str = "equal") -> SplitAllocator:
    split = SplitAllocator(cart)
    split.enable(payers, mode)
    return split
