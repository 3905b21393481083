import logging
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple

import yaml

from .errors import CatalogError, UnknownProduct, UnknownVariation
from .models import Product, Variation
from .money import Money, parse_amount

logger = logging.getLogger("pos_checkout.catalog")


def _money(value: Any) -> Money:
    # 文件中金额为整数分；字符串按小数主单位解析，可带负号
    if isinstance(value, bool):
        raise CatalogError(f"invalid money value: {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        text = value.strip()
        if text.startswith("-"):
            return -parse_amount(text[1:])
        return parse_amount(text)
    raise CatalogError(f"invalid money value: {value!r}")


def _variation(raw: Mapping[str, Any]) -> Variation:
    return Variation(
        name=str(raw["name"]),
        price_modifier=_money(raw.get("price_modifier", 0)),
        group=raw.get("group"),
    )


def _product(raw: Mapping[str, Any]) -> Product:
    try:
        pid = str(raw["id"])
        base = _money(raw["base_price"])
    except KeyError as e:
        raise CatalogError(f"product record missing field {e}") from e
    variations = tuple(_variation(v) for v in raw.get("variations") or [])
    names = [v.name for v in variations]
    if len(names) != len(set(names)):
        raise CatalogError(f"duplicate variation name in product {pid}")
    return Product(
        id=pid,
        base_price=base,
        variations=variations,
        name=str(raw.get("name", pid)),
        categories=tuple(raw.get("categories") or ()),
    )


class Catalog:
    """只读商品目录。"""

    def __init__(self, products: Iterable[Product] = ()):
        self._products: Dict[str, Product] = {}
        for p in products:
            if p.id in self._products:
                raise CatalogError(f"duplicate product id: {p.id}")
            self._products[p.id] = p

    @classmethod
    def from_dicts(cls, records: Sequence[Mapping[str, Any]]) -> "Catalog":
        return cls(_product(r) for r in records)

    def __iter__(self) -> Iterator[Product]:
        return iter(self._products.values())

    def __len__(self) -> int:
        return len(self._products)

    def __contains__(self, product_id: object) -> bool:
        return product_id in self._products

    def get(self, product_id: str) -> Product:
        try:
            return self._products[product_id]
        except KeyError:
            raise UnknownProduct(product_id) from None

    def find(self, product_id: str) -> Optional[Product]:
        return self._products.get(product_id)

    def by_category(self, category: str) -> List[Product]:
        return [p for p in self._products.values() if category in p.categories]

    def select(self, product_id: str, variation_names: Iterable[str] = ()) -> Tuple[Product, Tuple[Variation, ...]]:
        """按名称取出商品及其选中的规格，名称不存在时报错。"""
        product = self.get(product_id)
        selection = []
        for name in variation_names:
            v = product.variation(name)
            if v is None:
                raise UnknownVariation(f"{product_id}: {name}")
            selection.append(v)
        return product, tuple(selection)


def load_catalog(path: str) -> Catalog:
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    records = data.get("products") if isinstance(data, dict) else None
    if not isinstance(records, list):
        raise CatalogError(f"{path}: expected a 'products' list")
    catalog = Catalog.from_dicts(records)
    logger.info("catalog loaded path=%s products=%d", path, len(catalog))
    return catalog
