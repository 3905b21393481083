from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple

from .money import Money


class PaymentMethod(str, Enum):
    CASH = "Cash"
    CARD = "Card"
    GIFT_CARD = "Gift card"


class SplitMode(str, Enum):
    EQUAL = "equal"
    BY_ITEM = "byItems"


class SplitState(str, Enum):
    DISABLED = "disabled"
    CONFIGURING = "configuring"
    IN_PROGRESS = "in_progress"
    COMPLETE = "complete"


@dataclass(frozen=True)
class Variation:
    name: str
    price_modifier: Money = 0
    group: Optional[str] = None  # "size", "milk" ...


@dataclass(frozen=True)
class Product:
    id: str
    base_price: Money
    variations: Tuple[Variation, ...] = ()
    name: str = ""
    categories: Tuple[str, ...] = ()

    def variation(self, name: str) -> Optional[Variation]:
        for v in self.variations:
            if v.name == name:
                return v
        return None


@dataclass
class CartLine:
    key: str
    product: Product
    selected_variations: Tuple[Variation, ...]
    quantity: int = 1


@dataclass(frozen=True)
class UnitInstance:
    """购物车行按数量展开后的单个单位，按项目分账时逐个分配给付款人。"""

    instance_id: str
    key: str
    ordinal: int
    product: Product
    selected_variations: Tuple[Variation, ...]
    unit_price: Money


@dataclass(frozen=True)
class Payer:
    index: int
    base_amount: Money
    tip_amount: Money
    payment_method: PaymentMethod
    paid: bool

    @property
    def total_amount(self) -> Money:
        return self.base_amount + self.tip_amount

    @property
    def active(self) -> bool:
        return self.total_amount > 0


@dataclass(frozen=True)
class PaymentRecord:
    payer_index: int
    amount: Money
    method: PaymentMethod
    tip: Money = 0

    @property
    def total(self) -> Money:
        return self.amount + self.tip

    def to_dict(self) -> Dict[str, object]:
        return {
            "payer": self.payer_index,
            "amount": self.amount,
            "method": self.method.value,
            "tip": self.tip,
        }


@dataclass
class Order:
    lines: List[CartLine]
    subtotal: Money
    discount: Money
    tip: Money
    total: Money
    payments: List[PaymentRecord]
    currency: str = "EUR"
    meta: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, object]:
        return {
            "items": [
                {
                    "key": line.key,
                    "product": line.product.id,
                    "variations": [v.name for v in line.selected_variations],
                    "quantity": line.quantity,
                }
                for line in self.lines
            ],
            "subtotal": self.subtotal,
            "discount": self.discount,
            "tip": self.tip,
            "total": self.total,
            "currency": self.currency,
            "payments": [p.to_dict() for p in self.payments],
            "meta": self.meta,
        }
