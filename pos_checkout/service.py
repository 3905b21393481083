import json
import logging
import time
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from .cart import Cart
from .catalog import Catalog
from .config import Settings
from .errors import SplitDisabledError, SplitModeLockedError
from .models import Order, PaymentMethod, PaymentRecord, Product, SplitState, Variation
from .pricing import coupon_discount, promotions_from_config
from .split import CompletionCallback, SplitAllocator

logger = logging.getLogger("pos_checkout.service")

CartEntry = Tuple[Product, Sequence[Variation], int]


class CheckoutSession:
    """单个收银终端的一次结算，显式持有购物车和分账器，互不共享状态。"""

    def __init__(self, settings: Optional[Settings] = None, catalog: Optional[Catalog] = None,
                 on_complete: Optional[CompletionCallback] = None):
        self.settings = settings or Settings()
        self.catalog = catalog
        self.cart = Cart(self.settings, promotions=promotions_from_config(self.settings.promotions))
        self.split = SplitAllocator(self.cart, on_complete=on_complete)

    def add(self, product_id: str, variation_names: Iterable[str] = (), qty: int = 1) -> str:
        if self.catalog is None:
            raise ValueError("session has no catalog")
        product, selection = self.catalog.select(product_id, variation_names)
        return self.cart.add_item(product, selection, qty)

    def apply_coupon(self, code: Optional[str] = None) -> bool:
        discount = coupon_discount(code, self.settings.coupons)
        self.cart.set_cart_discount(discount)
        return discount is not None


def add_items(cart: Cart, entries: Iterable[CartEntry]) -> Cart:
    for product, selection, qty in entries:
        cart.add_item(product, selection, qty)
    return cart


def _build_order(cart: Cart, payments: List[PaymentRecord], tip: int, currency: str) -> Order:
    total_without_tip = cart.total_without_tip()
    order = Order(
        lines=cart.lines(),
        subtotal=cart.subtotal(),
        discount=cart.discount(),
        tip=tip,
        total=total_without_tip + tip,
        payments=payments,
        currency=currency,
    )
    order.meta["ts"] = str(int(time.time()))
    return order


def checkout(session: CheckoutSession, method: Union[PaymentMethod, str] = PaymentMethod.CASH) -> Order:
    """单人付款：整单金额加共享小费一次付清，完成后清空购物车。"""
    if session.split.enabled:
        raise SplitModeLockedError("cart is in split mode; finish the split instead")
    cart = session.cart
    payment = PaymentRecord(payer_index=1, amount=cart.total_without_tip(), method=PaymentMethod(method),
                            tip=cart.tip_amount)
    order = _build_order(cart, [payment], cart.tip_amount, session.settings.currency)
    order.meta["split"] = "none"
    logger.info("checkout total=%s method=%s", order.total, payment.method.value)
    cart.clear()
    return order


def finalize_split(session: CheckoutSession) -> Order:
    split = session.split
    if split.state != SplitState.COMPLETE:
        raise SplitDisabledError(f"split is not complete (state={split.state.value})")
    payments = split.payments or []
    tips = sum(p.tip for p in payments)
    order = _build_order(session.cart, payments, tips, session.settings.currency)
    # 订单总额以实际收款为准；按商品分账不计折扣，未生效的部分单独记录
    collected = sum(p.total for p in payments)
    applied = max(0, order.subtotal + tips - collected)
    unapplied = order.discount - applied
    order.total = collected
    order.discount = applied
    order.meta["split"] = split.mode.value
    order.meta["payers"] = str(len(payments))
    if unapplied > 0:
        order.meta["unapplied_discount"] = str(unapplied)
        logger.warning("split order discount not collected amount=%s", unapplied)
    logger.info("split order finalized total=%s payers=%d", order.total, len(payments))
    session.cart.clear()
    return order


def print_receipt(order: Order) -> str:
    payload = {
        "total": order.total,
        "tip": order.tip,
        "currency": order.currency,
        "count": sum(line.quantity for line in order.lines),
        "payments": [p.to_dict() for p in order.payments],
        "split": order.meta.get("split", ""),
    }
    text = json.dumps(payload, ensure_ascii=False)
    print(text)
    return text
