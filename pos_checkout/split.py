"""按人分账。

付款人的应付基数（base amount）每次读取时都由购物车和分账配置重新推导；
小费、付款方式和已付款标记按付款人序号保存，在重新推导时保持不变。
一旦有人付款，所有会让已收金额失效的结构性修改都会被拒绝。
"""
import logging
from typing import Callable, Dict, List, Optional, Set, Union

from .cart import Cart
from .errors import (
    AssignmentLockedError,
    AssignmentOutOfRange,
    PayerCountChangeLockedError,
    PayerIndexOutOfRange,
    PaymentMethodLockedError,
    SplitDisabledError,
    SplitModeLockedError,
    TipLockedError,
    UnknownUnitInstance,
)
from .models import Payer, PaymentMethod, PaymentRecord, SplitMode, SplitState
from .money import Money, clamp_non_negative, split_evenly

logger = logging.getLogger("pos_checkout.split")

CompletionCallback = Callable[[List[PaymentRecord]], None]


class SplitAllocator:
    def __init__(self, cart: Cart, on_complete: Optional[CompletionCallback] = None):
        self.cart = cart
        self.on_complete = on_complete
        self.enabled = False
        self.mode = SplitMode.EQUAL
        self.payer_count = cart.settings.min_payers
        self._assignments: Dict[str, int] = {}
        self._tips: Dict[int, Money] = {}
        self._methods: Dict[int, PaymentMethod] = {}
        self._paid: Set[int] = set()
        self._payments: Optional[List[PaymentRecord]] = None
        cart.split = self

    # -- state --

    @property
    def any_paid(self) -> bool:
        return any(i in self._paid for i in range(1, self.payer_count + 1))

    @property
    def all_paid(self) -> bool:
        return all(p.paid for p in self.active_payers())

    @property
    def state(self) -> SplitState:
        if not self.enabled:
            return SplitState.DISABLED
        if self._payments is not None:
            return SplitState.COMPLETE
        if self.any_paid:
            return SplitState.IN_PROGRESS
        return SplitState.CONFIGURING

    @property
    def payments(self) -> Optional[List[PaymentRecord]]:
        return list(self._payments) if self._payments is not None else None

    def _clear_payer_state(self) -> None:
        self._tips.clear()
        self._methods.clear()
        self._paid.clear()
        self._payments = None

    def reset(self) -> None:
        """购物车清空或付款完成后回到初始状态。"""
        self._clear_payer_state()
        self._assignments.clear()
        self.enabled = False
        self.mode = SplitMode.EQUAL
        self.payer_count = self.cart.settings.min_payers
        self.cart.is_split_mode = False

    def enable(self, payer_count: Optional[int] = None, mode: Optional[Union[SplitMode, str]] = None) -> None:
        """进入分账配置；已处于配置状态时，按传入的人数和模式更新配置。"""
        if self.any_paid:
            raise SplitModeLockedError("split already has payments")
        if self.enabled:
            if mode is not None:
                self.set_mode(mode)
            if payer_count is not None:
                self.change_payer_count(payer_count)
            return
        self._clear_payer_state()
        self._assignments.clear()
        self.cart.is_split_mode = True
        self.enabled = True
        self.mode = SplitMode(mode or SplitMode.EQUAL)
        self.payer_count = self._clamp_count(payer_count or self.cart.settings.min_payers)
        logger.info("split enabled payers=%s mode=%s", self.payer_count, self.mode.value)

    def disable(self) -> None:
        if self.any_paid:
            raise SplitModeLockedError("cannot cancel split after a payer has paid")
        self._clear_payer_state()
        self.enabled = False
        self.cart.is_split_mode = False
        logger.info("split disabled")

    def set_mode(self, mode: Union[SplitMode, str]) -> None:
        self._require_enabled()
        if self.any_paid:
            raise SplitModeLockedError("cannot change split mode after a payer has paid")
        self.mode = SplitMode(mode or SplitMode.EQUAL)

    def _require_enabled(self) -> None:
        if not self.enabled:
            raise SplitDisabledError("split bill is not enabled")

    def _check_index(self, payer_index: int) -> None:
        if not 1 <= payer_index <= self.payer_count:
            raise PayerIndexOutOfRange(f"payer {payer_index} not in 1..{self.payer_count}")

    def _clamp_count(self, n: int) -> int:
        settings = self.cart.settings
        return max(settings.min_payers, min(settings.max_payers, n))

    # -- allocation --

    def change_payer_count(self, n: int) -> int:
        self._require_enabled()
        if self.any_paid:
            raise PayerCountChangeLockedError("payer count is locked once payment started")
        self.payer_count = self._clamp_count(n)
        for instance_id, idx in self._assignments.items():
            if idx > self.payer_count:
                self._assignments[instance_id] = self.payer_count
        logger.debug("payer count=%s", self.payer_count)
        return self.payer_count

    def assignment(self, instance_id: str) -> int:
        if instance_id not in {u.instance_id for u in self.cart.unit_instances()}:
            raise UnknownUnitInstance(instance_id)
        return self._assignments.get(instance_id, 1)

    def assignments(self) -> Dict[str, int]:
        return {u.instance_id: self._assignments.get(u.instance_id, 1) for u in self.cart.unit_instances()}

    def prune_assignments(self) -> None:
        """删除已不在购物车中的单位的分配，重新加入的单位回到默认的 1 号付款人。"""
        current = {u.instance_id for u in self.cart.unit_instances()}
        for instance_id in [i for i in self._assignments if i not in current]:
            del self._assignments[instance_id]

    def assign(self, instance_id: str, payer_index: int) -> None:
        self._require_enabled()
        if self.any_paid:
            raise AssignmentLockedError("items cannot be reassigned after a payer has paid")
        if not 1 <= payer_index <= self.payer_count:
            raise AssignmentOutOfRange(f"payer {payer_index} not in 1..{self.payer_count}")
        if instance_id not in {u.instance_id for u in self.cart.unit_instances()}:
            raise UnknownUnitInstance(instance_id)
        self._assignments[instance_id] = payer_index

    def base_amounts(self) -> List[Money]:
        if self.mode == SplitMode.EQUAL:
            return split_evenly(self.cart.total(), self.payer_count)
        amounts = [0] * self.payer_count
        for unit in self.cart.unit_instances():
            amounts[self._assignments.get(unit.instance_id, 1) - 1] += unit.unit_price
        return amounts

    def payers(self) -> List[Payer]:
        return [
            Payer(
                index=i,
                base_amount=amount,
                tip_amount=self._tips.get(i, 0),
                payment_method=self._methods.get(i, PaymentMethod.CASH),
                paid=i in self._paid,
            )
            for i, amount in enumerate(self.base_amounts(), start=1)
        ]

    def payer(self, payer_index: int) -> Payer:
        self._check_index(payer_index)
        return self.payers()[payer_index - 1]

    def active_payers(self) -> List[Payer]:
        return [p for p in self.payers() if p.active]

    def payer_total(self, payer_index: int) -> Money:
        return self.payer(payer_index).total_amount

    def individual_tips_total(self) -> Money:
        return sum(self._tips.get(i, 0) for i in range(1, self.payer_count + 1))

    def grand_total(self) -> Money:
        return sum(p.total_amount for p in self.active_payers())

    # -- payment --

    def set_individual_tip(self, payer_index: int, amount: Money) -> None:
        self._require_enabled()
        self._check_index(payer_index)
        if self.any_paid:
            raise TipLockedError("tips are locked once payment started")
        self._tips[payer_index] = clamp_non_negative(amount)

    def set_payment_method(self, payer_index: int, method: Union[PaymentMethod, str]) -> None:
        self._require_enabled()
        self._check_index(payer_index)
        if payer_index in self._paid:
            raise PaymentMethodLockedError(f"payer {payer_index} already paid")
        self._methods[payer_index] = PaymentMethod(method)

    def mark_paid(self, payer_index: int) -> Optional[List[PaymentRecord]]:
        self._require_enabled()
        self._check_index(payer_index)
        if payer_index in self._paid or self._payments is not None:
            return None
        self._paid.add(payer_index)
        logger.info("payer %s paid", payer_index)

        active = self.active_payers()
        if not all(p.paid for p in active):
            return None
        self._payments = [
            PaymentRecord(payer_index=p.index, amount=p.base_amount, method=p.payment_method, tip=p.tip_amount)
            for p in active
        ]
        logger.info("split complete payers=%d total=%s", len(self._payments), sum(p.total for p in self._payments))
        if self.on_complete is not None:
            self.on_complete(list(self._payments))
        return list(self._payments)

    def snapshot(self) -> List[Dict[str, object]]:
        return [
            {
                "payer_index": p.index,
                "base_amount": p.base_amount,
                "tip_amount": p.tip_amount,
                "method": p.payment_method.value,
            }
            for p in self.active_payers()
        ]
