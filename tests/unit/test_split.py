import pytest

from common.factories import make_cart, make_latte, make_priced_cart, make_split
from pos_checkout.errors import (
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
from pos_checkout.models import PaymentMethod, SplitMode, SplitState
from pos_checkout.split import SplitAllocator


@pytest.mark.unit
def test_state_machine_equal_mode():
    cart = make_priced_cart([1000])
    split = SplitAllocator(cart)
    assert split.state == SplitState.DISABLED

    split.enable(3)
    assert cart.is_split_mode
    assert split.state == SplitState.CONFIGURING
    assert [p.base_amount for p in split.payers()] == [334, 333, 333]

    split.mark_paid(2)
    assert split.state == SplitState.IN_PROGRESS
    split.mark_paid(1)
    payments = split.mark_paid(3)
    assert split.state == SplitState.COMPLETE
    assert [p.payer_index for p in payments] == [1, 2, 3]
    assert sum(p.amount for p in payments) == 1000


@pytest.mark.unit
def test_equal_split_excludes_shared_tip():
    cart = make_priced_cart([1000])
    cart.set_tip(300)
    split = make_split(cart, 2)
    assert [p.base_amount for p in split.payers()] == [500, 500]


@pytest.mark.unit
def test_by_item_scenario():
    cart = make_priced_cart([500, 500, 300])
    split = make_split(cart, 2, mode="byItems")
    units = cart.unit_instances()
    split.assign(units[2].instance_id, 2)

    assert [p.base_amount for p in split.payers()] == [1000, 300]
    assert split.mark_paid(2) is None
    assert split.state == SplitState.IN_PROGRESS
    payments = split.mark_paid(1)
    assert split.state == SplitState.COMPLETE
    assert [(p.payer_index, p.amount) for p in payments] == [(1, 1000), (2, 300)]


@pytest.mark.unit
def test_by_item_expands_quantities():
    latte = make_latte()
    cart = make_cart([(latte, [latte.variations[0]], 3)])
    split = make_split(cart, 3, mode=SplitMode.BY_ITEM)
    for n, unit in enumerate(cart.unit_instances(), start=1):
        split.assign(unit.instance_id, n)
    assert [p.base_amount for p in split.payers()] == [530, 530, 530]


@pytest.mark.unit
def test_zero_payer_never_blocks_completion(payer_count):
    cart = make_priced_cart([800])
    split = make_split(cart, payer_count, mode="byItems")
    # 所有商品默认归 1 号付款人，其余付款人金额为 0
    assert [p.index for p in split.active_payers()] == [1]
    payments = split.mark_paid(1)
    assert split.state == SplitState.COMPLETE
    assert [p.payer_index for p in payments] == [1]


@pytest.mark.unit
def test_tip_makes_zero_payer_active():
    cart = make_priced_cart([800])
    split = make_split(cart, 2, mode="byItems")
    split.set_individual_tip(2, 100)
    assert [p.index for p in split.active_payers()] == [1, 2]
    split.mark_paid(1)
    assert split.state == SplitState.IN_PROGRESS
    payments = split.mark_paid(2)
    assert payments[1].tip == 100
    assert split.grand_total() == 900


@pytest.mark.unit
def test_locks_apply_to_every_payer_index():
    cart = make_priced_cart([500, 500, 300])
    split = make_split(cart, 3, mode="byItems")
    units = cart.unit_instances()
    split.assign(units[1].instance_id, 2)
    split.assign(units[2].instance_id, 3)
    split.mark_paid(1)

    for index in (1, 2, 3):
        with pytest.raises(TipLockedError):
            split.set_individual_tip(index, 50)
        with pytest.raises(AssignmentLockedError):
            split.assign(units[0].instance_id, index)
    with pytest.raises(PayerCountChangeLockedError):
        split.change_payer_count(4)
    with pytest.raises(SplitModeLockedError):
        split.set_mode("equal")
    with pytest.raises(SplitModeLockedError):
        split.disable()
    assert split.state == SplitState.IN_PROGRESS


@pytest.mark.unit
def test_disable_allowed_before_payment():
    cart = make_priced_cart([1000])
    split = make_split(cart, 2)
    split.set_individual_tip(1, 100)
    split.disable()
    assert split.state == SplitState.DISABLED
    assert cart.is_split_mode is False
    split.enable(2)
    # 重新进入时清空按人小费
    assert split.individual_tips_total() == 0


@pytest.mark.unit
def test_individual_tip_overwrites_and_clamps():
    split = make_split(make_priced_cart([1000]), 2)
    split.set_individual_tip(1, 100)
    split.set_individual_tip(1, 40)
    split.set_individual_tip(2, -5)
    assert [p.tip_amount for p in split.payers()] == [40, 0]
    assert split.payer_total(1) == 540


@pytest.mark.unit
def test_payment_method_locked_only_for_paid_payer():
    split = make_split(make_priced_cart([1000]), 2)
    split.set_payment_method(1, "Card")
    split.mark_paid(1)
    with pytest.raises(PaymentMethodLockedError):
        split.set_payment_method(1, PaymentMethod.CASH)
    split.set_payment_method(2, PaymentMethod.GIFT_CARD)
    payments = split.mark_paid(2)
    assert [p.method for p in payments] == [PaymentMethod.CARD, PaymentMethod.GIFT_CARD]


@pytest.mark.unit
def test_mark_paid_is_idempotent():
    calls = []
    cart = make_priced_cart([600])
    split = SplitAllocator(cart, on_complete=calls.append)
    split.enable(2)
    assert split.mark_paid(1) is None
    assert split.mark_paid(1) is None
    assert split.mark_paid(2) is not None
    assert split.mark_paid(2) is None
    assert len(calls) == 1
    assert split.payments == calls[0]


@pytest.mark.unit
def test_change_payer_count_clamps_assignments():
    cart = make_priced_cart([100, 200, 300])
    split = make_split(cart, 4, mode="byItems")
    units = cart.unit_instances()
    split.assign(units[1].instance_id, 3)
    split.assign(units[2].instance_id, 4)
    assert split.change_payer_count(2) == 2
    assert list(split.assignments().values()) == [1, 2, 2]
    assert [p.base_amount for p in split.payers()] == [100, 500]


@pytest.mark.unit
def test_payer_count_bounds():
    split = make_split(make_priced_cart([100]), 2)
    assert split.change_payer_count(1) == 2
    assert split.change_payer_count(500) == 50


@pytest.mark.unit
def test_index_and_instance_errors():
    cart = make_priced_cart([100])
    split = make_split(cart, 2, mode="byItems")
    unit_id = cart.unit_instances()[0].instance_id
    with pytest.raises(AssignmentOutOfRange) as exc:
        split.assign(unit_id, 3)
    assert isinstance(exc.value, PayerIndexOutOfRange)
    assert isinstance(exc.value, AssignmentLockedError)
    with pytest.raises(UnknownUnitInstance):
        split.assign("nope#0", 1)
    with pytest.raises(PayerIndexOutOfRange):
        split.mark_paid(0)
    with pytest.raises(PayerIndexOutOfRange):
        split.set_individual_tip(3, 10)


@pytest.mark.unit
def test_operations_require_enabled_split():
    split = SplitAllocator(make_priced_cart([100]))
    with pytest.raises(SplitDisabledError):
        split.mark_paid(1)
    with pytest.raises(SplitDisabledError):
        split.change_payer_count(3)


@pytest.mark.unit
def test_base_amounts_follow_cart_edits():
    cart = make_priced_cart([1000])
    split = make_split(cart, 2)
    split.set_individual_tip(2, 50)
    key = cart.lines()[0].key
    cart.update_quantity(key, 1)
    # 基数重新推导，小费按序号保留
    assert [(p.base_amount, p.tip_amount) for p in split.payers()] == [(1000, 0), (1000, 50)]


@pytest.mark.unit
def test_split_logging(log_capture):
    split = make_split(make_priced_cart([200]), 2)
    split.mark_paid(1)
    split.mark_paid(2)
    assert "split enabled" in log_capture.text
    assert "split complete" in log_capture.text


@pytest.mark.unit
def test_removed_line_drops_its_assignment():
    cart = make_priced_cart([400, 600])
    split = make_split(cart, 3, "byItems")
    product = cart.get("item-1___default").product
    split.assign("item-1___default#0", 3)
    cart.remove_item("item-1___default")
    assert "item-1___default#0" not in split._assignments
    # 重新加入同一商品，回到默认的 1 号付款人
    cart.add_item(product)
    assert split.assignments()["item-1___default#0"] == 1
    assert split.base_amounts() == [1000, 0, 0]


@pytest.mark.unit
def test_reduced_quantity_drops_higher_ordinal_assignment():
    cart = make_priced_cart([250])
    key = cart.lines()[0].key
    cart.update_quantity(key, 1)
    split = make_split(cart, 2, "byItems")
    split.assign(f"{key}#1", 2)
    cart.update_quantity(key, -1)
    cart.update_quantity(key, 1)
    assert split.assignments() == {f"{key}#0": 1, f"{key}#1": 1}
    assert split.base_amounts() == [500, 0]


@pytest.mark.unit
def test_enable_again_updates_configuration():
    split = make_split(make_priced_cart([100, 200]), 2)
    split.set_individual_tip(1, 30)
    split.enable(4, "byItems")
    assert split.payer_count == 4
    assert split.mode == SplitMode.BY_ITEM
    # 只传人数时保留当前模式，已有小费不丢失
    split.enable(3)
    assert split.mode == SplitMode.BY_ITEM
    assert split.payer_count == 3
    assert split.payer(1).tip_amount == 30
