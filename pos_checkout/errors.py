class CheckoutError(Exception):
    """结算核心的所有前置条件错误的基类。"""


class InvalidQuantity(CheckoutError, ValueError):
    pass


class InvalidAmount(CheckoutError, ValueError):
    pass


class PaymentLockedError(CheckoutError):
    """任一付款人已付款后，拒绝会改变已收金额的操作。"""


class TipLockedError(PaymentLockedError):
    pass


class AssignmentLockedError(PaymentLockedError):
    pass


class PayerCountChangeLockedError(PaymentLockedError):
    pass


class SplitModeLockedError(PaymentLockedError):
    pass


class PaymentMethodLockedError(PaymentLockedError):
    pass


class PayerIndexOutOfRange(CheckoutError, IndexError):
    pass


class AssignmentOutOfRange(AssignmentLockedError, PayerIndexOutOfRange):
    pass


class UnknownUnitInstance(CheckoutError, KeyError):
    pass


class SplitDisabledError(CheckoutError):
    pass


class CatalogError(CheckoutError):
    pass


class UnknownProduct(CatalogError, KeyError):
    pass


class UnknownVariation(CatalogError, KeyError):
    pass


class CartLockedError(PaymentLockedError):
    pass
