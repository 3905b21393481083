import re
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Union

from .errors import InvalidAmount

# 金额统一使用最小货币单位（分）的整数
Money = int

MINOR_UNITS = 100

_AMOUNT_RE = re.compile(r"^\d*\.?\d{0,2}$")


def split_evenly(amount: Money, parts: int) -> List[Money]:
    """把金额平均分成 parts 份，前 remainder 份各多 1 分，总和始终等于 amount。"""
    if parts <= 0:
        return []
    base, remainder = divmod(amount, parts)
    return [base + 1 if i < remainder else base for i in range(parts)]


def round_half_up(value: Union[Decimal, float, int]) -> Money:
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def clamp_non_negative(amount: Money) -> Money:
    return max(0, amount)


def to_minor(major: Union[str, int, float, Decimal]) -> Money:
    """主单位（如 4.5 欧元）转换为分，四舍五入。"""
    return round_half_up(Decimal(str(major)) * MINOR_UNITS)


def parse_amount(text: str) -> Money:
    """解析收银台输入的小数金额字符串，例如 "4.50"、".5"、"12"。

    空字符串和单独的 "." 视为 0；最多两位小数，不接受负号。
    """
    raw = (text or "").strip()
    if raw in ("", "."):
        return 0
    if not _AMOUNT_RE.match(raw) or raw.count(".") > 1:
        raise InvalidAmount(f"not a valid amount: {text!r}")
    if raw.startswith("."):
        raw = "0" + raw
    return to_minor(raw)
