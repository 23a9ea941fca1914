"""
批量折扣定价引擎
纯函数实现：给定小计 (美分) 与客户折扣设置，计算折扣比例、折扣金额与应付总额
"""
import re
from dataclasses import dataclass
from typing import List, Optional, Sequence

from app.exceptions import InvalidInput

TIER_AUTO = 'auto'


@dataclass(frozen=True)
class TierRule:
    """折扣规则：订单小计达到 min_order_amount 即享 discount_percent"""
    code: str
    name: str
    min_order_amount: int
    discount_percent: int


@dataclass(frozen=True)
class DiscountResult:
    percent: int
    amount: int
    total: int
    tier_name: str
    tier_code: Optional[str] = None

    def to_dict(self):
        return {
            'percent': self.percent,
            'amount': self.amount,
            'total': self.total,
            'tier_name': self.tier_name,
            'tier_code': self.tier_code,
        }


# 默认折扣等级 (美分)
DEFAULT_TIERS = (
    TierRule('tier1', 'Tier 1 (40% off)', 40000, 40),
    TierRule('tier2', 'Tier 2 (50% off)', 80000, 50),
    TierRule('tier3', 'Tier 3 (55% off)', 120000, 55),
)

# 分类默认零售价 (美分)
CATEGORY_PRICES = {
    'Glass Ornaments': 3500,
    'Paper Cut Ornaments': 1500,
    'Wooden Ornaments': 3500,
}
DEFAULT_RETAIL_PRICE = 3500

SUN_CATCHER_CATEGORY = 'Glass Sun Catchers'

# 挂饰 (sun catcher) 各尺寸价格 (美分)
SUN_CATCHER_PRICES = {
    '6 inch': 7200,
    '10 inch': 9800,
    '12 inch': 11900,
    '15 inch': 15300,
}
DEFAULT_SUN_CATCHER_PRICE = 7200  # 尺寸未知时按 6 寸

# 尺寸识别：大尺寸优先匹配，命中即返回
SIZE_PATTERNS = [
    (re.compile(r'15\s*(?:inch|in|")', re.IGNORECASE), '15 inch'),
    (re.compile(r'12\s*(?:inch|in|")', re.IGNORECASE), '12 inch'),
    (re.compile(r'10\s*(?:inch|in|")', re.IGNORECASE), '10 inch'),
    (re.compile(r'6\s*(?:inch|in|")', re.IGNORECASE), '6 inch'),
]


def validate_tier_table(tiers: Sequence[TierRule]) -> List[TierRule]:
    """
    校验折扣表：按起订金额升序，起订金额与折扣比例都必须严格递增
    返回排序后的列表
    """
    ordered = sorted(tiers, key=lambda t: t.min_order_amount)
    for prev, cur in zip(ordered, ordered[1:]):
        if cur.min_order_amount <= prev.min_order_amount:
            raise InvalidInput(f"Tier {cur.code} minimum must be greater than {prev.code}")
        if cur.discount_percent <= prev.discount_percent:
            raise InvalidInput(f"Tier {cur.code} percent must be greater than {prev.code}")
    for tier in ordered:
        if tier.min_order_amount < 0 or not 0 <= tier.discount_percent <= 100:
            raise InvalidInput(f"Tier {tier.code} has out-of-range values")
    return ordered


def load_tier_table(rows=None) -> List[TierRule]:
    """
    从 DiscountTier 记录构建折扣表 (忽略停用的等级)
    没有可用记录时回退到默认折扣表
    """
    if rows is None:
        from app.models.biz import DiscountTier
        rows = DiscountTier.query.filter_by(is_active=True).all()
    tiers = [
        TierRule(r.code, r.name, r.min_order_amount, r.discount_percent)
        for r in rows if r.is_active
    ]
    return validate_tier_table(tiers or DEFAULT_TIERS)


def round_half_up_percent(amount: int, percent: int) -> int:
    """amount * percent / 100，整数四舍五入 (0.5 进位)"""
    return (amount * percent + 50) // 100


def _check_subtotal(subtotal):
    if isinstance(subtotal, bool) or not isinstance(subtotal, int):
        raise InvalidInput(f"Subtotal must be an integer amount in cents, got {subtotal!r}")
    if subtotal < 0:
        raise InvalidInput(f"Subtotal cannot be negative: {subtotal}")


def _apply(subtotal, tier: TierRule) -> DiscountResult:
    amount = round_half_up_percent(subtotal, tier.discount_percent)
    return DiscountResult(
        percent=tier.discount_percent,
        amount=amount,
        total=subtotal - amount,
        tier_name=tier.name,
        tier_code=tier.code,
    )


def _no_discount(subtotal, tiers) -> DiscountResult:
    if tiers:
        floor = tiers[0].min_order_amount
        label = f"No discount (under ${floor // 100:,})"
    else:
        label = 'No discount'
    return DiscountResult(percent=0, amount=0, total=subtotal, tier_name=label)


def calculate_discount(subtotal: int, tier: str = TIER_AUTO,
                       tiers: Optional[Sequence[TierRule]] = None,
                       cap_pinned: bool = False) -> DiscountResult:
    """
    计算订单折扣
    :param subtotal: 小计 (美分，非负整数)
    :param tier: 'auto' 按金额自动匹配；tier1/tier2/tier3 为客户固定等级
    :param tiers: 折扣表，默认 DEFAULT_TIERS
    :param cap_pinned: 为 True 时固定等级的折扣不超过自动计算的折扣

    固定等级无条件生效，即使小计低于该等级的起订金额。
    """
    _check_subtotal(subtotal)
    table = validate_tier_table(tiers if tiers is not None else DEFAULT_TIERS)

    auto = _no_discount(subtotal, table)
    # 从最高档往下找第一个满足的门槛
    for rule in reversed(table):
        if subtotal >= rule.min_order_amount:
            auto = _apply(subtotal, rule)
            break

    if not tier or tier == TIER_AUTO:
        return auto

    pinned = next((rule for rule in table if rule.code == tier), None)
    if pinned is None:
        raise InvalidInput(f"Unknown discount tier: {tier}")
    if cap_pinned and pinned.discount_percent > auto.percent:
        return auto
    return _apply(subtotal, pinned)


def detect_size(title: str) -> Optional[str]:
    """从商品标题识别挂饰尺寸"""
    for pattern, size in SIZE_PATTERNS:
        if pattern.search(title or ''):
            return size
    return None


def get_retail_price(category: str, title: str) -> int:
    """按分类与标题推断零售价：尺寸价 → 分类默认价 → 全局默认价"""
    if category == SUN_CATCHER_CATEGORY:
        size = detect_size(title)
        if size and size in SUN_CATCHER_PRICES:
            return SUN_CATCHER_PRICES[size]
        return DEFAULT_SUN_CATCHER_PRICE

    return CATEGORY_PRICES.get(category, DEFAULT_RETAIL_PRICE)


def format_currency(cents: int) -> str:
    """美分 -> $1,234.56"""
    sign = '-' if cents < 0 else ''
    dollars, rest = divmod(abs(cents), 100)
    return f"{sign}${dollars:,}.{rest:02d}"
