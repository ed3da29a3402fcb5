"""
Automation strategy evaluation for simulations.

Each automation kind maps to exactly one rule set. Evaluation is a pure
function of the current market/account state; the caller applies the
returned action to its ledger.
"""
from dataclasses import dataclass, field
from typing import Optional

MARGIN_GUARD_DROP_PCT = 5.0
MAINTENANCE_MARGIN_RATE = 0.1
MARGIN_LEVEL_THRESHOLD = 0.15

TAKE_PROFIT_RISE_PCT = 10.0

TRAILING_TRIGGER_PCT = 2.0
TRAILING_STOP_RATIO = 0.98

AUTO_ENTRY_RSI_OVERSOLD = 30.0
AUTO_ENTRY_DEVIATION_PCT = -3.0


@dataclass(frozen=True)
class AutomationAction:
    action: str  # close_position, take_profit, adjust_stop, enter_position
    details: dict = field(default_factory=dict)


def margin_level(balance: float, pnl: float, position_size: float, price: float) -> float:
    """(balance + pnl) / (notional * maintenance rate). 0 when flat."""
    notional = position_size * price
    if notional <= 0:
        return 0.0
    return (balance + pnl) / (notional * MAINTENANCE_MARGIN_RATE)


def simple_rsi(current_price: float, initial_price: float) -> float:
    """RSI from the single delta between current and initial price."""
    change = current_price - initial_price
    gain = max(change, 0.0)
    loss = max(-change, 0.0)
    if loss == 0:
        return 100.0
    rs = gain / loss
    return 100.0 - (100.0 / (1.0 + rs))


def _pct_change(current_price: float, initial_price: float) -> float:
    return (current_price - initial_price) / initial_price * 100


def margin_guard(current_price, initial_price, balance, position_size, pnl) -> Optional[AutomationAction]:
    price_drop = (initial_price - current_price) / initial_price * 100
    if price_drop < MARGIN_GUARD_DROP_PCT or position_size <= 0:
        return None

    level = margin_level(balance, pnl, position_size, current_price)
    if level < MARGIN_LEVEL_THRESHOLD:
        return AutomationAction("close_position", {
            "reason": "margin_below_threshold",
            "marginLevel": level,
            "priceDrop": price_drop,
        })
    return None


def take_profit(current_price, initial_price, pnl) -> Optional[AutomationAction]:
    price_increase = _pct_change(current_price, initial_price)
    if price_increase >= TAKE_PROFIT_RISE_PCT and pnl > 0:
        return AutomationAction("take_profit", {
            "priceIncrease": price_increase,
            "pnl": pnl,
        })
    return None


def trailing_stop(current_price, initial_price) -> Optional[AutomationAction]:
    price_change = _pct_change(current_price, initial_price)
    if abs(price_change) >= TRAILING_TRIGGER_PCT:
        return AutomationAction("adjust_stop", {
            "priceChange": price_change,
            "newStopLevel": current_price * TRAILING_STOP_RATIO,
        })
    return None


def auto_entry(current_price, initial_price, position_size) -> Optional[AutomationAction]:
    if position_size > 0:
        return None
    deviation = _pct_change(current_price, initial_price)
    rsi = simple_rsi(current_price, initial_price)
    if rsi < AUTO_ENTRY_RSI_OVERSOLD and deviation < AUTO_ENTRY_DEVIATION_PCT:
        return AutomationAction("enter_position", {
            "rsi": rsi,
            "priceDeviation": deviation,
            "entryPrice": current_price,
        })
    return None


def evaluate_automation(
    automation_type: str,
    current_price: float,
    initial_price: float,
    balance: float,
    position_size: float,
    pnl: float,
) -> Optional[AutomationAction]:
    """Run the rule set for automation_type. Returns None when nothing fires."""
    if automation_type == "margin_guard":
        return margin_guard(current_price, initial_price, balance, position_size, pnl)
    elif automation_type == "take_profit":
        return take_profit(current_price, initial_price, pnl)
    elif automation_type == "trailing_stop":
        return trailing_stop(current_price, initial_price)
    elif automation_type == "auto_entry":
        return auto_entry(current_price, initial_price, position_size)
    return None
