"""
Virtual trading account mutated by a single simulation run.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from simlab.services.simulation.automation import AutomationAction, margin_level

logger = logging.getLogger(__name__)

INITIAL_BALANCE = 100_000.0
FIXED_LOT = 0.001
ENTRY_MARGIN_RATE = 0.1  # fraction of notional reserved on entry


@dataclass
class AccountLedger:
    balance: float = INITIAL_BALANCE
    position_size: float = 0.0
    entry_price: float = 0.0
    trailing_stop: Optional[float] = None
    total_actions: int = 0
    successful_actions: int = 0

    @classmethod
    def opening(cls, automation_type: str, initial_price: float) -> "AccountLedger":
        """Starting book for a run.

        auto_entry starts flat so it can enter; the exit-oriented automations
        start holding one lot bought at the initial price.
        """
        if automation_type == "auto_entry":
            return cls()
        return cls(position_size=FIXED_LOT, entry_price=initial_price)

    @property
    def has_position(self) -> bool:
        return self.position_size > 0

    def unrealized_pnl(self, price: float) -> float:
        if not self.has_position:
            return 0.0
        return (price - self.entry_price) * self.position_size

    def margin_level(self, price: float) -> float:
        return margin_level(self.balance, self.unrealized_pnl(price), self.position_size, price)

    @property
    def success_rate(self) -> float:
        if self.total_actions == 0:
            return 0.0
        return self.successful_actions / self.total_actions * 100

    def apply(self, action: AutomationAction, price: float):
        """Apply an evaluator action at the given price.

        Every applied action counts as successful.
        """
        if action.action in ("close_position", "take_profit"):
            self.balance += self.unrealized_pnl(price)
            self._flatten()
        elif action.action == "adjust_stop":
            self.trailing_stop = action.details["newStopLevel"]
        elif action.action == "enter_position":
            if self.has_position:
                raise ValueError("enter_position requires a flat book")
            self.position_size = FIXED_LOT
            self.entry_price = price
            self.balance -= FIXED_LOT * price * ENTRY_MARGIN_RATE
        else:
            raise ValueError(f"Unknown action: {action.action}")

        self.total_actions += 1
        self.successful_actions += 1

    def _flatten(self):
        self.position_size = 0.0
        self.entry_price = 0.0
        self.trailing_stop = None
