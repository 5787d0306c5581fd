"""
Warmth Shaper - Lookup-table saturation

The canonical warmth curve is y = (pi + k) * x / (pi + k * |x|) with
k = amount * 0.25. It is odd, monotonic, maps +/-1 onto +/-1, and is the
identity when the amount is zero.
"""

import logging
import math

import numpy as np

logger = logging.getLogger(__name__)

TABLE_SIZE = 4097  # odd so x = 0 sits exactly on a table point
CURVE_SCALE = 0.25
MAX_AMOUNT = 100.0

_GRID = np.linspace(-1.0, 1.0, TABLE_SIZE)


def make_warmth_curve(amount: float, size: int = TABLE_SIZE) -> np.ndarray:
    """
    Build the warmth lookup table.

    Args:
        amount: Saturation amount (0-100)
        size: Number of table points spanning [-1, 1]

    Returns:
        Table of output values for evenly spaced inputs in [-1, 1]
    """
    amount = max(0.0, min(MAX_AMOUNT, float(amount)))
    k = amount * CURVE_SCALE
    x = np.linspace(-1.0, 1.0, size)
    if k == 0:
        return x
    return (math.pi + k) * x / (math.pi + k * np.abs(x))


class WarmthShaper:
    """Table-driven waveshaper; the table is rebuilt whenever the amount changes."""

    def __init__(self, amount: float = 0.0):
        self.amount = None
        self.table = None
        self.set_amount(amount)

    def set_amount(self, amount: float):
        amount = max(0.0, min(MAX_AMOUNT, float(amount)))
        if amount == self.amount:
            return
        self.amount = amount
        self.table = make_warmth_curve(amount)
        logger.debug(f"Warmth table rebuilt: amount={amount:.2f}")

    @property
    def is_bypassed(self) -> bool:
        return self.amount == 0

    def process(self, block: np.ndarray) -> np.ndarray:
        """Table lookup with linear interpolation; inputs beyond +/-1 hit the table ends."""
        if self.is_bypassed:
            return block.copy()
        return np.interp(block, _GRID, self.table)
