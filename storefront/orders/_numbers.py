"""
Order numbers — PREFIX-YYMMDD-NNNNN.

Five random digits per day; collisions are resolved by the unique
constraint and a retry, not by coordination.
"""

from __future__ import annotations

import secrets
from collections.abc import Callable
from datetime import datetime

type OrderNumbers = Callable[[datetime], str]


def random_order_numbers(prefix: str = "SF") -> OrderNumbers:
    """
    Example:
        numbers = random_order_numbers("SF")
        numbers(datetime(2024, 3, 9))  # "SF-240309-04821"
    """

    def generate(now: datetime) -> str:
        return f"{prefix}-{now:%y%m%d}-{secrets.randbelow(100_000):05d}"

    return generate


__all__ = ("OrderNumbers", "random_order_numbers")
