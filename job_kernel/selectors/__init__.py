"""Selectors for the job kernel (read side)."""

from job_kernel.selectors.change_order_selector import ChangeOrderSelector

__all__ = [
    "ChangeOrderSelector",
]
