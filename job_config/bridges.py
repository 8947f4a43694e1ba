"""
Config -> Kernel Bridges.

Convert a validated EngineConfig into the kernel's policy objects.  These
live in job_config (the producer) because the kernel must never import
job_config.

Usage:
    from job_config.bridges import build_change_order_policy, build_numbering_policy

    config = get_active_config("legacy")
    numbering = build_numbering_policy(config)
"""

from __future__ import annotations

from job_config.schema import EngineConfig
from job_kernel.domain.change_order import ChangeOrderPolicy
from job_kernel.domain.job_identity import CounterScope, NumberingPolicy


def build_numbering_policy(config: EngineConfig) -> NumberingPolicy:
    numbering = config.numbering
    return NumberingPolicy(
        separator=numbering.separator,
        pad_width=numbering.pad_width,
        start_value=numbering.start_value,
        counter_scope=CounterScope(numbering.counter_scope),
        counter_name=numbering.counter_name,
    )


def build_change_order_policy(config: EngineConfig) -> ChangeOrderPolicy:
    change_orders = config.change_orders
    return ChangeOrderPolicy(
        allow_direct_approval=change_orders.allow_direct_approval,
        single_open_per_job=change_orders.single_open_per_job,
        block_on_component_issues=change_orders.block_on_component_issues,
    )
