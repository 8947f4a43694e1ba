"""
Pathway -- P1/P2/P3 routing detection.

Responsibility:
    Classifies a job's production route from its routing type and the
    vendors in its execution map.  The pathway is stored on the job for
    collaborators (pricing splits, PO generation); the kernel only sets it.

Architecture position:
    Kernel > Domain -- pure, zero I/O.

Decision tree:
    1. routing_type == BRADFORD_JD        -> P1 (partner workflow)
    2. more than one distinct vendor      -> P3 (multi-vendor)
    3. otherwise                          -> P2 (single vendor)

P1 is a workflow route, not a vendor identity check.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Iterable

from job_kernel.domain.components import ComponentOwner


class RoutingType(str, Enum):
    BRADFORD_JD = "BRADFORD_JD"
    THIRD_PARTY_VENDOR = "THIRD_PARTY_VENDOR"


class Pathway(str, Enum):
    P1 = "P1"
    P2 = "P2"
    P3 = "P3"


def count_distinct_vendors(
    components: Iterable[Any] = (),
    purchase_order_vendor_ids: Iterable[str | None] = (),
) -> int:
    """
    Number of distinct vendors in a job's execution map.

    Purchase-order targets take priority since POs usually exist before the
    component list is complete; vendor-owned components are the fallback.
    With no vendor information at all a single vendor is assumed.
    """
    po_vendors = {vendor_id for vendor_id in purchase_order_vendor_ids if vendor_id}
    if po_vendors:
        return len(po_vendors)

    component_vendors = set()
    for component in components:
        owner = getattr(component, "owner", None)
        vendor_id = getattr(component, "vendor_id", None)
        if owner == ComponentOwner.VENDOR and vendor_id:
            component_vendors.add(vendor_id)
    if component_vendors:
        return len(component_vendors)

    return 1


def determine_pathway(
    routing_type: RoutingType | str | None,
    components: Iterable[Any] = (),
    purchase_order_vendor_ids: Iterable[str | None] = (),
) -> Pathway:
    if routing_type is not None and RoutingType(routing_type) == RoutingType.BRADFORD_JD:
        return Pathway.P1
    if count_distinct_vendors(components, purchase_order_vendor_ids) > 1:
        return Pathway.P3
    return Pathway.P2
