"""Tests for P1/P2/P3 pathway detection."""

import pytest

from job_kernel.domain.components import ComponentSpec
from job_kernel.domain.pathway import (
    Pathway,
    RoutingType,
    count_distinct_vendors,
    determine_pathway,
)


def _vendor(name, vendor_id):
    return ComponentSpec(type="PRINT", name=name, owner="VENDOR", vendor_id=vendor_id)


class TestCountDistinctVendors:

    def test_no_information_assumes_one(self):
        assert count_distinct_vendors() == 1

    def test_purchase_orders_take_priority(self):
        components = [_vendor("a", "V1"), _vendor("b", "V2"), _vendor("c", "V3")]
        assert count_distinct_vendors(components, ["V1", "V1"]) == 1

    def test_blank_purchase_order_targets_ignored(self):
        assert count_distinct_vendors([], [None, "", "V1", "V2"]) == 2

    def test_vendor_owned_components_counted(self):
        components = [
            _vendor("a", "V1"),
            _vendor("b", "V1"),
            _vendor("c", "V2"),
            ComponentSpec(type="PROOF", name="Proof"),
        ]
        assert count_distinct_vendors(components) == 2

    def test_internal_components_with_vendor_id_ignored(self):
        components = [ComponentSpec(type="PRINT", name="Print", vendor_id="V9")]
        assert count_distinct_vendors(components) == 1


class TestDeterminePathway:

    def test_partner_workflow_is_p1(self):
        assert determine_pathway(RoutingType.BRADFORD_JD) is Pathway.P1

    def test_p1_wins_over_multiple_vendors(self):
        assert determine_pathway("BRADFORD_JD", [], ["V1", "V2"]) is Pathway.P1

    def test_single_vendor_is_p2(self):
        assert determine_pathway(RoutingType.THIRD_PARTY_VENDOR, [], ["V1"]) is Pathway.P2
        assert determine_pathway(None) is Pathway.P2

    def test_multiple_vendors_is_p3(self):
        components = [_vendor("a", "V1"), _vendor("b", "V2")]
        assert determine_pathway("THIRD_PARTY_VENDOR", components) is Pathway.P3

    def test_unknown_routing_type_rejected(self):
        with pytest.raises(ValueError):
            determine_pathway("CARRIER_PIGEON")
