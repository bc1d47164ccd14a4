"""Tests for move and delete planning shared by the service and the mirror."""

import pytest

from pagetree.errors import CircularReferenceError, DepthLimitExceededError, ValidationError
from pagetree.tree.invariants import Containment
from pagetree.tree.plans import plan_delete, plan_move
from tests.fixtures import sample_index


class TestPlanMove:
    def test_reposition_within_group(self):
        plan = plan_move(sample_index(), "P2", new_order=0)
        assert plan.placement.parent_id == "S1"
        assert plan.orders == {"P1": 1, "P2": 0}

    def test_reposition_without_order_keeps_position(self):
        plan = plan_move(sample_index(), "P2")
        assert plan.orders == {"P2": 1}

    def test_page_to_other_section_appends(self):
        plan = plan_move(sample_index(), "P3", new_section_id="S1")
        assert plan.placement.parent_id == "S1"
        assert plan.new_order == 2
        assert plan.orders == {"P3": 2}
        assert set(plan.touched_groups) == {("Sub2", "page"), ("S1", "page")}

    def test_page_subtree_inherits_new_containment(self):
        plan = plan_move(sample_index(), "P1", new_subsection_id="Sub2", new_order=0)
        assert plan.descendants == {"P1a", "P1a1"}
        assert plan.descendant_containment == Containment("S2", "Sub2")
        # P3 made room at the front of Sub2; P2 closed the gap in S1.
        assert plan.orders == {"P1": 0, "P3": 1, "P2": 0}

    def test_subsection_move_retargets_its_pages(self):
        plan = plan_move(sample_index(), "Sub2", new_parent_id="S1")
        assert plan.placement.containment == Containment("S1", None)
        assert plan.descendant_containment == Containment("S1", "Sub2")

    def test_circular_move_rejected(self):
        with pytest.raises(CircularReferenceError):
            plan_move(sample_index(), "P1", new_parent_id="P1a1")

    def test_move_that_pushes_subtree_past_ceiling(self):
        # P1 -> P1a -> P1a1 under P2 puts P1a1 at depth 4.
        with pytest.raises(DepthLimitExceededError):
            plan_move(sample_index(), "P1", new_parent_id="P2", max_depth=3)
        plan = plan_move(sample_index(), "P1", new_parent_id="P2", max_depth=4)
        assert plan.placement.parent_id == "P2"


class TestPlanDelete:
    def test_deepest_first_and_gap_closed(self):
        plan = plan_delete(sample_index(), "P1")
        assert plan.doomed == ["P1a1", "P1a", "P1"]
        assert plan.orders == {"P2": 0}

    def test_no_cascade_with_children_rejected(self):
        with pytest.raises(ValidationError):
            plan_delete(sample_index(), "P1", cascade=False)

    def test_no_cascade_on_leaf(self):
        plan = plan_delete(sample_index(), "P2", cascade=False)
        assert plan.doomed == ["P2"]
        assert plan.orders == {}
