"""Tests for the pure tree invariant engine: traversal, depth, cycles, containment."""

import pytest

from pagetree.errors import (
    CircularReferenceError,
    DepthLimitExceededError,
    NodeNotFoundError,
    ValidationError,
)
from pagetree.tree.invariants import (
    Containment,
    Placement,
    can_reparent,
    depth_of,
    descendants_of,
    resolve_containment,
    resolve_move,
    resolve_placement,
    sort_by_depth_desc,
    subtree_height,
)
from tests.fixtures import entry, make_index, sample_index


class TestDescendants:
    def test_collects_whole_subtree(self):
        assert descendants_of(sample_index(), "P1") == {"P1a", "P1a1"}

    def test_leaf_has_no_descendants(self):
        assert descendants_of(sample_index(), "P2") == set()

    def test_section_includes_subsections_and_their_pages(self):
        assert descendants_of(sample_index(), "S2") == {"Sub2", "P3"}

    def test_terminates_on_stored_cycle(self):
        """A corrupt A <-> B loop still terminates thanks to the visited set."""
        index = make_index(entry("A", parent_id="B"), entry("B", parent_id="A"))
        assert descendants_of(index, "A") == {"B"}

    def test_subtree_height(self):
        index = sample_index()
        assert subtree_height(index, "P1") == 2
        assert subtree_height(index, "S2") == 2
        assert subtree_height(index, "P2") == 0


class TestDepth:
    def test_depths(self):
        index = sample_index()
        assert depth_of(index, "S1") == 0
        assert depth_of(index, "P1") == 1
        assert depth_of(index, "P1a1") == 3
        assert depth_of(index, "P3") == 2

    def test_cycle_raises_instead_of_looping(self):
        index = make_index(entry("A", parent_id="B"), entry("B", parent_id="A"))
        with pytest.raises(DepthLimitExceededError):
            depth_of(index, "A", max_depth=5)

    def test_chain_longer_than_ceiling_raises(self):
        entries = [entry("n0", kind="section")]
        entries += [entry(f"n{i}", parent_id=f"n{i - 1}") for i in range(1, 7)]
        index = make_index(*entries)
        assert depth_of(index, "n6", max_depth=6) == 6
        with pytest.raises(DepthLimitExceededError):
            depth_of(index, "n6", max_depth=3)

    def test_unknown_node(self):
        with pytest.raises(NodeNotFoundError):
            depth_of(sample_index(), "missing")

    def test_sort_by_depth_desc(self):
        ordered = sort_by_depth_desc(sample_index(), ["P1", "P1a1", "P1a"])
        assert ordered == ["P1a1", "P1a", "P1"]


class TestCanReparent:
    def test_self_is_rejected(self):
        assert can_reparent(sample_index(), "P1", "P1") is False

    def test_descendant_is_rejected(self):
        assert can_reparent(sample_index(), "P1", "P1a") is False
        assert can_reparent(sample_index(), "P1", "P1a1") is False

    def test_sibling_and_parent_are_allowed(self):
        index = sample_index()
        assert can_reparent(index, "P1", "P2") is True
        assert can_reparent(index, "P1a", "P1") is True


class TestContainment:
    def test_page_under_section_page_chain(self):
        assert resolve_containment(sample_index(), "P1a1") == Containment("S1", None)

    def test_page_under_subsection(self):
        assert resolve_containment(sample_index(), "P3") == Containment("S2", "Sub2")

    def test_subsection_and_section_parents(self):
        index = sample_index()
        assert resolve_containment(index, "Sub2") == Containment("S2", "Sub2")
        assert resolve_containment(index, "S1") == Containment("S1", None)


class TestResolvePlacement:
    def test_page_under_page_inherits_containment(self):
        placement = resolve_placement(sample_index(), "page", parent_id="P3")
        assert placement == Placement("P3", Containment("S2", "Sub2"))

    def test_root_page_of_subsection(self):
        placement = resolve_placement(sample_index(), "page", subsection_id="Sub2")
        assert placement == Placement("Sub2", Containment("S2", "Sub2"))

    def test_root_page_of_section(self):
        placement = resolve_placement(sample_index(), "page", section_id="S1")
        assert placement == Placement("S1", Containment("S1", None))

    def test_root_page_requires_a_section(self):
        with pytest.raises(ValidationError):
            resolve_placement(sample_index(), "page")

    def test_override_must_match_parent(self):
        with pytest.raises(ValidationError):
            resolve_placement(sample_index(), "page", parent_id="P1", section_id="S2")
        with pytest.raises(ValidationError):
            resolve_placement(sample_index(), "page", parent_id="P1", subsection_id="Sub2")

    def test_matching_override_is_accepted(self):
        placement = resolve_placement(
            sample_index(), "page", parent_id="P3", section_id="S2", subsection_id="Sub2"
        )
        assert placement.parent_id == "P3"

    def test_subsection_must_belong_to_override_section(self):
        with pytest.raises(ValidationError):
            resolve_placement(sample_index(), "page", subsection_id="Sub2", section_id="S1")

    def test_subsection_parent_must_be_section(self):
        with pytest.raises(ValidationError):
            resolve_placement(sample_index(), "subsection", parent_id="P1")

    def test_subsection_cannot_nest(self):
        with pytest.raises(ValidationError):
            resolve_placement(sample_index(), "subsection", subsection_id="Sub2")

    def test_section_takes_no_parent(self):
        with pytest.raises(ValidationError):
            resolve_placement(sample_index(), "section", parent_id="S1")

    def test_missing_parent(self):
        with pytest.raises(NodeNotFoundError):
            resolve_placement(sample_index(), "page", parent_id="missing")


class TestResolveMove:
    def test_self_parent_is_validation_error(self):
        with pytest.raises(ValidationError):
            resolve_move(sample_index(), "P1", new_parent_id="P1")

    def test_move_under_descendant_is_circular(self):
        with pytest.raises(CircularReferenceError):
            resolve_move(sample_index(), "P1", new_parent_id="P1a")

    def test_no_target_keeps_parent(self):
        placement = resolve_move(sample_index(), "P1a")
        assert placement == Placement("P1", Containment("S1", None))

    def test_sections_cannot_be_reparented(self):
        with pytest.raises(ValidationError):
            resolve_move(sample_index(), "S1", new_parent_id="S2")

    def test_page_to_other_section(self):
        placement = resolve_move(sample_index(), "P3", new_section_id="S1")
        assert placement == Placement("S1", Containment("S1", None))
