import pytest

from graph_settings import NODE_SIZE, ROOT_SIZE
from graph_state import (
    GraphEdge, click, close_course, hover_in, hover_out, initial_state, open_course,
    reconcile_edges, removal_set, set_highlight, set_hover_pin, with_positions,
)


def open_all(state, index, *pairs):
    for parent, course in pairs:
        state = reconcile_edges(open_course(state, index, parent, course), index)
    return state


def close(state, index, course, parent=None):
    return reconcile_edges(close_course(state, index, course, parent), index)


def assert_consistent(state):
    for source, target in state.edges:
        assert source in state.nodes
        assert target in state.nodes


@pytest.fixture
def econ_201(index):
    return initial_state(index, "ECON 201", anchor=(500.0, 400.0))


class TestInitialState:
    def test_single_pinned_root(self, econ_201):
        root = econ_201.nodes["ECON 201"]
        assert list(econ_201.nodes) == ["ECON 201"]
        assert root.persisted and root.pinned and root.fixed
        assert (root.x, root.y) == (500.0, 400.0)
        assert (root.width, root.height) == ROOT_SIZE
        assert root.subtitle == "Microeconomic Theory I: Competitive Behavior"
        assert econ_201.edges == {}
        assert econ_201.reopen_memory == {}


class TestOpen:
    def test_open_leaf(self, index, econ_201):
        state = open_course(econ_201, index, "ECON 201", "ECON 103")
        node = state.nodes["ECON 103"]
        assert node.persisted
        assert node.primary_parent_id == "ECON 201"
        assert node.highlight
        assert (node.width, node.height) == NODE_SIZE
        assert state.edges == {("ECON 201", "ECON 103"): GraphEdge("ECON 201", "ECON 103")}
        assert not [key for key in state.edges if key[0] == "ECON 103"]

    def test_open_does_not_mutate_input(self, index, econ_201):
        open_course(econ_201, index, "ECON 201", "ECON 103")
        assert list(econ_201.nodes) == ["ECON 201"]

    def test_open_under_absent_parent_is_noop(self, index, econ_201):
        assert open_course(econ_201, index, "MATH 150", "MATH 100") is econ_201

    def test_reopen_keeps_primary_parent(self, index, econ_201):
        state = open_all(econ_201, index,
                         ("ECON 201", "MATH 150"), ("ECON 201", "MATH 154"),
                         ("MATH 150", "MATH 100"), ("MATH 154", "MATH 100"))
        assert state.nodes["MATH 100"].primary_parent_id == "MATH 150"
        assert state.edges[("MATH 154", "MATH 100")].ephemeral is False

    def test_open_refreshes_highlight(self, index, econ_201):
        state = open_course(econ_201, index, "ECON 201", "ECON 103")
        state = set_highlight(state, "ECON 103", False)
        state = open_course(state, index, "ECON 201", "ECON 103")
        assert state.nodes["ECON 103"].highlight


class TestClose:
    def test_close_restores_previous_state(self, index, econ_201):
        opened = open_all(econ_201, index, ("ECON 201", "ECON 103"))
        closed = close(opened, index, "ECON 103")
        assert closed.nodes == econ_201.nodes
        assert closed.edges == econ_201.edges

    def test_close_cascades_through_sole_children(self, index, econ_201):
        state = open_all(econ_201, index,
                         ("ECON 201", "MATH 150"), ("MATH 150", "MATH 100"),
                         ("MATH 100", "SFU FAN X92"), ("SFU FAN X92", "SFU FAN X91"))
        state = close(state, index, "MATH 150")
        assert set(state.nodes) == {"ECON 201"}
        assert state.edges == {}
        assert state.reopen_memory == {"MATH 150": frozenset({"MATH 100"})}

    def test_close_keeps_child_with_other_parent(self, index, econ_201):
        state = open_all(econ_201, index,
                         ("ECON 201", "MATH 150"), ("ECON 201", "MATH 151"),
                         ("MATH 150", "MATH 100"), ("MATH 151", "MATH 100"))
        state = close(state, index, "MATH 150")
        assert "MATH 100" in state.nodes
        assert ("MATH 151", "MATH 100") in state.edges
        assert "MATH 150" not in state.reopen_memory
        assert_consistent(state)

    def test_removal_set(self, index, econ_201):
        state = open_all(econ_201, index,
                         ("ECON 201", "MATH 150"), ("MATH 150", "MATH 100"),
                         ("MATH 100", "SFU FAN X92"))
        removal, direct = removal_set(state, index, "MATH 150")
        assert removal == {"MATH 150", "MATH 100", "SFU FAN X92"}
        assert direct == {"MATH 100"}

    def test_close_root_is_noop(self, index, econ_201):
        state = open_all(econ_201, index, ("ECON 201", "ECON 103"))
        assert close_course(state, index, "ECON 201") is state

    def test_close_missing_node_is_noop(self, index, econ_201):
        assert close_course(econ_201, index, "MATH 150") is econ_201

    def test_close_preview_node_is_noop(self, index, econ_201):
        state = hover_in(econ_201, index, "ECON 201", "ECON 103")
        assert close_course(state, index, "ECON 103") is state


class TestReopen:
    def test_reopen_restores_sole_children_only(self, index):
        state = initial_state(index, "ECON 305")
        state = open_all(state, index,
                         ("ECON 305", "ECON 201"), ("ECON 305", "ECON 103"),
                         ("ECON 201", "MATH 150"))
        assert ("ECON 201", "ECON 103") in state.edges

        closed = close(state, index, "ECON 201")
        assert set(closed.nodes) == {"ECON 305", "ECON 103"}
        assert closed.reopen_memory == {"ECON 201": frozenset({"MATH 150"})}

        reopened = open_all(closed, index, ("ECON 305", "ECON 201"))
        assert set(reopened.nodes) == {"ECON 305", "ECON 201", "ECON 103", "MATH 150"}
        assert set(reopened.edges) == set(state.edges)
        assert reopened.reopen_memory == {}

    def test_reopen_only_restores_one_level(self, index, econ_201):
        state = open_all(econ_201, index,
                         ("ECON 201", "MATH 150"), ("MATH 150", "MATH 100"),
                         ("MATH 100", "SFU FAN X92"))
        state = close(state, index, "MATH 150")
        state = open_all(state, index, ("ECON 201", "MATH 150"))
        assert set(state.nodes) == {"ECON 201", "MATH 150", "MATH 100"}

    def test_memory_is_consumed_only_by_its_own_course(self, index, econ_201):
        state = open_all(econ_201, index,
                         ("ECON 201", "MATH 150"), ("MATH 150", "MATH 100"),
                         ("MATH 100", "SFU FAN X92"))
        state = close(state, index, "MATH 100")
        state = close(state, index, "MATH 150")
        assert state.reopen_memory == {"MATH 100": frozenset({"SFU FAN X92"})}

        state = open_all(state, index, ("ECON 201", "MATH 150"))
        assert set(state.nodes) == {"ECON 201", "MATH 150"}
        assert state.reopen_memory == {"MATH 100": frozenset({"SFU FAN X92"})}

        state = open_all(state, index, ("MATH 150", "MATH 100"))
        assert set(state.nodes) == {"ECON 201", "MATH 150", "MATH 100", "SFU FAN X92"}
        assert state.reopen_memory == {}


class TestSharedChildren:
    @pytest.fixture
    def shared(self, index):
        state = initial_state(index, "ECON 305")
        return open_all(state, index,
                        ("ECON 305", "ECON 201"), ("ECON 305", "ECON 103"),
                        ("ECON 201", "ECON 103"))

    def test_close_under_one_parent_keeps_other(self, index, shared):
        state = close(shared, index, "ECON 103", parent="ECON 305")
        assert state.nodes["ECON 103"].persisted
        assert ("ECON 201", "ECON 103") in state.edges
        assert ("ECON 305", "ECON 103") not in state.edges

    def test_close_under_second_parent_removes(self, index, shared):
        state = close(shared, index, "ECON 103", parent="ECON 305")
        state = close(state, index, "ECON 103", parent="ECON 201")
        assert "ECON 103" not in state.nodes
        assert state.detached == frozenset()
        assert_consistent(state)

    def test_click_reattaches_detached_edge(self, index, shared):
        state = reconcile_edges(click(shared, index, "ECON 305", "ECON 103"), index)
        assert ("ECON 305", "ECON 103") not in state.edges
        state = reconcile_edges(click(state, index, "ECON 305", "ECON 103"), index)
        assert ("ECON 305", "ECON 103") in state.edges
        assert state.detached == frozenset()


class TestHover:
    def test_hover_preview_and_leave(self, index, econ_201):
        state = hover_in(econ_201, index, "ECON 201", "ECON 103")
        node = state.nodes["ECON 103"]
        assert not node.persisted and node.highlight
        assert state.edges[("ECON 201", "ECON 103")].ephemeral
        state = hover_out(state, "ECON 201", "ECON 103")
        assert state.nodes == econ_201.nodes
        assert state.edges == {}

    def test_click_during_hover_survives_hover_out(self, index, econ_201):
        state = hover_in(econ_201, index, "ECON 201", "ECON 103")
        state = reconcile_edges(click(state, index, "ECON 201", "ECON 103"), index)
        assert state.edges[("ECON 201", "ECON 103")].ephemeral is False
        assert len(state.edges) == 1

        state = hover_out(state, "ECON 201", "ECON 103")
        node = state.nodes["ECON 103"]
        assert node.persisted and not node.highlight
        assert ("ECON 201", "ECON 103") in state.edges

    def test_hover_existing_node_only_highlights(self, index, econ_201):
        state = open_all(econ_201, index, ("ECON 201", "MATH 150"), ("ECON 201", "MATH 151"))
        state = set_highlight(state, "MATH 150", False)
        hovered = hover_in(state, index, "MATH 151", "MATH 150")
        assert hovered.nodes["MATH 150"].highlight
        assert hovered.edges == state.edges

    def test_hover_out_of_unknown_pair_is_noop(self, econ_201):
        assert hover_out(econ_201, "ECON 201", "ECON 103") is econ_201


class TestReconcile:
    def test_adds_edges_between_related_open_nodes(self, index):
        state = initial_state(index, "ECON 305")
        state = open_course(state, index, "ECON 305", "ECON 201")
        state = open_course(state, index, "ECON 305", "ECON 103")
        assert ("ECON 201", "ECON 103") not in state.edges
        state = reconcile_edges(state, index)
        assert ("ECON 201", "ECON 103") in state.edges

    def test_is_idempotent(self, index):
        state = initial_state(index, "ECON 305")
        state = open_all(state, index, ("ECON 305", "ECON 201"), ("ECON 305", "ECON 103"))
        assert reconcile_edges(state, index) is state

    def test_ignores_preview_nodes(self, index, econ_201):
        state = hover_in(econ_201, index, "ECON 201", "MATH 150")
        state = reconcile_edges(state, index)
        assert state.edges[("ECON 201", "MATH 150")].ephemeral
        state = hover_out(state, "ECON 201", "MATH 150")
        assert "MATH 150" not in state.nodes
        assert state.edges == {}


class TestSmallUpdates:
    def test_hover_pin_holds_current_position(self, index, econ_201):
        state = open_course(econ_201, index, "ECON 201", "ECON 103")
        state = with_positions(state, {"ECON 103": (10.0, 20.0), "GONE 1": (0.0, 0.0)})
        pinned = set_hover_pin(state, "ECON 103", True)
        node = pinned.nodes["ECON 103"]
        assert node.fixed and (node.fx, node.fy) == (10.0, 20.0)
        released = set_hover_pin(pinned, "ECON 103", False)
        assert not released.nodes["ECON 103"].fixed

    def test_unpinning_root_keeps_anchor(self, econ_201):
        state = set_hover_pin(econ_201, "ECON 201", True)
        state = set_hover_pin(state, "ECON 201", False)
        assert state.nodes["ECON 201"].fixed
