import pytest

from conftest import make_box_node, make_table_node
from erd_core import router
from erd_core.models import DiagramEdge
from erd_core.router import (
    ENDPOINT_PAD,
    OBSTACLE_PAD,
    Rect,
    arrow_head_points,
    build_obstacles_for_edge,
    compress_orthogonal,
    enforce_right_angle_endpoints,
    fallback_path,
    label_position,
    route_edge,
    route_edges,
    route_manhattan_astar,
    select_anchors,
    table_anchor_y,
)


def _assert_orthogonal(points):
    for (x1, y1), (x2, y2) in zip(points, points[1:]):
        assert x1 == x2 or y1 == y2, f"diagonal segment {(x1, y1)} -> {(x2, y2)}"


def _crosses(points, rect):
    """True if any axis-aligned segment passes through the rectangle's interior."""
    for (x1, y1), (x2, y2) in zip(points, points[1:]):
        if y1 == y2:
            lo, hi = sorted((x1, x2))
            if rect.y < y1 < rect.y + rect.h and lo < rect.x + rect.w and hi > rect.x:
                return True
        else:
            lo, hi = sorted((y1, y2))
            if rect.x < x1 < rect.x + rect.w and lo < rect.y + rect.h and hi > rect.y:
                return True
    return False


class TestAnchors:

    def test_table_anchor_rows(self):
        table = make_table_node("t", 0, 0, columns=("id", "name", "email")).table
        assert table_anchor_y(table, "name") == 40 + 12 + 24 + 12
        assert table_anchor_y(table, None) == 40 + 12 + 24 + 12
        assert table_anchor_y(table, "unknown") == 40 + 12 + 12

    def test_target_to_the_right(self):
        a = make_box_node("a", 0, 0)
        b = make_box_node("b", 400, 100)
        start, end = select_anchors(a, b)
        assert start == (200, 60)
        assert end == (400, 160)

    def test_target_to_the_left_mirrors_sides(self):
        a = make_box_node("a", 400, 0)
        b = make_box_node("b", 0, 0)
        start, end = select_anchors(a, b)
        assert start == (400, 60)
        assert end == (200, 60)

    def test_table_anchor_uses_column_row(self):
        a = make_table_node("a", 0, 0, columns=("id", "b_id"))
        b = make_table_node("b", 400, 0, columns=("id",))
        start, end = select_anchors(a, b, "b_id", "id")
        assert start == (200, 40 + 12 + 24 + 12)
        assert end == (400, 40 + 12 + 12)

    def test_obstacle_margins(self):
        nodes = [make_box_node("a", 0, 0), make_box_node("b", 400, 0), make_box_node("c", 0, 400)]
        obstacles = build_obstacles_for_edge(nodes, "a", "b")
        assert obstacles[0] == Rect(-ENDPOINT_PAD, -ENDPOINT_PAD, 200 + 2 * ENDPOINT_PAD, 120 + 2 * ENDPOINT_PAD)
        assert obstacles[2] == Rect(-OBSTACLE_PAD, 400 - OBSTACLE_PAD, 200 + 2 * OBSTACLE_PAD, 120 + 2 * OBSTACLE_PAD)


class TestPolylineHelpers:

    def test_compress_merges_collinear_and_duplicates(self):
        points = [(0, 0), (10, 0), (20, 0), (20, 10), (20, 10), (20, 30)]
        assert compress_orthogonal(points) == [(0, 0), (20, 0), (20, 30)]

    def test_enforce_right_angles_on_diagonal_pair(self):
        assert enforce_right_angle_endpoints([(0, 0), (100, 50)]) == [(0, 0), (50, 0), (50, 50), (100, 50)]

    def test_enforce_right_angles_inserts_corners(self):
        points = enforce_right_angle_endpoints([(0, 5), (24, 0), (96, 0), (120, 7)])
        _assert_orthogonal(points)
        assert points[0] == (0, 5)
        assert points[-1] == (120, 7)

    def test_fallback_path_is_horizontal_vertical_horizontal(self):
        assert fallback_path((0, 0), (100, 50)) == [(0, 0), (50, 0), (50, 50), (100, 50)]

    def test_label_beside_longest_segment(self):
        assert label_position([(0, 0), (100, 0), (100, 10)]) == pytest.approx((50, 10))

    def test_arrow_head_points(self):
        wing1, tip, wing2 = arrow_head_points([(0, 0), (10, 0)])
        assert tip == (10, 0)
        assert wing1 == pytest.approx((0, 6))
        assert wing2 == pytest.approx((0, -6))

    def test_arrow_head_none_for_zero_length_segment(self):
        assert arrow_head_points([(5, 5), (5, 5)]) is None
        assert arrow_head_points([(5, 5)]) is None


class TestSearch:

    def test_open_field_gives_l_path(self):
        """With nothing in the way the route goes horizontal first, then vertical."""
        assert route_manhattan_astar((0, 0), (240, 120), []) == [(0, 0), (240, 0), (240, 120)]

    def test_same_cell_returns_direct_segment(self):
        assert route_manhattan_astar((0, 0), (5, 0), []) == [(0, 0), (5, 0)]

    def test_iteration_cap_gives_up(self):
        assert route_manhattan_astar((0, 0), (2400, 0), [], max_iters=5) is None

    def test_enclosed_goal_gives_up(self):
        walls = [Rect(360, -120, 240, 240)]
        assert route_manhattan_astar((0, 0), (480, 0), walls) is None

    def test_route_avoids_obstacle(self):
        wall = Rect(120, -100, 48, 300)
        points = route_manhattan_astar((0, 48), (288, 48), [wall.inflate(OBSTACLE_PAD)])
        assert points is not None
        assert points[0] == (0, 48)
        assert points[-1] == (288, 48)
        _assert_orthogonal(points)
        assert not _crosses(points, wall)


class TestRouteEdge:

    @pytest.fixture
    def nodes(self):
        return [
            make_box_node("a", 0, 0),
            make_box_node("b", 600, 0),
            make_box_node("wall", 300, -100, width=100, height=400),
        ]

    def test_route_between_boxes(self, nodes):
        edge = DiagramEdge(id="a->b", source="a", target="b", label="x → y", animated=True)
        route = route_edge(edge, nodes)

        assert route.id == "a->b"
        assert route.fallback is False
        assert route.points[0] == (200, 60)
        assert route.points[-1] == (600, 60)
        _assert_orthogonal(route.points)
        assert not _crosses(route.points, Rect(300, -100, 100, 400))
        assert route.arrow_head is not None
        assert route.arrow_head[1] == (600, 60)
        assert route.label == "x → y"
        assert route.animated is True

    def test_unknown_endpoint_returns_none(self, nodes):
        edge = DiagramEdge(id="a->zz", source="a", target="zz")
        assert route_edge(edge, nodes) is None

    def test_fallback_when_search_gives_up(self, nodes, monkeypatch):
        monkeypatch.setattr(router, "route_manhattan_astar", lambda *args, **kwargs: None)
        edge = DiagramEdge(id="a->b", source="a", target="b")
        route = route_edge(edge, nodes)

        assert route.fallback is True
        # Anchors share a row, so the elbow collapses into one segment
        assert route.points == [(200, 60), (600, 60)]

    def test_route_edges_keeps_input_order(self, nodes):
        edges = [
            DiagramEdge(id="b->a", source="b", target="a"),
            DiagramEdge(id="missing", source="a", target="nope"),
            DiagramEdge(id="a->b", source="a", target="b"),
        ]
        sequential = route_edges(edges, nodes)
        threaded = route_edges(edges, nodes, workers=3)

        assert [r.id for r in sequential] == ["b->a", "a->b"]
        assert [r.model_dump() for r in threaded] == [r.model_dump() for r in sequential]
