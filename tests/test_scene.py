from erd_core.scene import build_scene


class TestBuildScene:

    def test_full_pipeline(self, shop_sql):
        scene = build_scene(shop_sql)

        assert [n.id for n in scene.nodes] == ["customers", "orders", "order_items", "enum:order_status"]
        assert [e.id for e in scene.edges] == [
            "orders.customer_id->customers.id",
            "order_items.order_id->orders.id",
        ]
        assert [r.id for r in scene.routes] == [e.id for e in scene.edges]
        for route in scene.routes:
            assert len(route.points) >= 2
            for (x1, y1), (x2, y2) in zip(route.points, route.points[1:]):
                assert x1 == x2 or y1 == y2

    def test_referencing_tables_sit_left_of_referenced(self, shop_sql):
        scene = build_scene(shop_sql)
        items = scene.get_node("order_items")
        orders = scene.get_node("orders")
        customers = scene.get_node("customers")
        assert items.x < orders.x < customers.x

    def test_cached_positions_survive_rebuild(self, shop_sql):
        first = build_scene(shop_sql, {"customers": (1000, 40)})
        assert first.get_node("customers").x == 1000

        second = build_scene(shop_sql, first.positions())
        assert second.positions() == first.positions()

    def test_relayout_ignores_cache(self, shop_sql):
        scene = build_scene(shop_sql, {"customers": (5000, 40)}, keep_existing=False)
        assert scene.get_node("customers").x != 5000

    def test_edge_color_reaches_routes(self, shop_sql):
        scene = build_scene(shop_sql, edge_color="#123456")
        assert {r.stroke for r in scene.routes} == {"#123456"}

    def test_empty_text_gives_empty_scene(self):
        scene = build_scene("")
        assert scene.nodes == []
        assert scene.routes == []
        assert scene.to_json_dict() == {
            "graph": {"tables": [], "enums": [], "relations": []},
            "nodes": [],
            "edges": [],
            "routes": [],
        }

    def test_json_nodes_omit_schema_payload(self, shop_sql):
        data = build_scene(shop_sql).to_json_dict()
        assert set(data["nodes"][0]) == {"id", "kind", "x", "y", "width", "height"}
        assert [n["kind"] for n in data["nodes"]] == ["table", "table", "table", "enum"]
