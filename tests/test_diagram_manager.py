import json

import pytest

from erd_backend.diagram_manager import DiagramManager
from erd_core.blueprint import BlueprintError


TWO_TABLES_SQL = "create table a (id int primary key); create table b (id int, a_id int references a(id));"


class TestEditing:

    def test_starts_empty(self, manager):
        assert manager.sql == ""
        assert manager.scene.nodes == []
        assert manager.can_undo is False
        assert manager.is_dirty is False

    def test_set_sql_rebuilds_and_caches_positions(self, manager, shop_sql):
        scene = manager.set_sql(shop_sql)

        assert len(scene.nodes) == 4
        assert len(scene.routes) == 2
        assert manager.positions == scene.positions()
        assert manager.is_dirty is True
        assert manager.can_undo is True

    def test_same_sql_is_a_no_op(self, manager):
        manager.set_sql(TWO_TABLES_SQL)
        manager.set_sql(TWO_TABLES_SQL)
        manager.undo()
        assert manager.sql == ""

    def test_move_node_survives_sql_edit(self, manager):
        manager.set_sql(TWO_TABLES_SQL)
        manager.move_node("a", 900, 300)
        manager.set_sql(TWO_TABLES_SQL + " create table c (id int);")

        node = manager.scene.get_node("a")
        assert (node.x, node.y) == (900, 300)

    def test_move_node_with_snap(self, manager):
        manager.set_sql(TWO_TABLES_SQL)
        manager.move_node("a", 13, 37, snap=True)
        assert manager.positions["a"] == (24, 48)

    def test_move_unknown_node(self, manager):
        manager.set_sql(TWO_TABLES_SQL)
        assert manager.move_node("zzz", 1, 1) is None

    def test_removed_table_returns_to_cached_position(self, manager):
        manager.set_sql(TWO_TABLES_SQL)
        manager.move_node("b", 777, 555)
        manager.set_sql("create table a (id int primary key);")
        assert manager.scene.get_node("b") is None

        manager.set_sql(TWO_TABLES_SQL)
        node = manager.scene.get_node("b")
        assert (node.x, node.y) == (777, 555)

    def test_auto_layout_discards_positions(self, manager):
        manager.set_sql(TWO_TABLES_SQL)
        manager.move_node("b", 5000, 5000)

        assert manager.auto_layout() is True
        assert manager.positions["b"] == (0, 0)

    def test_auto_layout_on_empty_project(self, manager):
        assert manager.auto_layout() is False

    def test_viewport_and_left_width(self, manager):
        viewport = manager.set_viewport(10, 20, 1.5)
        assert viewport.zoom == 1.5
        assert manager.set_left_width(300) == 300

        with pytest.raises(ValueError):
            manager.set_viewport(0, 0, 0)
        with pytest.raises(ValueError):
            manager.set_left_width(-1)


class TestHistory:

    def test_undo_redo(self, manager):
        manager.set_sql(TWO_TABLES_SQL)
        manager.move_node("a", 900, 300)

        manager.undo()
        assert manager.positions["a"] != (900, 300)
        manager.undo()
        assert manager.sql == ""
        assert manager.undo() is None

        manager.redo()
        assert manager.sql == TWO_TABLES_SQL
        manager.redo()
        assert manager.positions["a"] == (900, 300)
        assert manager.redo() is None

    def test_new_action_clears_redo(self, manager):
        manager.set_sql(TWO_TABLES_SQL)
        manager.undo()
        manager.set_sql("create table z (id int);")
        assert manager.can_redo is False

    def test_history_is_bounded(self):
        manager = DiagramManager(max_history=3)
        for i in range(6):
            manager.set_sql(f"create table t{i} (id int);")

        undone = 0
        while manager.undo() is not None:
            undone += 1
        assert undone == 3
        assert manager.sql == "create table t2 (id int);"

    def test_named_snapshots(self, manager):
        manager.set_sql(TWO_TABLES_SQL)
        manager.create_snapshot("before")
        manager.set_sql("create table z (id int);")

        assert [s["name"] for s in manager.list_snapshots()] == ["before"]
        assert manager.restore_snapshot("before") is not None
        assert manager.sql == TWO_TABLES_SQL

        # Restoring is undoable
        manager.undo()
        assert manager.sql == "create table z (id int);"

        assert manager.restore_snapshot("missing") is None
        assert manager.delete_snapshot("before") is True
        assert manager.delete_snapshot("before") is False

    def test_snapshot_name_required(self, manager):
        with pytest.raises(ValueError):
            manager.create_snapshot("  ")

    def test_snapshots_are_per_manager(self, manager):
        manager.create_snapshot("mine")
        assert DiagramManager().list_snapshots() == []


class TestFiles:

    def test_save_and_open(self, manager, shop_sql, tmp_path):
        manager.set_sql(shop_sql)
        manager.move_node("orders", 640, 480)
        manager.set_viewport(5, 6, 2)
        manager.set_left_width(333)

        path = manager.save_blueprint(tmp_path / "nested" / "shop.bp")
        assert path.exists()
        assert manager.is_dirty is False
        assert manager.file_path == path

        data = json.loads(path.read_text(encoding="utf-8"))
        assert data["leftWidth"] == 333
        assert data["positions"]["orders"] == {"x": 640, "y": 480}

        other = DiagramManager()
        scene = other.open_blueprint(path)
        assert (scene.get_node("orders").x, scene.get_node("orders").y) == (640, 480)
        assert other.viewport.zoom == 2
        assert other.can_undo is False
        assert other.is_dirty is False

    def test_save_again_uses_current_path(self, manager, tmp_path):
        manager.set_sql(TWO_TABLES_SQL)
        path = manager.save_blueprint(tmp_path / "a.bp")
        manager.move_node("a", 1, 2)
        assert manager.save_blueprint() == path

    def test_save_requires_sql_and_path(self, manager, tmp_path):
        with pytest.raises(ValueError):
            manager.save_blueprint(tmp_path / "empty.bp")

        manager.set_sql(TWO_TABLES_SQL)
        with pytest.raises(ValueError):
            manager.save_blueprint()

    def test_open_missing_file(self, manager, tmp_path):
        with pytest.raises(FileNotFoundError):
            manager.open_blueprint(tmp_path / "nope.bp")

    def test_open_invalid_file(self, manager, tmp_path):
        path = tmp_path / "bad.bp"
        path.write_text("not json", encoding="utf-8")
        with pytest.raises(BlueprintError):
            manager.open_blueprint(path)

    def test_import_is_undoable(self, manager):
        source = DiagramManager()
        source.set_sql(TWO_TABLES_SQL)
        text = source.export_blueprint()

        manager.set_sql("create table z (id int);")
        manager.import_blueprint(text)
        assert manager.sql == TWO_TABLES_SQL
        assert manager.positions == source.positions

        manager.undo()
        assert manager.sql == "create table z (id int);"

    def test_import_bad_text_leaves_state(self, manager):
        manager.set_sql(TWO_TABLES_SQL)
        with pytest.raises(BlueprintError):
            manager.import_blueprint('{"version": 1}')
        assert manager.sql == TWO_TABLES_SQL

    def test_new_project_resets(self, manager, tmp_path):
        manager.set_sql(TWO_TABLES_SQL)
        manager.save_blueprint(tmp_path / "a.bp")
        manager.new_project()

        assert manager.sql == ""
        assert manager.file_path is None
        assert manager.can_undo is False


class TestCallbacks:

    def test_change_callback(self, manager):
        calls = []
        manager.on_change(lambda: calls.append(1))
        manager.set_sql(TWO_TABLES_SQL)
        manager.move_node("a", 1, 1)
        assert len(calls) == 2

    def test_save_callback_gets_project_info(self, manager, tmp_path):
        received = []
        manager.on_save(lambda path, info: received.append((path.name, info)))
        manager.set_sql(TWO_TABLES_SQL)
        manager.save_blueprint(tmp_path / "two.bp")

        assert received == [("two.bp", {"name": "two", "table_count": 2, "relation_count": 1})]

    def test_failing_save_callback_does_not_fail_save(self, manager, tmp_path):
        def boom(path, info):
            raise RuntimeError("boom")

        manager.on_save(boom)
        manager.set_sql(TWO_TABLES_SQL)
        assert manager.save_blueprint(tmp_path / "ok.bp").exists()


class TestQueries:

    def test_state_shape(self, manager, shop_sql):
        manager.set_sql(shop_sql)
        state = manager.get_state()

        assert state["sql"] == shop_sql
        assert len(state["nodes"]) == 4
        assert len(state["routes"]) == 2
        assert state["viewport"] == {"x": 0, "y": 0, "zoom": 1}
        assert state["left_width"] == 420
        assert state["file_path"] is None
        assert state["can_undo"] is True

    def test_search_diagnose_summarize(self, manager, shop_sql):
        manager.set_sql(shop_sql)
        assert manager.search_tables("cust") == ["customers"]
        assert manager.diagnose() == []
        assert manager.summarize().total_tables == 3
