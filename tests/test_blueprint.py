import json

import pytest

from erd_core.blueprint import (
    Blueprint,
    BlueprintError,
    dump_blueprint,
    load_blueprint,
    safe_file_name,
)
from erd_core.models import Viewport


class TestBlueprintFormat:

    def test_dump_uses_on_disk_keys(self):
        bp = Blueprint.from_state("create table a (id int);", {"a": (10, 20)})
        data = json.loads(dump_blueprint(bp))

        assert data == {
            "version": 1,
            "sql": "create table a (id int);",
            "leftWidth": 420,
            "positions": {"a": {"x": 10, "y": 20}},
        }

    def test_viewport_written_when_present(self):
        bp = Blueprint.from_state("x", {}, viewport=Viewport(x=5, y=6, zoom=2))
        data = json.loads(dump_blueprint(bp))
        assert data["viewport"] == {"x": 5, "y": 6, "zoom": 2}

    def test_load_reads_positions(self):
        text = json.dumps({
            "version": 1,
            "sql": "create table a (id int);",
            "leftWidth": 300,
            "positions": {"a": {"x": 1.5, "y": -2}},
        })
        bp = load_blueprint(text)
        assert bp.left_width == 300
        assert bp.position_map() == {"a": (1.5, -2)}
        assert bp.viewport is None

    def test_not_json(self):
        with pytest.raises(BlueprintError, match="not JSON"):
            load_blueprint("{nope")

    @pytest.mark.parametrize("data", [
        [],
        {"version": 2, "sql": "x", "leftWidth": 1, "positions": {}},
        {"version": 1, "sql": "", "leftWidth": 1, "positions": {}},
        {"version": 1, "sql": "x", "leftWidth": 0, "positions": {}},
        {"version": 1, "sql": "x", "leftWidth": 1},
        {"version": 1, "sql": "x", "leftWidth": 1, "positions": {"a": {"x": 1}}},
    ])
    def test_bad_structure(self, data):
        with pytest.raises(BlueprintError, match="structure"):
            load_blueprint(json.dumps(data))

    def test_blueprint_error_is_value_error(self):
        with pytest.raises(ValueError):
            load_blueprint("")


class TestSafeFileName:

    @pytest.mark.parametrize("base, expected", [
        ("shop", "shop.bp"),
        ("my shop v2", "my_shop_v2.bp"),
        ("../etc/passwd", "etc_passwd.bp"),
        ("data-model", "data-model.bp"),
        ("", "project.bp"),
        ("***", "project.bp"),
    ])
    def test_names(self, base, expected):
        assert safe_file_name(base) == expected

    def test_custom_extension(self):
        assert safe_file_name("shop", "sql") == "shop.sql"
