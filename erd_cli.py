#!/usr/bin/env python3
"""ERD tool CLI - extract, lay out, route and check SQL schemas from the shell."""

import argparse
import json
import sys
from pathlib import Path

from erd_core.analysis import summarize_schema
from erd_core.blueprint import Blueprint, BLUEPRINT_EXT, dump_blueprint, load_blueprint, safe_file_name
from erd_core.diagnostics import diagnose, diagnostics_summary
from erd_core.extractor import parse_sql_to_graph
from erd_core.logger import configure_logging
from erd_core.scene import build_scene
from erd_core.settings import settings


def _json_out(data):
    print(json.dumps(data))
    sys.exit(0)


def _json_err(message):
    print(json.dumps({"status": "error", "error": message}))
    sys.exit(1)


def _read_sql(path):
    """Read SQL text from a file, or stdin for '-'."""
    if path == "-":
        return sys.stdin.read()
    try:
        return Path(path).read_text(encoding="utf-8")
    except OSError as e:
        _json_err(f"Cannot read {path}: {e}")


def _read_positions(path):
    """Positions cache from a blueprint file, or an empty cache."""
    if not path:
        return {}
    try:
        return load_blueprint(Path(path).read_text(encoding="utf-8")).position_map()
    except OSError as e:
        _json_err(f"Cannot read {path}: {e}")
    except ValueError as e:
        _json_err(str(e))


# ── Extraction ───────────────────────────────────────────────────────────────

def cmd_parse(args):
    graph = parse_sql_to_graph(_read_sql(args.sql_file))
    _json_out(graph.to_json_dict())


def cmd_scene(args):
    scene = build_scene(
        _read_sql(args.sql_file),
        _read_positions(args.positions),
        edge_color=args.edge_color,
        workers=args.workers
    )
    data = scene.to_json_dict()
    if not args.with_graph:
        data.pop("graph")
    _json_out(data)


def cmd_routes(args):
    scene = build_scene(
        _read_sql(args.sql_file),
        _read_positions(args.positions),
        edge_color=args.edge_color,
        workers=args.workers
    )
    _json_out({"routes": [r.to_json_dict() for r in scene.routes]})


# ── Analysis ─────────────────────────────────────────────────────────────────

def cmd_diagnose(args):
    scene = build_scene(_read_sql(args.sql_file), workers=args.workers)
    issues = diagnose(scene.graph, scene.routes)
    _json_out({
        "success": True,
        "issues": [issue.to_dict() for issue in issues],
        "summary": diagnostics_summary(issues)
    })


def cmd_summarize(args):
    graph = parse_sql_to_graph(_read_sql(args.sql_file))
    _json_out({
        "success": True,
        "summary": summarize_schema(graph, top_n=args.top_n).to_dict()
    })


# ── Files ────────────────────────────────────────────────────────────────────

def cmd_export_bp(args):
    sql = _read_sql(args.sql_file)
    if not sql.strip():
        _json_err("Nothing to export: SQL is empty")

    scene = build_scene(sql, _read_positions(args.positions), workers=args.workers)
    bp = Blueprint.from_state(sql=sql, positions=scene.positions())

    if args.output:
        out = Path(args.output)
    else:
        base = Path(args.sql_file).stem if args.sql_file != "-" else ""
        out = Path(settings.diagrams_dir) / safe_file_name(base, BLUEPRINT_EXT)

    try:
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(dump_blueprint(bp), encoding="utf-8")
    except OSError as e:
        _json_err(f"Cannot write {out}: {e}")

    _json_out({"success": True, "file_path": str(out), "nodes": len(scene.nodes)})


# ── Service ──────────────────────────────────────────────────────────────────

def cmd_serve(args):
    from erd_backend.main import run

    run(host=args.host, port=args.port)


# ── Main ─────────────────────────────────────────────────────────────────────

def main(argv=None):
    parser = argparse.ArgumentParser(description="ERD tool CLI")
    parser.add_argument("--log-level", default=settings.log_level)
    sub = parser.add_subparsers(dest="command", required=True)

    # Extraction
    p = sub.add_parser("parse")
    p.add_argument("sql_file")

    p = sub.add_parser("scene")
    p.add_argument("sql_file")
    p.add_argument("--positions", default=None, help="Blueprint file to read node positions from")
    p.add_argument("--edge-color", default=settings.edge_color)
    p.add_argument("--workers", type=int, default=settings.route_workers)
    p.add_argument("--with-graph", action="store_true")

    p = sub.add_parser("routes")
    p.add_argument("sql_file")
    p.add_argument("--positions", default=None)
    p.add_argument("--edge-color", default=settings.edge_color)
    p.add_argument("--workers", type=int, default=settings.route_workers)

    # Analysis
    p = sub.add_parser("diagnose")
    p.add_argument("sql_file")
    p.add_argument("--workers", type=int, default=settings.route_workers)

    p = sub.add_parser("summarize")
    p.add_argument("sql_file")
    p.add_argument("--top-n", type=int, default=5)

    # Files
    p = sub.add_parser("export-bp")
    p.add_argument("sql_file")
    p.add_argument("--output", default=None)
    p.add_argument("--positions", default=None)
    p.add_argument("--workers", type=int, default=settings.route_workers)

    # Service
    p = sub.add_parser("serve")
    p.add_argument("--host", default=settings.host)
    p.add_argument("--port", type=int, default=settings.port)

    args = parser.parse_args(argv)

    if args.command != "serve":
        configure_logging(args.log_level, json_format=settings.log_json)

    cmd_map = {
        "parse": cmd_parse,
        "scene": cmd_scene,
        "routes": cmd_routes,
        "diagnose": cmd_diagnose,
        "summarize": cmd_summarize,
        "export-bp": cmd_export_bp,
        "serve": cmd_serve,
    }
    cmd_map[args.command](args)


if __name__ == "__main__":
    main()
