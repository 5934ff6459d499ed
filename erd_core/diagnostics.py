"""
Diagram diagnostics - Check a schema diagram for structural issues.

Provides checks that can be used by the backend, CLI and MCP tools. These are
about what the canvas can show (unresolved foreign keys, isolated tables,
routes that fell back), not semantic validation of the SQL itself.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence

from .layout import build_edges, build_nodes
from .models import DiagramEdge, DiagramNode, EdgeRoute, NodeKind, SchemaGraph


class IssueSeverity(str, Enum):
    """Severity levels for diagnostics."""
    ERROR = "error"      # Invalid state, must be fixed
    WARNING = "warning"  # Potential problem, should review
    INFO = "info"        # Informational, may be intentional


@dataclass
class ValidationIssue:
    """A single issue found in a diagram."""
    severity: IssueSeverity
    message: str
    node_id: str | None = None
    edge_id: str | None = None
    column: str | None = None

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        result = {
            "type": self.severity.value,
            "message": self.message
        }
        if self.node_id:
            result["node_id"] = self.node_id
        if self.edge_id:
            result["edge_id"] = self.edge_id
        if self.column:
            result["column"] = self.column
        return result


def missing_foreign_keys(
    nodes: Sequence[DiagramNode],
    edges: Sequence[DiagramEdge]
) -> dict[str, list[str]]:
    """
    Foreign-key columns that no edge starts from, per table node.

    A column counts as resolved when some edge has the table as its source
    and the column as its source column (compared case-insensitively).
    Every table node gets an entry, possibly empty.
    """
    edge_keys = {(e.source, (e.source_column or "").lower()) for e in edges}

    by_table: dict[str, list[str]] = {}
    for node in nodes:
        if node.kind != NodeKind.TABLE or node.table is None:
            continue
        by_table[node.id] = [
            c.name for c in node.table.columns
            if c.is_foreign_key and (node.id, c.name.lower()) not in edge_keys
        ]
    return by_table


def diagnose(
    graph: SchemaGraph,
    routes: Optional[Sequence[EdgeRoute]] = None
) -> list[ValidationIssue]:
    """
    Check a schema graph and return a list of issues.

    Checks for:
    - Empty schema - INFO
    - Foreign-key columns whose target table was not found - WARNING
    - Tables without any relation - INFO
    - Routes drawn with the fallback path - INFO

    Args:
        graph: The extracted schema
        routes: Routed edges, when available

    Returns:
        List of ValidationIssue objects
    """
    issues: list[ValidationIssue] = []

    if not graph.tables and not graph.enums:
        issues.append(ValidationIssue(
            severity=IssueSeverity.INFO,
            message="Schema has no tables or enums"
        ))
        return issues

    nodes = build_nodes(graph)
    edges = build_edges(graph)

    for table_id, columns in missing_foreign_keys(nodes, edges).items():
        for column in columns:
            table = graph.get_table(table_id)
            col = table.get_column(column) if table else None
            target = col.fk_to.table if col and col.fk_to else "?"
            issues.append(ValidationIssue(
                severity=IssueSeverity.WARNING,
                message=f"Foreign key {table_id}.{column} references unknown table {target}",
                node_id=table_id,
                column=column
            ))

    related: set[str] = set()
    for rel in graph.relations:
        related.add(rel.from_table)
        related.add(rel.to_table)

    isolated = [t.name for t in graph.tables if t.name not in related]
    if isolated:
        issues.append(ValidationIssue(
            severity=IssueSeverity.INFO,
            message=f"Tables without relations: {', '.join(isolated)}"
        ))

    for route in routes or []:
        if route.fallback:
            issues.append(ValidationIssue(
                severity=IssueSeverity.INFO,
                message="Edge drawn with fallback path (no clear route found)",
                edge_id=route.id
            ))

    return issues


def diagnostics_summary(issues: list[ValidationIssue]) -> dict:
    """
    Create a summary of diagnostics.

    Args:
        issues: List of issues

    Returns:
        Dictionary with counts by severity
    """
    return {
        "total": len(issues),
        "errors": len([i for i in issues if i.severity == IssueSeverity.ERROR]),
        "warnings": len([i for i in issues if i.severity == IssueSeverity.WARNING]),
        "info": len([i for i in issues if i.severity == IssueSeverity.INFO]),
        "valid": len([i for i in issues if i.severity == IssueSeverity.ERROR]) == 0
    }
