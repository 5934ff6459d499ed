"""
Schema analysis - Relation-graph analysis and summarization utilities.

Provides analysis functions that can be used by the backend, CLI and MCP
tools to understand schema structure. Tables are the graph's vertices and
relations its edges (from the referencing table to the referenced one).
"""

from dataclasses import dataclass, field

from .models import SchemaGraph


@dataclass
class ConnectedComponent:
    """A group of tables linked by relations."""
    table_names: list[str] = field(default_factory=list)
    relation_count: int = 0

    @property
    def size(self) -> int:
        return len(self.table_names)


@dataclass
class TableConnectionInfo:
    """Relation counts for a single table."""
    table: str
    incoming: int = 0   # Relations referencing this table
    outgoing: int = 0   # Relations from this table's foreign keys

    @property
    def total(self) -> int:
        return self.incoming + self.outgoing


@dataclass
class SchemaSummary:
    """Complete summary of a schema's structure."""
    total_tables: int
    total_columns: int
    total_relations: int
    total_enums: int
    total_indexes: int
    enum_columns: int
    connected_components: int
    most_connected_tables: list[TableConnectionInfo]
    orphan_count: int

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "total_tables": self.total_tables,
            "total_columns": self.total_columns,
            "total_relations": self.total_relations,
            "total_enums": self.total_enums,
            "total_indexes": self.total_indexes,
            "enum_columns": self.enum_columns,
            "connected_components": self.connected_components,
            "most_connected_tables": [
                {
                    "table": t.table,
                    "connections": t.total,
                    "incoming": t.incoming,
                    "outgoing": t.outgoing
                }
                for t in self.most_connected_tables
            ],
            "orphan_count": self.orphan_count
        }


def find_connected_components(graph: SchemaGraph) -> list[ConnectedComponent]:
    """
    Find groups of tables linked by relations using BFS.

    Relations are treated as undirected. Each relation is counted once, in
    the component that holds both of its tables.

    Args:
        graph: The schema to analyze

    Returns:
        List of ConnectedComponent objects, in table order of their first member
    """
    if not graph.tables:
        return []

    table_names = [t.name for t in graph.tables]

    # Build adjacency list (undirected)
    adjacency: dict[str, list[str]] = {name: [] for name in table_names}
    for rel in graph.relations:
        if rel.from_table in adjacency and rel.to_table in adjacency:
            adjacency[rel.from_table].append(rel.to_table)
            adjacency[rel.to_table].append(rel.from_table)

    # BFS to find components
    visited: set[str] = set()
    components: list[ConnectedComponent] = []

    for start in table_names:
        if start in visited:
            continue

        members: list[str] = []
        queue = [start]

        while queue:
            current = queue.pop(0)
            if current in visited:
                continue

            visited.add(current)
            members.append(current)

            for neighbor in adjacency[current]:
                if neighbor not in visited:
                    queue.append(neighbor)

        member_set = set(members)
        relation_count = sum(1 for r in graph.relations if r.from_table in member_set)

        components.append(ConnectedComponent(
            table_names=members,
            relation_count=relation_count
        ))

    return components


def calculate_table_connections(graph: SchemaGraph) -> dict[str, TableConnectionInfo]:
    """
    Calculate relation counts for all tables.

    Args:
        graph: The schema to analyze

    Returns:
        Dictionary mapping table name to TableConnectionInfo
    """
    connections: dict[str, TableConnectionInfo] = {
        t.name: TableConnectionInfo(table=t.name) for t in graph.tables
    }

    for rel in graph.relations:
        if rel.from_table in connections:
            connections[rel.from_table].outgoing += 1
        if rel.to_table in connections:
            connections[rel.to_table].incoming += 1

    return connections


def summarize_schema(graph: SchemaGraph, top_n: int = 5) -> SchemaSummary:
    """
    Generate a summary of a schema.

    Args:
        graph: The schema to summarize
        top_n: Number of top connected tables to include

    Returns:
        SchemaSummary object with all analysis results
    """
    connections = calculate_table_connections(graph)

    # Stable sort keeps source order among equals
    sorted_by_connections = sorted(
        connections.values(),
        key=lambda x: x.total,
        reverse=True
    )
    most_connected = [t for t in sorted_by_connections[:top_n] if t.total > 0]

    orphan_count = sum(1 for t in connections.values() if t.total == 0)

    enum_columns = sum(1 for t in graph.tables for c in t.columns if c.is_enum)

    return SchemaSummary(
        total_tables=len(graph.tables),
        total_columns=sum(len(t.columns) for t in graph.tables),
        total_relations=len(graph.relations),
        total_enums=len(graph.enums),
        total_indexes=sum(len(t.indexes) for t in graph.tables),
        enum_columns=enum_columns,
        connected_components=len(find_connected_components(graph)),
        most_connected_tables=most_connected,
        orphan_count=orphan_count
    )


def filter_tables(graph: SchemaGraph, query: str = "") -> list[str]:
    """
    Table names sorted case-insensitively, filtered by a substring.

    An empty or blank query returns every table.
    """
    names = sorted((t.name for t in graph.tables), key=lambda n: (n.lower(), n))
    q = query.strip().lower()
    if not q:
        return names
    return [n for n in names if q in n.lower()]
