"""
Schema extractor - Recover a SchemaGraph from free-form DDL text.

The extractor is scanner based rather than grammar based:
- Comments are stripped first; everything else works on the cleaned text
- CREATE TABLE bodies are consumed with a parenthesis depth counter that
  ignores parentheses inside single- or double-quoted spans
- Bodies are split on top-level commas, and each item is classified as a
  table-level foreign key, structural noise, or a column definition
- CREATE TYPE ... AS ENUM and CREATE INDEX statements are found by
  independent scans and attached afterwards

Nothing in this module raises for bad input. Fragments that cannot be
recognized are skipped, so the result always reflects exactly the valid
fragments of the text.
"""

import re
from typing import Optional

from .logger import get_logger
from .models import (
    ForeignKeyTarget,
    SchemaGraph,
    SqlColumn,
    SqlEnum,
    SqlIndex,
    SqlRelation,
    SqlTable,
)

logger = get_logger(__name__)

# Target column used when a FK omits it and the target table has no primary key
DEFAULT_FK_COLUMN = "id"

# Naming convention that marks a type as an enum even without CREATE TYPE
ENUM_SUFFIX_RE = re.compile(r"_enum$", re.IGNORECASE)

# Identifier, optionally quoted, optionally schema-qualified
_NAME = r'(?:"[^"]+"|[\w$]+)(?:\s*\.\s*(?:"[^"]+"|[\w$]+))*'
_NAME_RE = re.compile(_NAME)
_NAME_SEGMENT_RE = re.compile(r'"([^"]+)"|([\w$]+)')
_COLUMN_LIST = r'"?\w+"?(?:\s*,\s*"?\w+"?)*'

_LINE_COMMENT_RE = re.compile(r"--.*$", re.MULTILINE)
_BLOCK_COMMENT_RE = re.compile(r"/\*.*?\*/", re.DOTALL)
_WS_RE = re.compile(r"\s+")

_CREATE_TABLE_RE = re.compile(r"\bcreate\s+(?:(?:global\s+|local\s+)?(?:temp|temporary|unlogged)\s+)?table\b", re.IGNORECASE)
_IF_NOT_EXISTS_RE = re.compile(r"\s*if\s+not\s+exists\b", re.IGNORECASE)
_TABLE_NAME_RE = re.compile(r"\s*(" + _NAME + r")")

_CREATE_ENUM_RE = re.compile(r"\bcreate\s+type\s+(" + _NAME + r")\s+as\s+enum\s*\(", re.IGNORECASE)
_ENUM_VALUE_RE = re.compile(r"'((?:''|[^'])*)'")

_CREATE_INDEX_RE = re.compile(
    r"\bcreate\s+(unique\s+)?index\s+(?:concurrently\s+)?(?:if\s+not\s+exists\s+)?"
    r'("[^"]+"|[^"\s;(]+)\s+on\s+(?:only\s+)?(' + _NAME + r")\s*"
    r"(?:using\s+(\w+)\s*)?\(",
    re.IGNORECASE,
)
_INCLUDE_RE = re.compile(r"\s*include\s*\(", re.IGNORECASE)
_WHERE_RE = re.compile(r"\s*where\b", re.IGNORECASE)

_TABLE_FK_RE = re.compile(
    r"^(?:constraint\s+" + _NAME + r"\s+)?foreign\s+key\s*\(\s*(" + _COLUMN_LIST + r")\s*\)"
    r"\s*references\s+(" + _NAME + r")\s*(?:\(\s*(" + _COLUMN_LIST + r")\s*\))?",
    re.IGNORECASE,
)
_COLUMN_REF_RE = re.compile(
    r"\breferences\s+(" + _NAME + r")\s*(?:\(\s*\"?(\w+)\"?\s*\))?",
    re.IGNORECASE,
)
_NOISE_RES = (
    re.compile(r"^primary\s+key\b", re.IGNORECASE),
    re.compile(r"^unique\b", re.IGNORECASE),
    re.compile(r"^check\b", re.IGNORECASE),
    re.compile(r"^foreign\s+key\b", re.IGNORECASE),
)
_CONSTRAINT_RE = re.compile(r"^constraint\b", re.IGNORECASE)
_REFERENCES_RE = re.compile(r"\breferences\b", re.IGNORECASE)

_COLUMN_DEF_RE = re.compile(r'^(?:"([^"]+)"|(\w+))\s+(.+)$')
_PRIMARY_KEY_RE = re.compile(r"\bprimary\s+key\b", re.IGNORECASE)
_NOT_NULL_RE = re.compile(r"\bnot\s+null\b", re.IGNORECASE)
_STRING_LITERAL_RE = re.compile(r"'(?:[^']|'')*'")

# timestamp with time zone, timestamp(3) with time zone, character varying(255), numeric(10, 2), status_enum[], ...
_TYPE_RE = re.compile(
    r'^\s*((?:"[^"]+"|[a-zA-Z_][\w$]*)(?:\.(?:"[^"]+"|[a-zA-Z_][\w$]*))*)'
    r"(\s*\([^)]*\))?"
    r"(\s+with\s+time\s+zone|\s+without\s+time\s+zone|\s+varying|\s+precision)?"
    r"(\s*\([^)]*\))?"
    r"((?:\s*\[\d*\])*)",
    re.IGNORECASE,
)
_PAREN_SUFFIX_RE = re.compile(r"\([^)]*\)")
_ARRAY_SUFFIX_RE = re.compile(r"(?:\s*\[\d*\])+$")


# --- Text helpers ---

def strip_comments(sql: str) -> str:
    """Remove `-- line` and `/* block */` comments."""
    return _BLOCK_COMMENT_RE.sub("", _LINE_COMMENT_RE.sub("", sql))


def normalize_ws(text: str) -> str:
    return _WS_RE.sub(" ", text).strip()


def unquote_ident(text: str) -> str:
    return text.strip().strip('"').strip()


def normalize_name(raw: str) -> str:
    """Reduce a possibly quoted, schema-qualified name to its final segment."""
    segments = [quoted or bare for quoted, bare in _NAME_SEGMENT_RE.findall(raw)]
    if not segments:
        return unquote_ident(raw)
    return segments[-1]


def base_type_of(type_text: str) -> str:
    """Strip parenthesized parameters and array markers from a type."""
    base = _PAREN_SUFFIX_RE.sub("", type_text)
    base = _ARRAY_SUFFIX_RE.sub("", base).strip()
    match = _NAME_RE.match(base)
    if match is None:
        return base
    return normalize_name(match.group(0))


def _split_column_list(text: str) -> list[str]:
    return [unquote_ident(part) for part in text.split(",") if part.strip()]


# --- Scanning ---

def consume_parenthesized(text: str, open_pos: int) -> Optional[int]:
    """
    Find the end of the parenthesized span opening at `open_pos`.

    Returns the index just past the matching ")" or None when the span never
    closes. Parentheses inside quotes are not counted.
    """
    depth = 0
    in_single = False
    in_double = False

    for pos in range(open_pos, len(text)):
        ch = text[pos]
        if ch == "'" and not in_double:
            in_single = not in_single
        elif ch == '"' and not in_single:
            in_double = not in_double
        elif not in_single and not in_double:
            if ch == "(":
                depth += 1
            elif ch == ")":
                depth -= 1
                if depth == 0:
                    return pos + 1
    return None


def split_top_level(body: str) -> list[str]:
    """Split on commas that are outside parentheses and quotes."""
    parts: list[str] = []
    start = 0
    depth = 0
    in_single = False
    in_double = False

    for pos, ch in enumerate(body):
        if ch == "'" and not in_double:
            in_single = not in_single
        elif ch == '"' and not in_single:
            in_double = not in_double
        elif not in_single and not in_double:
            if ch == "(":
                depth += 1
            elif ch == ")":
                depth = max(0, depth - 1)
            elif ch == "," and depth == 0:
                parts.append(body[start:pos].strip())
                start = pos + 1

    parts.append(body[start:].strip())
    return [part for part in parts if part]


def find_create_table_blocks(sql: str) -> list[tuple[str, str]]:
    """
    Locate every CREATE TABLE and return (table name, body) pairs.

    Blocks with no name, no opening parenthesis before the statement ends,
    or an unterminated body are skipped.
    """
    blocks: list[tuple[str, str]] = []
    pos = 0

    while True:
        match = _CREATE_TABLE_RE.search(sql, pos)
        if match is None:
            break
        p = match.end()

        not_exists = _IF_NOT_EXISTS_RE.match(sql, p)
        if not_exists:
            p = not_exists.end()

        name_match = _TABLE_NAME_RE.match(sql, p)
        if name_match is None:
            pos = p
            continue
        name = normalize_name(name_match.group(1))
        p = name_match.end()

        open_pos = sql.find("(", p)
        if open_pos == -1:
            break
        stmt_end = sql.find(";", p)
        if stmt_end != -1 and stmt_end < open_pos:
            # CREATE TABLE ... AS / LIKE without a column list
            pos = stmt_end + 1
            continue

        close_pos = consume_parenthesized(sql, open_pos)
        if close_pos is None:
            logger.debug("Unterminated body for table %s", name)
            break

        blocks.append((name, sql[open_pos + 1:close_pos - 1]))
        pos = close_pos

    return blocks


def parse_enum_types(sql: str) -> list[SqlEnum]:
    """Find `CREATE TYPE <name> AS ENUM ('a', 'b')` definitions."""
    enums: list[SqlEnum] = []

    for match in _CREATE_ENUM_RE.finditer(sql):
        open_pos = match.end() - 1
        close_pos = consume_parenthesized(sql, open_pos)
        if close_pos is None:
            continue

        body = sql[open_pos + 1:close_pos - 1]
        values = [raw.replace("''", "'") for raw in _ENUM_VALUE_RE.findall(body)]
        enums.append(SqlEnum(name=normalize_name(match.group(1)), values=values))

    return enums


def _statement_tail(sql: str, pos: int) -> str:
    """Text from `pos` up to the next ';' outside quotes."""
    in_single = False
    in_double = False
    for end in range(pos, len(sql)):
        ch = sql[end]
        if ch == "'" and not in_double:
            in_single = not in_single
        elif ch == '"' and not in_single:
            in_double = not in_double
        elif ch == ";" and not in_single and not in_double:
            return sql[pos:end]
    return sql[pos:]


def parse_indexes(sql: str) -> list[SqlIndex]:
    """
    Find `CREATE [UNIQUE] INDEX <name> ON <table> [USING m] (expr)
    [INCLUDE (cols)] [WHERE (predicate)]` statements.
    """
    indexes: list[SqlIndex] = []

    for match in _CREATE_INDEX_RE.finditer(sql):
        open_pos = match.end() - 1
        close_pos = consume_parenthesized(sql, open_pos)
        if close_pos is None:
            continue

        expression = normalize_ws(sql[open_pos + 1:close_pos - 1])
        pos = close_pos

        include = None
        include_match = _INCLUDE_RE.match(sql, pos)
        if include_match:
            inc_open = include_match.end() - 1
            inc_close = consume_parenthesized(sql, inc_open)
            if inc_close is not None:
                include = normalize_ws(sql[inc_open + 1:inc_close - 1])
                pos = inc_close

        where = None
        where_match = _WHERE_RE.match(sql, pos)
        if where_match:
            predicate = _statement_tail(sql, where_match.end()).strip()
            if predicate.startswith("(") and consume_parenthesized(predicate, 0) == len(predicate):
                predicate = predicate[1:-1]
            where = normalize_ws(predicate) or None

        method = match.group(4)
        indexes.append(SqlIndex(
            name=unquote_ident(match.group(2)),
            table=normalize_name(match.group(3)),
            unique=bool(match.group(1)),
            method=method.lower() if method else None,
            expression=expression,
            include=include,
            where=where,
        ))

    return indexes


# --- Item classification ---

def parse_column(line: str, enum_names: set[str]) -> Optional[tuple[SqlColumn, Optional[ForeignKeyTarget]]]:
    """
    Parse one column definition item.

    Returns the column and, when the definition carries a REFERENCES clause,
    the raw (unresolved) FK target. Returns None if the item is not a column.
    """
    match = _COLUMN_DEF_RE.match(line)
    if match is None:
        return None

    name = match.group(1) or match.group(2)
    rest = match.group(3)
    # Keywords inside DEFAULT or CHECK literals do not count
    clauses = _STRING_LITERAL_RE.sub("''", rest)

    is_pk = bool(_PRIMARY_KEY_RE.search(clauses))
    is_not_null = is_pk or bool(_NOT_NULL_RE.search(clauses))

    type_match = _TYPE_RE.match(rest)
    if type_match:
        col_type = normalize_ws(type_match.group(0))
    else:
        col_type = rest.split(" ")[0]

    column = SqlColumn(
        name=name,
        type=col_type,
        is_primary_key=is_pk,
        is_not_null=is_not_null,
    )

    target = None
    ref = _COLUMN_REF_RE.search(clauses)
    if ref:
        target = ForeignKeyTarget(table=normalize_name(ref.group(1)), column=ref.group(2))
        column.is_foreign_key = True
        column.fk_to = target

    # Enum detection also works when the enum itself is not in the text
    enum_name = base_type_of(col_type)
    if enum_name in enum_names or ENUM_SUFFIX_RE.search(enum_name):
        column.is_enum = True
        column.enum_name = enum_name

    return column, target


def _is_noise(line: str) -> bool:
    if _CONSTRAINT_RE.match(line) and not _REFERENCES_RE.search(line):
        return True
    return any(pattern.match(line) for pattern in _NOISE_RES)


def _parse_table(
    name: str,
    body: str,
    enum_names: set[str]
) -> tuple[SqlTable, list[tuple[str, ForeignKeyTarget]]]:
    """Parse one table body into a table plus its raw FK captures."""
    columns: list[SqlColumn] = []
    captures: list[tuple[str, ForeignKeyTarget]] = []

    for item in split_top_level(body):
        line = normalize_ws(item)

        fk = _TABLE_FK_RE.match(line)
        if fk:
            local_cols = _split_column_list(fk.group(1))
            target_table = normalize_name(fk.group(2))
            target_cols = _split_column_list(fk.group(3)) if fk.group(3) else []
            for i, local_col in enumerate(local_cols):
                target_col = target_cols[i] if i < len(target_cols) else None
                captures.append((local_col, ForeignKeyTarget(table=target_table, column=target_col)))
            continue

        if _is_noise(line):
            continue

        parsed = parse_column(line, enum_names)
        if parsed is None:
            continue
        column, target = parsed
        columns.append(column)
        if target is not None:
            captures.append((column.name, target))

    return SqlTable(name=name, columns=columns), captures


# --- Entry point ---

def parse_sql_to_graph(sql: str) -> SchemaGraph:
    """
    Extract tables, enums, indexes and relations from DDL text.

    Args:
        sql: Free-form text containing zero or more definitions

    Returns:
        A SchemaGraph; identical text always yields identical contents and order
    """
    if not sql or not sql.strip():
        return SchemaGraph()

    cleaned = strip_comments(sql)

    enums = parse_enum_types(cleaned)
    enum_names = {e.name for e in enums}
    indexes = parse_indexes(cleaned)

    # Table name is the unique key: a redefinition replaces the earlier body
    # but keeps its slot in source order.
    bodies: dict[str, str] = {}
    for name, body in find_create_table_blocks(cleaned):
        bodies[name] = body

    tables: list[SqlTable] = []
    table_by_name: dict[str, SqlTable] = {}
    captures: list[tuple[str, str, ForeignKeyTarget]] = []

    for name, body in bodies.items():
        table, table_captures = _parse_table(name, body, enum_names)
        tables.append(table)
        table_by_name[name] = table
        captures.extend((name, column, target) for column, target in table_captures)

    for index in indexes:
        table = table_by_name.get(index.table)
        if table is not None:
            table.indexes.append(index)

    relations: list[SqlRelation] = []
    for from_table, from_column, target in captures:
        target_table = table_by_name.get(target.table)
        if target_table is None:
            continue

        to_column = target.column or target_table.primary_key() or DEFAULT_FK_COLUMN
        relations.append(SqlRelation(
            from_table=from_table,
            from_column=from_column,
            to_table=target.table,
            to_column=to_column,
        ))

        column = table_by_name[from_table].get_column(from_column)
        if column is not None:
            column.is_foreign_key = True
            column.fk_to = ForeignKeyTarget(table=target.table, column=to_column)

    logger.debug(
        "Extracted %d tables, %d enums, %d indexes, %d relations",
        len(tables), len(enums), len(indexes), len(relations)
    )

    return SchemaGraph(tables=tables, enums=enums, relations=relations)
