import pytest

from erd_backend.diagram_manager import DiagramManager
from erd_core.models import DiagramNode, NodeKind, SqlColumn, SqlTable


SHOP_SQL = """
-- order management
CREATE TYPE order_status AS ENUM ('pending', 'paid', 'shipped');

CREATE TABLE customers (
    id bigint PRIMARY KEY,
    email varchar(255) NOT NULL,
    created_at timestamp with time zone
);

CREATE TABLE orders (
    id bigint PRIMARY KEY,
    customer_id bigint NOT NULL REFERENCES customers(id),
    status order_status NOT NULL,
    total numeric(10, 2)
);

CREATE TABLE order_items (
    order_id bigint,
    sku text,
    qty int,
    PRIMARY KEY (order_id, sku),
    CONSTRAINT fk_order FOREIGN KEY (order_id) REFERENCES orders
);

CREATE UNIQUE INDEX customers_email_idx ON customers USING btree (lower(email));
"""


@pytest.fixture
def shop_sql():
    return SHOP_SQL


@pytest.fixture
def manager():
    return DiagramManager(max_history=10)


def make_table_node(node_id, x, y, columns=("id",), width=200, height=None):
    table = SqlTable(name=node_id, columns=[SqlColumn(name=c) for c in columns])
    return DiagramNode(
        id=node_id,
        kind=NodeKind.TABLE,
        x=x,
        y=y,
        width=width,
        height=height if height is not None else 40 + 12 + 24 * len(columns) + 12,
        table=table,
    )


def make_box_node(node_id, x, y, width=200, height=120):
    return DiagramNode(id=node_id, kind=NodeKind.ENUM, x=x, y=y, width=width, height=height)
