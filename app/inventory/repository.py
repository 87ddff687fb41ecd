

# app/inventory/repository.py
from __future__ import annotations

from typing import Any, Optional

from psycopg2.extensions import connection as PGConn
from psycopg2.extras import RealDictCursor

from app.errors import InsufficientStock, InvalidAmount
from app.inventory.model import Product


def insert_product(conn: PGConn, product: Product) -> None:
    with conn.cursor() as cur:
        cur.execute(
            """
            INSERT INTO app.products (
              id, seller_id, title, description, price, quantity,
              city, delivery_method, beneficiary_key, beneficiary_key_kind
            )
            VALUES (%s::uuid, %s::uuid, %s, %s, %s, %s, %s, %s, %s, %s)
            """,
            (
                product.id,
                product.seller_id,
                product.title,
                product.description,
                product.price,
                product.quantity,
                product.city,
                product.delivery_method,
                product.beneficiary_key,
                product.beneficiary_key_kind.value,
            ),
        )


def get_product(conn: PGConn, product_id: str) -> Optional[Product]:
    with conn.cursor(cursor_factory=RealDictCursor) as cur:
        cur.execute(
            """
            SELECT id, seller_id, title, description, price, quantity,
                   city, delivery_method, beneficiary_key, beneficiary_key_kind
            FROM app.products
            WHERE id = %s::uuid
            """,
            (product_id,),
        )
        row: Optional[dict[str, Any]] = cur.fetchone()
        return Product.from_row(dict(row)) if row else None


def decrement_stock(conn: PGConn, *, product_id: str, quantity: int) -> int:
    """
    Atomic conditional decrement. Returns the remaining quantity.
    Nothing is written when stock is short.
    """
    if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity <= 0:
        raise InvalidAmount(f"Quantity must be a positive integer, got {quantity!r}")

    with conn.cursor() as cur:
        cur.execute(
            """
            UPDATE app.products
            SET quantity = quantity - %s
            WHERE id = %s::uuid
              AND quantity >= %s
            RETURNING quantity
            """,
            (quantity, product_id, quantity),
        )
        row = cur.fetchone()

    if row is None:
        raise InsufficientStock(product_id, quantity)
    return int(row[0])
