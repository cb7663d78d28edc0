"""プールから接続を借りてSales History (SH) スキーマを参照するクイックスタート。"""

import sys
from typing import Any, TextIO

from adbpool.services.pool import ConnectionPoolManager, PooledConnection

# SHスキーマはAutonomous Databaseの全ユーザーが参照できる
CUSTOMERS_QUERY = (
    "SELECT CUST_ID, CUST_FIRST_NAME, CUST_LAST_NAME, CUST_CITY, CUST_CREDIT_LIMIT "
    "FROM SH.CUSTOMERS WHERE ROWNUM < 20 ORDER BY CUST_ID"
)

CUSTOMERS_COLUMNS = ("CUST_ID", "CUST_FIRST_NAME", "CUST_LAST_NAME", "CUST_CITY", "CUST_CREDIT_LIMIT")


def print_pool_counts(pool: ConnectionPoolManager, out: TextIO) -> None:
    print(f"Available connections: {pool.available_count()}", file=out)
    print(f"Borrowed connections: {pool.borrowed_count()}", file=out)


def format_row(row: tuple[Any, ...]) -> str:
    return " ".join("" if value is None else str(value) for value in row)


def query_customers(conn: PooledConnection, out: TextIO) -> list[tuple[Any, ...]]:
    """顧客を最大19件取得して表示する。"""
    print(f"\nQuery is {CUSTOMERS_QUERY}", file=out)
    rows = conn.execute(CUSTOMERS_QUERY)
    print("\n" + " ".join(CUSTOMERS_COLUMNS), file=out)
    print("-" * 59, file=out)
    for row in rows:
        print(format_row(row), file=out)
    return rows


def run_quickstart(pool: ConnectionPoolManager, out: TextIO | None = None) -> list[tuple[Any, ...]]:
    """接続を借用してクエリを実行し、返却前後のプールの状態を表示する。

    Args:
        pool: 初期化済みのコネクションプール。
        out: 出力先。Noneの場合は標準出力。

    Returns:
        取得した行。
    """
    out = out or sys.stdout
    with pool.connection() as conn:
        print_pool_counts(pool, out)
        rows = query_customers(conn, out)
    print_pool_counts(pool, out)
    return rows
