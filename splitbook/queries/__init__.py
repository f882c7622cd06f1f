"""Balance report package."""

from splitbook.queries.executor import BalanceQueryExecutor, QueryExecutionError

__all__ = ["BalanceQueryExecutor", "QueryExecutionError"]
