# placesearch/repositories/place_search_repository.py
"""
Repository executing composed place search queries.

Queries arrive fully composed (SQL with ``:pN`` binds plus arguments); this
layer only runs them, scopes the per-call statement timeout to the query and
classifies store failures. There are no retries here: the caller owns retry
policy.
"""
from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Any, Callable, List, Mapping, Optional, TypeVar

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import (
    RepositoryException,
    SearchCancelledException,
    SearchTimeoutException,
    is_db_pool_exhaustion,
    is_query_cancelled,
    is_statement_timeout,
)
from ..database.session_utils import supports_local_statement_timeout

if TYPE_CHECKING:
    from ..services.search.query_composer import ComposedQuery

logger = logging.getLogger(__name__)

T = TypeVar("T")

_CURRENT_TIMEOUT = text("SELECT current_setting('statement_timeout')")
_SET_LOCAL_TIMEOUT = text("SELECT set_config('statement_timeout', :timeout, true)")


class PlaceSearchRepository:
    """
    Repository for place search execution.

    Handles:
    - Page queries returning row mappings
    - Count queries for the total number of matches
    - Statement timeouts on PostgreSQL, restored after each query
    - Server-side cancellation of the running statement
    """

    def __init__(self, db: Session) -> None:
        self.db = db
        self._running_connection: Any = None

    def fetch_rows(
        self, query: "ComposedQuery", timeout_ms: Optional[int] = None
    ) -> List[Mapping[str, Any]]:
        """Run a page query and return its rows as mappings."""
        return self._execute("page", query, timeout_ms, lambda result: list(result.mappings().all()))

    def count(self, query: "ComposedQuery", timeout_ms: Optional[int] = None) -> int:
        """Run a count query and return the total."""
        return self._execute("count", query, timeout_ms, lambda result: int(result.scalar_one()))

    def apply_statement_timeout(self, timeout_ms: int) -> Optional[str]:
        """
        Limit the following statements of the current transaction to ``timeout_ms``.

        Returns:
            The statement_timeout in effect before, or None when the dialect has no
            transaction-local timeout and nothing was changed
        """
        if not supports_local_statement_timeout(self.db):
            return None
        previous = self.db.execute(_CURRENT_TIMEOUT).scalar()
        self.db.execute(_SET_LOCAL_TIMEOUT, {"timeout": str(max(1, int(timeout_ms)))})
        return str(previous)

    def restore_statement_timeout(self, previous: str) -> None:
        """Put back the statement_timeout returned by apply_statement_timeout()."""
        self.db.execute(_SET_LOCAL_TIMEOUT, {"timeout": previous})

    def cancel_running_statement(self) -> bool:
        """
        Ask the server to cancel the statement currently running for this repository.

        Safe to call from another thread: only the DBAPI connection captured when
        the statement started is touched, never the session.
        """
        connection = self._running_connection
        cancel = getattr(connection, "cancel", None)
        if cancel is None:
            return False
        try:
            cancel()
        except Exception as e:
            logger.warning(f"Could not cancel running place search statement: {str(e)}")
            return False
        logger.info("Sent cancel request for running place search statement")
        return True

    def _execute(
        self,
        stage: str,
        query: "ComposedQuery",
        timeout_ms: Optional[int],
        consume: Callable[[Any], T],
    ) -> T:
        start = time.perf_counter()
        try:
            previous_timeout = None
            if timeout_ms is not None:
                previous_timeout = self.apply_statement_timeout(timeout_ms)
            self._running_connection = self._dbapi_connection()
            try:
                outcome = consume(self.db.execute(text(query.sql), query.params))
            finally:
                self._running_connection = None
            if previous_timeout is not None:
                # Later statements in the caller's transaction keep their own limit
                self.restore_statement_timeout(previous_timeout)
        except SQLAlchemyError as e:
            # Rolling back also discards the transaction-local timeout
            self.db.rollback()
            if is_statement_timeout(e):
                logger.warning(f"Place search {stage} query hit statement timeout ({timeout_ms}ms)")
                raise SearchTimeoutException(f"{stage} query", budget_ms=timeout_ms) from e
            if is_query_cancelled(e):
                logger.info(f"Place search {stage} query cancelled on request")
                raise SearchCancelledException(f"{stage} query") from e
            if is_db_pool_exhaustion(e):
                logger.error(f"Place search {stage} query could not get a connection: {str(e)}")
            else:
                logger.error(f"Place search {stage} query failed: {str(e)}")
            raise RepositoryException(f"Failed to execute place search {stage} query: {str(e)}") from e

        elapsed_ms = (time.perf_counter() - start) * 1000
        if elapsed_ms > settings.search_slow_query_ms:
            logger.warning(
                f"Slow place search {stage} query: {elapsed_ms:.0f}ms with {len(query.args)} bind(s)"
            )
        return outcome

    def _dbapi_connection(self) -> Any:
        if not supports_local_statement_timeout(self.db):
            return None
        return self.db.connection().connection.dbapi_connection
