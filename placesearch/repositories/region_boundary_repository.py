"""Capability checks for region matching.

Named regions can be matched against stored ``region_boundaries`` polygons
when the store has them; otherwise the search falls back to address text.
"""

import logging

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

_POSTGIS_INSTALLED = text("SELECT 1 FROM pg_extension WHERE extname = 'postgis'")

_BOUNDARY_COLUMN = text(
    """
    SELECT 1
    FROM information_schema.columns
    WHERE table_schema = current_schema()
      AND table_name = 'region_boundaries'
      AND column_name = 'boundary'
    """
)


class RegionBoundaryRepository:
    """
    Read-only checks against the catalog; a failed check reads as 'absent'.

    Each check runs in a SAVEPOINT so a failure is rolled back without
    aborting the caller's transaction.
    """

    def __init__(self, db: Session):
        self.db = db

    def has_postgis(self) -> bool:
        return self._exists(_POSTGIS_INSTALLED, "postgis extension")

    def table_has_boundary(self) -> bool:
        """True when ``region_boundaries.boundary`` exists in the current schema."""
        return self._exists(_BOUNDARY_COLUMN, "region_boundaries.boundary")

    def _exists(self, statement, subject: str) -> bool:
        try:
            with self.db.begin_nested():
                return self.db.execute(statement).first() is not None
        except SQLAlchemyError as e:
            logger.debug(f"Check for {subject} failed, treating as absent: {e}")
            return False
