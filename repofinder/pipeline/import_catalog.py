"""
ImportCatalogStage — load a JSON export of repositories into the catalog.

Upserts each repository into ``repositories`` and, where the export carries
them, its health signals into ``repo_signals``. Run ``refresh-clusters``
afterwards to rebuild the shortlists from the new catalog.
"""

from __future__ import annotations

import logging
from pathlib import Path

from repofinder.models.meta import RunMetadata
from repofinder.pipeline.base import PipelineStage

logger = logging.getLogger(__name__)


class ImportCatalogStage(PipelineStage):
    """Upsert repositories (and signals) from a JSON file.

    Returns the number of repositories written.
    """

    stage_name = "import_catalog"

    def _execute(self, run: RunMetadata, source_path: str | Path | None = None, **kwargs) -> int:
        """Import one catalog file.

        Args:
            run: In-progress :class:`RunMetadata` (mutable, unused here).
            source_path: JSON file to import.

        Returns:
            Number of repositories upserted.
        """
        from repofinder.db.connection import get_connection
        from repofinder.db.repositories.catalog_repo import CatalogRepository
        from repofinder.ingestion.catalog_import import load_catalog_file

        if source_path is None:
            raise ValueError("ImportCatalogStage requires source_path.")

        records = load_catalog_file(source_path)
        with get_connection(self.db_path) as conn:
            catalog = CatalogRepository(conn)
            written = catalog.upsert_many(r.repo for r in records)
            with_signals = 0
            for record in records:
                if record.signals is not None:
                    catalog.upsert_signals(record.repo.repo_id, record.signals)
                    with_signals += 1

        logger.info(
            "Imported %d repositories (%d with signals) from %s",
            written, with_signals, source_path,
        )
        return written
