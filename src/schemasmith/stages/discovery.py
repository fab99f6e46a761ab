# Copyright (c) Syntropy Systems
"""Discovery of recent production output datasets."""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from schemasmith.clients.metrics import row_handle

if TYPE_CHECKING:
    from schemasmith.clients.protocols import MetricsBackend, WorkloadPlatform
    from schemasmith.models import QueryWindow

logger = logging.getLogger(__name__)


class DatasetDiscovery:
    """Find output datasets of recent production runs of a workload."""

    def __init__(self, platform: WorkloadPlatform, metrics: MetricsBackend) -> None:
        self.platform = platform
        self.metrics = metrics

    def discover(self, target: str, window: QueryWindow) -> list[str]:
        """Return distinct output handles, in the order the backend listed them.

        The technical name is resolved to a platform id first, since the
        backend keys its data by id.
        """
        workload_id = self.platform.resolve_workload_id(target)
        rows = self.metrics.execute(workload_id, window)

        handles: list[str] = []
        for row in rows:
            handle = row_handle(row)
            if handle is not None and handle not in handles:
                handles.append(handle)

        logger.info(
            "Found %d datasets for %s (%d rows, last %d days)",
            len(handles),
            target,
            len(rows),
            window.days_back,
        )
        return handles
