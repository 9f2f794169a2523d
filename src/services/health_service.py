"""Readiness checks for every component the pipeline depends on."""

from __future__ import annotations

import asyncio

import structlog

from src.interfaces.blob_store import IBlobStore
from src.interfaces.embedding_provider import IEmbeddingProvider
from src.interfaces.fulltext_index_provider import IFullTextIndexProvider
from src.interfaces.job_ledger import IJobLedger
from src.interfaces.vector_index_provider import IVectorIndexProvider
from src.models.health import ComponentHealth, HealthReport
from src.utils.logging import get_logger

logger: structlog.BoundLogger = get_logger(__name__)


class HealthService:
    """Builds a :class:`HealthReport` from the injected collaborators."""

    def __init__(
        self,
        ledger: IJobLedger,
        blob_store: IBlobStore,
        vector_index: IVectorIndexProvider,
        fulltext_index: IFullTextIndexProvider,
        embedding_provider: IEmbeddingProvider,
    ) -> None:
        self._ledger = ledger
        self._providers: dict[str, IBlobStore | IVectorIndexProvider | IFullTextIndexProvider | IEmbeddingProvider] = {
            "blob_store": blob_store,
            "vector_index": vector_index,
            "fulltext_index": fulltext_index,
            "embedding": embedding_provider,
        }

    async def check(self) -> HealthReport:
        components = [await self._check_ledger()]
        for name, provider in self._providers.items():
            entry_count: int | None = None
            # is_available() may do blocking network I/O.
            try:
                healthy = await asyncio.to_thread(provider.is_available)
                detail = ""
                if healthy and isinstance(provider, IVectorIndexProvider | IFullTextIndexProvider):
                    entry_count = await provider.count()
            except Exception as exc:
                logger.warning("health_check_failed", component=name, error=str(exc))
                healthy, detail = False, str(exc)
            components.append(
                ComponentHealth(
                    name=name,
                    healthy=healthy,
                    provider=provider.get_provider_name(),
                    detail=detail,
                    entry_count=entry_count,
                )
            )
        report = HealthReport(components=components)
        logger.info(
            "health_checked",
            healthy=report.healthy,
            unhealthy=[c.name for c in components if not c.healthy],
        )
        return report

    async def _check_ledger(self) -> ComponentHealth:
        try:
            healthy = await self._ledger.ping()
            detail = ""
        except Exception as exc:
            logger.warning("health_check_failed", component="ledger", error=str(exc))
            healthy, detail = False, str(exc)
        return ComponentHealth(
            name="ledger",
            healthy=healthy,
            provider=self._ledger.get_provider_name(),
            detail=detail,
        )
