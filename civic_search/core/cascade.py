# civic_search/core/cascade.py
"""Priority-ordered, early-stopping search across all configured sources.

Sources sharing a priority run together; groups run strictly in ascending
priority order. A failing or slow source only ever affects its own
CascadeResult, never its siblings or the cascade as a whole.
"""

import asyncio
import logging
import time
from itertools import groupby
from typing import Dict, List, Optional
from uuid import uuid4

from civic_search.config.settings import settings
from civic_search.core.exceptions import CascadeException, SourceTimeoutException
from civic_search.core.intents import classify_intent, sources_for_intent
from civic_search.models.internal import (
    CascadeResult,
    CascadeStatus,
    SearchResultItem,
    SourceConfig,
    SourceType,
    StopPolicy,
)
from civic_search.models.requests import CascadeOptions, SearchQuery
from civic_search.models.responses import SearchCascadeResponse
from civic_search.services.adapters import SourceAdapterRegistry
from civic_search.services.cross_reference import CrossReferencer, contradiction_summary
from civic_search.services.ranking import ResultRanker

logger = logging.getLogger(__name__)

DEFAULT_CASCADE_CONFIG: List[SourceConfig] = [
    SourceConfig(source_type=SourceType.LOCAL_INDEX, priority=1, timeout_ms=5000, min_results_to_stop=3),
    SourceConfig(source_type=SourceType.SESSION, priority=1, timeout_ms=5000, min_results_to_stop=1),
    SourceConfig(source_type=SourceType.LEGAL_ACTS, priority=2, timeout_ms=10000, min_results_to_stop=2),
    SourceConfig(source_type=SourceType.STATISTICS, priority=2, timeout_ms=10000, min_results_to_stop=1),
    SourceConfig(source_type=SourceType.BUSINESS_REGISTRY, priority=2, timeout_ms=10000, min_results_to_stop=1),
    SourceConfig(source_type=SourceType.SPATIAL, priority=2, timeout_ms=10000, min_results_to_stop=1),
    SourceConfig(source_type=SourceType.WEB, priority=3, timeout_ms=15000, min_results_to_stop=3),
    SourceConfig(source_type=SourceType.DEEP_RESEARCH, priority=4, timeout_ms=30000, min_results_to_stop=1),
]

MIN_RELIABLE_RESULTS = 2
DEADLINE_ERROR = "Cascade deadline exceeded"


class SearchCascadeEngine:
    def __init__(
        self,
        adapters: SourceAdapterRegistry,
        configs: Optional[List[SourceConfig]] = None,
        stop_policy: Optional[StopPolicy] = None,
        max_concurrent_sources: Optional[int] = None,
        cross_referencer: Optional[CrossReferencer] = None,
        default_deadline_ms: Optional[int] = None,
        min_reliable_credibility: Optional[float] = None,
    ):
        self.adapters = adapters
        if configs is None:
            configs = [c for c in DEFAULT_CASCADE_CONFIG if c.source_type in adapters]
        self.configs = self._validate_configs(configs)
        self.stop_policy = stop_policy or StopPolicy(settings.CASCADE_STOP_POLICY)
        self.max_concurrent_sources = max_concurrent_sources or settings.CASCADE_MAX_CONCURRENT_SOURCES
        self.cross_referencer = cross_referencer or CrossReferencer()
        self.default_deadline_ms = settings.CASCADE_DEADLINE_MS if default_deadline_ms is None else default_deadline_ms
        self.min_reliable_credibility = (
            settings.CREDIBILITY_MIN_RELIABLE if min_reliable_credibility is None else min_reliable_credibility
        )
        self.ranker = ResultRanker({c.source_type: c.priority for c in self.configs})
        self._semaphore = asyncio.Semaphore(self.max_concurrent_sources)

    def _validate_configs(self, configs: List[SourceConfig]) -> List[SourceConfig]:
        seen = set()
        for config in configs:
            if config.source_type in seen:
                raise CascadeException(f"Duplicate configuration for source {config.source_type.value}")
            seen.add(config.source_type)
            if config.enabled and config.source_type not in self.adapters:
                raise CascadeException(f"No adapter registered for source {config.source_type.value}")
        return list(configs)

    def priority_groups(self, configs: List[SourceConfig]) -> List[List[SourceConfig]]:
        """Configs grouped by priority, ascending; config order is kept within a group"""
        ordered = sorted(configs, key=lambda c: c.priority)
        return [list(group) for _, group in groupby(ordered, key=lambda c: c.priority)]

    def _select_sources(self, query: SearchQuery, options: CascadeOptions, warnings: List[str], request_id: str) -> List[SourceConfig]:
        requested = query.sources
        if requested is None and options.route_by_intent:
            intent = classify_intent(query.text)
            requested = sources_for_intent(intent)
            logger.info(f"Routing query by intent {intent.value}: {[s.value for s in requested]}",
                        extra={"request_id": request_id})

        enabled = [c for c in self.configs if c.enabled]
        if requested is None:
            return enabled

        available = {c.source_type for c in enabled}
        missing = [s.value for s in requested if s not in available]
        if missing and query.sources is not None:
            warnings.append(f"Sources not available: {', '.join(missing)}")

        return [c for c in enabled if c.source_type in requested]

    async def search(self, query: SearchQuery, options: Optional[CascadeOptions] = None) -> SearchCascadeResponse:
        request_id = str(uuid4())
        start_time = time.perf_counter()
        options = options or CascadeOptions()
        policy = options.stop_policy or self.stop_policy

        deadline_ms = self.default_deadline_ms if options.deadline_ms is None else options.deadline_ms
        deadline = start_time + deadline_ms / 1000 if deadline_ms else None

        logger.info(f"Starting cascade for query: {query.text[:50]}...", extra={"request_id": request_id})

        warnings: List[str] = []
        groups = self.priority_groups(self._select_sources(query, options, warnings, request_id))

        cascade_results: Dict[SourceType, CascadeResult] = {}
        results_by_source: Dict[SourceType, List[SearchResultItem]] = {}
        responded: List[SourceConfig] = []
        merged: List[SearchResultItem] = []
        stopped_at: Optional[SourceType] = None
        deadline_hit = False
        next_group = 0

        for index, group in enumerate(groups):
            next_group = index + 1
            if deadline is not None and time.perf_counter() >= deadline:
                deadline_hit = True
                next_group = index
                break

            group_results = await self._run_group(group, query, options.max_results, deadline, request_id)

            # Config order, not completion order
            for config in group:
                result = group_results[config.source_type]
                cascade_results[config.source_type] = result
                if result.results:
                    results_by_source[config.source_type] = result.results
                    responded.append(config)
                if result.status == CascadeStatus.TIMED_OUT and result.error == DEADLINE_ERROR:
                    deadline_hit = True

            merged = self.ranker.merge(results_by_source)
            logger.debug(f"Priority group {group[0].priority} done, {len(merged)} results accumulated",
                         extra={"request_id": request_id})

            if deadline_hit:
                break

            if not query.exhaustive:
                threshold = self.stop_threshold(policy, options, group, responded)
                if threshold is not None and len(merged) >= threshold:
                    producers = [c for c in group if group_results[c.source_type].results]
                    stopped_at = producers[-1].source_type if producers else group[-1].source_type
                    logger.info(f"Stop condition met after {stopped_at.value}: {len(merged)} >= {threshold}",
                                extra={"request_id": request_id})
                    break

        sources_skipped = []
        for group in groups[next_group:]:
            for config in group:
                cascade_results[config.source_type] = CascadeResult(
                    source=config.source_type,
                    status=CascadeStatus.SKIPPED,
                )
                sources_skipped.append(config.source_type)

        ordered_results = [cascade_results[c.source_type] for group in groups for c in group]
        invoked = [r for r in ordered_results if r.status != CascadeStatus.SKIPPED]

        final = merged[:options.max_results]
        references = self.cross_referencer.cross_reference(final)
        confidence = self.cross_referencer.overall_confidence(final, references)
        warnings.extend(self._warnings(invoked, final, references, deadline_hit))

        execution_time_ms = (time.perf_counter() - start_time) * 1000
        logger.info(
            f"Cascade completed in {execution_time_ms:.0f}ms: {len(final)} results from "
            f"{len(invoked)} sources, stopped_at={stopped_at.value if stopped_at else None}, "
            f"skipped={len(sources_skipped)}",
            extra={"request_id": request_id}
        )

        return SearchCascadeResponse(
            success=bool(final),
            query=query.text,
            total_results=len(final),
            results=final,
            sources_queried=[r.source for r in invoked],
            sources_with_results=[r.source for r in invoked if r.results],
            sources_skipped=sources_skipped,
            cascade_results=ordered_results,
            stopped_at=stopped_at,
            exhausted=not sources_skipped and not deadline_hit,
            execution_time_ms=execution_time_ms,
            cross_references=references,
            overall_confidence=confidence,
            warnings=warnings,
        )

    @staticmethod
    def stop_threshold(
        policy: StopPolicy,
        options: CascadeOptions,
        group: List[SourceConfig],
        responded: List[SourceConfig],
    ) -> Optional[int]:
        """Result count at which the cascade stops; None means keep going"""
        if options.stop_after_results:
            return options.stop_after_results

        if policy == StopPolicy.MIN_GROUP:
            candidates = [c.min_results_to_stop for c in group]
        else:
            candidates = [c.min_results_to_stop for c in responded]

        return min(candidates) if candidates else None

    async def _run_group(
        self,
        group: List[SourceConfig],
        query: SearchQuery,
        limit: int,
        deadline: Optional[float],
        request_id: str,
    ) -> Dict[SourceType, CascadeResult]:
        group_start = time.perf_counter()
        tasks = {
            config.source_type: asyncio.create_task(self._run_source(config, query, limit, request_id))
            for config in group
        }

        if deadline is None:
            await asyncio.gather(*tasks.values())
        else:
            _, pending = await asyncio.wait(tasks.values(), timeout=max(0.0, deadline - time.perf_counter()))
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

        results = {}
        for source_type, task in tasks.items():
            if task.cancelled():
                logger.warning(f"Source {source_type.value} abandoned at cascade deadline",
                               extra={"request_id": request_id})
                results[source_type] = CascadeResult(
                    source=source_type,
                    status=CascadeStatus.TIMED_OUT,
                    execution_time_ms=(time.perf_counter() - group_start) * 1000,
                    error=DEADLINE_ERROR,
                )
            else:
                results[source_type] = task.result()
        return results

    async def _run_source(
        self,
        config: SourceConfig,
        query: SearchQuery,
        limit: int,
        request_id: str,
    ) -> CascadeResult:
        adapter = self.adapters.get(config.source_type)

        # The source timeout includes time spent waiting for a concurrency slot
        start_time = time.perf_counter()
        try:
            items = await asyncio.wait_for(self._bounded_search(adapter, query, limit), timeout=config.timeout_ms / 1000)
            if not isinstance(items, list) or not all(isinstance(i, SearchResultItem) for i in items):
                raise ValueError("Malformed adapter response")
            status, error = CascadeStatus.SUCCEEDED, None
        except asyncio.TimeoutError:
            items = []
            status, error = CascadeStatus.TIMED_OUT, str(SourceTimeoutException(config.source_type, config.timeout_ms))
        except Exception as e:
            items = []
            status, error = CascadeStatus.FAILED, str(e) or type(e).__name__

        execution_time_ms = (time.perf_counter() - start_time) * 1000
        if error:
            logger.warning(f"Source {config.source_type.value} {status.value}: {error}",
                           extra={"request_id": request_id})
        else:
            logger.debug(f"Source {config.source_type.value} returned {len(items)} results in {execution_time_ms:.0f}ms",
                         extra={"request_id": request_id})

        return CascadeResult(
            source=config.source_type,
            status=status,
            results=items[:limit],
            execution_time_ms=execution_time_ms,
            error=error,
        )

    async def _bounded_search(self, adapter, query: SearchQuery, limit: int) -> List[SearchResultItem]:
        async with self._semaphore:
            return await adapter.search(query, limit)

    def _warnings(self, invoked: List[CascadeResult], results: List[SearchResultItem], references, deadline_hit: bool) -> List[str]:
        warnings = []

        if invoked and all(r.failed for r in invoked):
            warnings.append("All sources failed, no reliable results found")
        elif not results:
            warnings.append("No results found")

        if results:
            reliable = sum(
                1 for item in results
                if item.credibility is None or item.credibility >= self.min_reliable_credibility
            )
            if reliable < MIN_RELIABLE_RESULTS:
                warnings.append(f"Only {reliable} reliable result(s) found, verify before relying on them")

        contradicted, _ = contradiction_summary(references)
        if contradicted:
            warnings.append(f"Sources contradict each other on {contradicted} claim(s)")

        if deadline_hit:
            warnings.append("Cascade deadline exceeded, results may be incomplete")

        return warnings

    async def close(self):
        await self.adapters.close()
