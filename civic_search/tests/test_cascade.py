# civic_search/tests/test_cascade.py
import pytest

from conftest import StaticAdapter, make_item, make_items
from civic_search.core.cascade import DEADLINE_ERROR, SearchCascadeEngine
from civic_search.core.exceptions import CascadeException
from civic_search.models.internal import CascadeStatus, SourceConfig, SourceType, StopPolicy
from civic_search.models.requests import CascadeOptions, SearchQuery
from civic_search.services.adapters import LocalIndexAdapter, SourceAdapterRegistry


def config(source_type: SourceType, priority: int, timeout_ms: int = 1000, min_results: int = 1, enabled: bool = True):
    return SourceConfig(
        source_type=source_type,
        priority=priority,
        timeout_ms=timeout_ms,
        min_results_to_stop=min_results,
        enabled=enabled,
    )


def engine_for(adapters, configs, **kwargs) -> SearchCascadeEngine:
    return SearchCascadeEngine(SourceAdapterRegistry(adapters), configs, **kwargs)


def statuses(response):
    return {result.source: result.status for result in response.cascade_results}


class TestEngineConfiguration:
    """Test cascade configuration validation"""

    def test_missing_adapter(self):
        """Test an enabled source without an adapter is a configuration error"""
        with pytest.raises(CascadeException):
            engine_for([StaticAdapter(SourceType.LOCAL_INDEX)], [
                config(SourceType.LOCAL_INDEX, 1),
                config(SourceType.WEB, 2),
            ])

    def test_disabled_source_needs_no_adapter(self):
        """Test disabled sources are allowed without adapters"""
        engine = engine_for([StaticAdapter(SourceType.LOCAL_INDEX)], [
            config(SourceType.LOCAL_INDEX, 1),
            config(SourceType.WEB, 2, enabled=False),
        ])
        assert len(engine.configs) == 2

    def test_duplicate_source(self):
        """Test a source may be configured only once"""
        with pytest.raises(CascadeException):
            engine_for([StaticAdapter(SourceType.LOCAL_INDEX)], [
                config(SourceType.LOCAL_INDEX, 1),
                config(SourceType.LOCAL_INDEX, 2),
            ])

    def test_default_configs_follow_registered_adapters(self):
        """Test the built-in cascade is narrowed to the adapters present"""
        engine = SearchCascadeEngine(SourceAdapterRegistry([
            StaticAdapter(SourceType.WEB),
            StaticAdapter(SourceType.LOCAL_INDEX),
        ]))
        assert [c.source_type for c in engine.configs] == [SourceType.LOCAL_INDEX, SourceType.WEB]

    def test_priority_groups(self):
        """Test grouping by ascending priority"""
        engine = engine_for(
            [StaticAdapter(s) for s in (SourceType.LOCAL_INDEX, SourceType.SESSION, SourceType.WEB)],
            [config(SourceType.WEB, 3), config(SourceType.LOCAL_INDEX, 1), config(SourceType.SESSION, 1)],
        )
        groups = engine.priority_groups(engine.configs)
        assert [[c.source_type for c in g] for g in groups] == [
            [SourceType.LOCAL_INDEX, SourceType.SESSION],
            [SourceType.WEB],
        ]


class TestEarlyStopping:
    """Test the cascade stops once enough results are gathered"""

    async def test_stops_after_first_group(self):
        """Test later groups are skipped and recorded as such"""
        local = StaticAdapter(SourceType.LOCAL_INDEX, make_items(SourceType.LOCAL_INDEX, 3))
        legal = StaticAdapter(SourceType.LEGAL_ACTS, make_items(SourceType.LEGAL_ACTS, 3))
        web = StaticAdapter(SourceType.WEB, make_items(SourceType.WEB, 3))
        engine = engine_for([local, legal, web], [
            config(SourceType.LOCAL_INDEX, 1),
            config(SourceType.LEGAL_ACTS, 2),
            config(SourceType.WEB, 3),
        ])

        response = await engine.search(SearchQuery(text="budżet"), CascadeOptions(stop_after_results=3))

        assert response.success
        assert response.total_results == 3
        assert response.sources_queried == [SourceType.LOCAL_INDEX]
        assert response.sources_skipped == [SourceType.LEGAL_ACTS, SourceType.WEB]
        assert response.stopped_at == SourceType.LOCAL_INDEX
        assert response.exhausted is False
        assert statuses(response)[SourceType.WEB] == CascadeStatus.SKIPPED
        assert legal.calls == 0 and web.calls == 0

    async def test_continues_until_threshold(self):
        """Test groups run in order until the result count reaches the threshold"""
        local = StaticAdapter(SourceType.LOCAL_INDEX, make_items(SourceType.LOCAL_INDEX, 1))
        legal = StaticAdapter(SourceType.LEGAL_ACTS, make_items(SourceType.LEGAL_ACTS, 2))
        web = StaticAdapter(SourceType.WEB, make_items(SourceType.WEB, 3))
        engine = engine_for([local, legal, web], [
            config(SourceType.LOCAL_INDEX, 1),
            config(SourceType.LEGAL_ACTS, 2),
            config(SourceType.WEB, 3),
        ])

        response = await engine.search(SearchQuery(text="budżet"), CascadeOptions(stop_after_results=3))

        assert response.sources_queried == [SourceType.LOCAL_INDEX, SourceType.LEGAL_ACTS]
        assert response.sources_skipped == [SourceType.WEB]
        assert response.stopped_at == SourceType.LEGAL_ACTS

    async def test_exhaustive_mode(self):
        """Test exhaustive queries run every group"""
        adapters = [
            StaticAdapter(SourceType.LOCAL_INDEX, make_items(SourceType.LOCAL_INDEX, 5)),
            StaticAdapter(SourceType.WEB, make_items(SourceType.WEB, 5)),
        ]
        engine = engine_for(adapters, [config(SourceType.LOCAL_INDEX, 1), config(SourceType.WEB, 2)])

        response = await engine.search(
            SearchQuery(text="budżet", exhaustive=True), CascadeOptions(stop_after_results=1)
        )

        assert response.sources_queried == [SourceType.LOCAL_INDEX, SourceType.WEB]
        assert response.sources_skipped == []
        assert response.stopped_at is None
        assert response.exhausted is True

    async def test_min_group_policy(self):
        """Test the group minimum stops as soon as any group member would"""
        engine = self._policy_engine()
        response = await engine.search(SearchQuery(text="budżet"), CascadeOptions(stop_policy=StopPolicy.MIN_GROUP))

        assert response.sources_queried == [SourceType.LOCAL_INDEX, SourceType.SESSION]
        assert response.stopped_at == SourceType.LOCAL_INDEX

    async def test_min_responded_policy(self):
        """Test the responded minimum ignores sources that returned nothing"""
        engine = self._policy_engine()
        response = await engine.search(
            SearchQuery(text="budżet"), CascadeOptions(stop_policy=StopPolicy.MIN_RESPONDED)
        )

        assert response.sources_queried == [SourceType.LOCAL_INDEX, SourceType.SESSION, SourceType.LEGAL_ACTS]
        assert response.stopped_at == SourceType.LEGAL_ACTS
        assert response.total_results == 3

    def _policy_engine(self) -> SearchCascadeEngine:
        adapters = [
            StaticAdapter(SourceType.LOCAL_INDEX, make_items(SourceType.LOCAL_INDEX, 1)),
            StaticAdapter(SourceType.SESSION, []),
            StaticAdapter(SourceType.LEGAL_ACTS, make_items(SourceType.LEGAL_ACTS, 2)),
            StaticAdapter(SourceType.WEB, make_items(SourceType.WEB, 3)),
        ]
        return engine_for(adapters, [
            config(SourceType.LOCAL_INDEX, 1, min_results=3),
            config(SourceType.SESSION, 1, min_results=1),
            config(SourceType.LEGAL_ACTS, 2, min_results=2),
            config(SourceType.WEB, 3, min_results=1),
        ])

    def test_no_threshold_without_candidates(self):
        """Test no responding source means no stop"""
        options = CascadeOptions()
        group = [config(SourceType.LOCAL_INDEX, 1, min_results=2)]
        assert SearchCascadeEngine.stop_threshold(StopPolicy.MIN_RESPONDED, options, group, []) is None
        assert SearchCascadeEngine.stop_threshold(StopPolicy.MIN_GROUP, options, group, []) == 2


class TestFailureIsolation:
    """Test one source failing never affects its siblings"""

    async def test_queued_source_times_out(self):
        """Test waiting for a concurrency slot counts against the source timeout"""
        engine = engine_for([
            StaticAdapter(SourceType.LOCAL_INDEX, make_items(SourceType.LOCAL_INDEX, 1), delay=0.4),
            StaticAdapter(SourceType.SESSION, make_items(SourceType.SESSION, 1)),
        ], [
            config(SourceType.LOCAL_INDEX, 1),
            config(SourceType.SESSION, 1, timeout_ms=100),
        ], max_concurrent_sources=1, default_deadline_ms=0)

        response = await engine.search(SearchQuery(text="budżet"))

        assert statuses(response) == {
            SourceType.LOCAL_INDEX: CascadeStatus.SUCCEEDED,
            SourceType.SESSION: CascadeStatus.TIMED_OUT,
        }
        assert response.total_results == 1

    async def test_failure_and_timeout_are_local(self):
        """Test a failing and a slow source leave the healthy sibling's results intact"""
        engine = engine_for([
            StaticAdapter(SourceType.LOCAL_INDEX, error=RuntimeError("index offline")),
            StaticAdapter(SourceType.SESSION, make_items(SourceType.SESSION, 2), delay=0.5),
            StaticAdapter(SourceType.LEGAL_ACTS, make_items(SourceType.LEGAL_ACTS, 2)),
        ], [
            config(SourceType.LOCAL_INDEX, 1),
            config(SourceType.SESSION, 1, timeout_ms=50),
            config(SourceType.LEGAL_ACTS, 1),
        ])

        response = await engine.search(SearchQuery(text="budżet"))
        by_source = {r.source: r for r in response.cascade_results}

        assert response.success
        assert response.total_results == 2
        assert by_source[SourceType.LOCAL_INDEX].status == CascadeStatus.FAILED
        assert by_source[SourceType.LOCAL_INDEX].error == "index offline"
        assert by_source[SourceType.SESSION].status == CascadeStatus.TIMED_OUT
        assert by_source[SourceType.SESSION].error == "Timeout after 50ms"
        assert by_source[SourceType.LEGAL_ACTS].status == CascadeStatus.SUCCEEDED
        assert all(item.source_type == SourceType.LEGAL_ACTS for item in response.results)

    async def test_all_sources_fail(self):
        """Test a total failure is reported in the response, not raised"""
        engine = engine_for([
            StaticAdapter(SourceType.LOCAL_INDEX, error=RuntimeError("down")),
            StaticAdapter(SourceType.WEB, error=ConnectionError("no route")),
        ], [config(SourceType.LOCAL_INDEX, 1), config(SourceType.WEB, 2)])

        response = await engine.search(SearchQuery(text="budżet"))

        assert response.success is False
        assert response.results == []
        assert response.sources_queried == [SourceType.LOCAL_INDEX, SourceType.WEB]
        assert response.sources_with_results == []
        assert response.exhausted is True
        assert "All sources failed, no reliable results found" in response.warnings

    async def test_malformed_adapter_output(self):
        """Test adapters returning something other than result items count as failed"""
        engine = engine_for([
            StaticAdapter(SourceType.LOCAL_INDEX, items=[{"title": "raw dict"}]),
            StaticAdapter(SourceType.SESSION, make_items(SourceType.SESSION, 1)),
        ], [config(SourceType.LOCAL_INDEX, 1), config(SourceType.SESSION, 1)])

        response = await engine.search(SearchQuery(text="budżet"))

        assert statuses(response)[SourceType.LOCAL_INDEX] == CascadeStatus.FAILED
        assert response.total_results == 1

    async def test_overall_deadline(self):
        """Test the deadline abandons in-flight sources and skips later groups"""
        engine = engine_for([
            StaticAdapter(SourceType.LOCAL_INDEX, make_items(SourceType.LOCAL_INDEX, 1), delay=2.0),
            StaticAdapter(SourceType.WEB, make_items(SourceType.WEB, 1)),
        ], [
            config(SourceType.LOCAL_INDEX, 1, timeout_ms=5000),
            config(SourceType.WEB, 2),
        ])

        response = await engine.search(SearchQuery(text="budżet"), CascadeOptions(deadline_ms=100))
        local = response.cascade_results[0]

        assert local.status == CascadeStatus.TIMED_OUT
        assert local.error == DEADLINE_ERROR
        assert response.sources_skipped == [SourceType.WEB]
        assert response.exhausted is False
        assert response.execution_time_ms < 1500
        assert "Cascade deadline exceeded, results may be incomplete" in response.warnings

    async def test_group_members_run_concurrently(self):
        """Test sources of one priority overlap in time"""
        engine = engine_for([
            StaticAdapter(SourceType.LOCAL_INDEX, make_items(SourceType.LOCAL_INDEX, 1), delay=0.2),
            StaticAdapter(SourceType.SESSION, make_items(SourceType.SESSION, 1), delay=0.2),
            StaticAdapter(SourceType.LEGAL_ACTS, make_items(SourceType.LEGAL_ACTS, 1), delay=0.2),
        ], [
            config(SourceType.LOCAL_INDEX, 1),
            config(SourceType.SESSION, 1),
            config(SourceType.LEGAL_ACTS, 1),
        ])

        response = await engine.search(SearchQuery(text="budżet"))

        assert response.total_results == 3
        assert response.execution_time_ms < 550


class TestDeterminism:
    """Test output does not depend on completion timing"""

    async def test_completion_order_does_not_leak(self):
        """Test swapping which source finishes first gives identical output"""
        async def run(local_delay: float, session_delay: float):
            engine = engine_for([
                StaticAdapter(SourceType.LOCAL_INDEX, make_items(SourceType.LOCAL_INDEX, 2), delay=local_delay),
                StaticAdapter(SourceType.SESSION, make_items(SourceType.SESSION, 2), delay=session_delay),
            ], [config(SourceType.LOCAL_INDEX, 1), config(SourceType.SESSION, 1)])
            response = await engine.search(SearchQuery(text="budżet"))
            return [i.title for i in response.results], [r.source for r in response.cascade_results]

        assert await run(0.05, 0.0) == await run(0.0, 0.05)


class TestResultAssembly:
    """Test merged results, routing and warnings"""

    async def test_session_lookup_end_to_end(self, local_index, scorer):
        """Test a roman-numeral session query puts the session order on top"""
        engine = SearchCascadeEngine(SourceAdapterRegistry([
            LocalIndexAdapter(local_index, scorer),
            LocalIndexAdapter(local_index, scorer, session_only=True),
        ]))

        response = await engine.search(SearchQuery(text="sesja nr XXIII"))

        assert response.success
        assert response.results[0].title == "Sesja Nr XXIII"
        assert response.results[0].relevance == pytest.approx(1.0)
        assert set(response.results[0].metadata["contributing_sources"]) == {"local_index", "session"}
        assert response.sources_queried == [SourceType.LOCAL_INDEX, SourceType.SESSION]
        assert len([r for r in response.results if r.title == "Sesja Nr XXIII"]) == 1

    async def test_duplicates_across_sources(self):
        """Test the same page from two sources is returned once"""
        engine = engine_for([
            StaticAdapter(SourceType.LOCAL_INDEX, [
                make_item("Sesja XXIII", SourceType.LOCAL_INDEX, 0.9, url="https://drawno.pl/sesja/23")
            ]),
            StaticAdapter(SourceType.WEB, [
                make_item("Sesja XXIII | Drawno", SourceType.WEB, 0.6, url="https://drawno.pl/sesja/23/?utm_source=x")
            ]),
        ], [config(SourceType.LOCAL_INDEX, 1), config(SourceType.WEB, 1)])

        response = await engine.search(SearchQuery(text="sesja"))

        assert response.total_results == 1
        assert response.results[0].source_type == SourceType.LOCAL_INDEX
        assert response.results[0].metadata["contributing_sources"] == ["local_index", "web"]
        assert response.sources_with_results == [SourceType.LOCAL_INDEX, SourceType.WEB]

    async def test_max_results(self):
        """Test the merged list is capped"""
        engine = engine_for(
            [StaticAdapter(SourceType.LOCAL_INDEX, make_items(SourceType.LOCAL_INDEX, 5))],
            [config(SourceType.LOCAL_INDEX, 1)],
        )
        response = await engine.search(SearchQuery(text="budżet"), CascadeOptions(max_results=2))
        assert response.total_results == 2

    async def test_intent_routing(self):
        """Test intent routing narrows the sources when none are given"""
        statistics = StaticAdapter(SourceType.STATISTICS, make_items(SourceType.STATISTICS, 1))
        spatial = StaticAdapter(SourceType.SPATIAL, make_items(SourceType.SPATIAL, 1))
        engine = engine_for([statistics, spatial], [
            config(SourceType.STATISTICS, 1),
            config(SourceType.SPATIAL, 1),
        ])

        response = await engine.search(
            SearchQuery(text="liczba mieszkańców gminy"), CascadeOptions(route_by_intent=True)
        )

        assert response.sources_queried == [SourceType.STATISTICS]
        assert spatial.calls == 0

    async def test_explicit_sources(self):
        """Test an explicit source list is honoured and unknown sources reported"""
        local = StaticAdapter(SourceType.LOCAL_INDEX, make_items(SourceType.LOCAL_INDEX, 1))
        web = StaticAdapter(SourceType.WEB, make_items(SourceType.WEB, 1))
        engine = engine_for([local, web], [config(SourceType.LOCAL_INDEX, 1), config(SourceType.WEB, 2)])

        response = await engine.search(SearchQuery(text="budżet", sources=[SourceType.WEB, SourceType.SPATIAL]))

        assert response.sources_queried == [SourceType.WEB]
        assert local.calls == 0
        assert "Sources not available: spatial" in response.warnings

    async def test_low_credibility_warning(self):
        """Test a result set without enough reliable items is flagged"""
        items = [
            make_item(f"plotka {i}", SourceType.WEB, 0.5, url=f"https://plotki.example.com/{i}", credibility=0.2)
            for i in range(3)
        ]
        engine = engine_for([StaticAdapter(SourceType.WEB, items)], [config(SourceType.WEB, 1)])

        response = await engine.search(SearchQuery(text="budżet"))

        assert "Only 0 reliable result(s) found, verify before relying on them" in response.warnings

    async def test_no_results(self):
        """Test an empty cascade is not a failure of the sources"""
        engine = engine_for([StaticAdapter(SourceType.LOCAL_INDEX)], [config(SourceType.LOCAL_INDEX, 1)])
        response = await engine.search(SearchQuery(text="budżet"))

        assert response.success is False
        assert response.warnings[0] == "No results found"
        assert response.cascade_results[0].status == CascadeStatus.SUCCEEDED
