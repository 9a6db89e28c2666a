# civic_search/tests/test_intents.py
import pytest

from civic_search.core.intents import SearchIntent, classify_intent, sources_for_intent
from civic_search.models.internal import SourceType


class TestClassifyIntent:
    """Test rule-based query intents"""

    @pytest.mark.parametrize("text,intent", [
        ("sesja nr XXIII", SearchIntent.SESSION_LOOKUP),
        ("co było na 23 sesji", SearchIntent.SESSION_LOOKUP),
        ("protokół z posiedzenia komisji", SearchIntent.SESSION_LOOKUP),
        ("ustawa o samorządzie gminnym", SearchIntent.LEGAL_QUESTION),
        ("liczba mieszkańców gminy", SearchIntent.STATISTICS),
        ("NIP firmy budowlanej", SearchIntent.COMPANY_LOOKUP),
        ("działka 123/4 obręb Drawno", SearchIntent.SPATIAL),
        ("najnowsze wiadomości z regionu", SearchIntent.CURRENT_EVENTS),
        ("remont drogi powiatowej", SearchIntent.GENERAL),
        ("", SearchIntent.GENERAL),
    ])
    def test_classify(self, text, intent):
        """Test each intent family"""
        assert classify_intent(text) == intent


class TestSourcesForIntent:
    """Test intent to source routing"""

    def test_every_intent_is_routed(self):
        """Test no intent maps to an empty source list"""
        for intent in SearchIntent:
            assert sources_for_intent(intent)

    def test_session_lookup_stays_local(self):
        """Test session questions go to local sources only"""
        assert sources_for_intent(SearchIntent.SESSION_LOOKUP) == [SourceType.LOCAL_INDEX, SourceType.SESSION]

    def test_general_queries_everything(self):
        """Test general queries are not narrowed"""
        assert set(sources_for_intent(SearchIntent.GENERAL)) == set(SourceType)
