"""
Test Suite for the Relevance Filter

Covers deduplication, denylist filtering, keyword scoring with category
expansion, tie-breaking and escalation from sparse vector results.
"""

from datetime import datetime, timezone

import pytest

from newschat.models import SearchResult
from newschat.retrieval.relevance_filter import (
    RelevanceFilter,
    dedupe_key,
    normalize_title,
)
from newschat.storage.vector_store import ArticleStore

from conftest import TEST_DIMENSION, axis_vector, make_article


@pytest.fixture
def store():
    return ArticleStore(dimension=TEST_DIMENSION)


@pytest.fixture
def relevance(store):
    return RelevanceFilter(
        store,
        denylist=['wildlife', 'rare birds'],
        category_terms={'tech': ['nvidia', 'software'], 'economy': ['market']},
    )


def hit(article, score=0.9):
    return SearchResult(article=article, score=score)


def fill(store, articles):
    for i, article in enumerate(articles):
        store.upsert(article, axis_vector(i))


class TestDeduplication:
    """Each URL appears at most once, first occurrence wins."""

    def test_same_url_collapses(self, relevance):
        a = make_article(title="first", url="https://news.example.com/a")
        b = make_article(title="second", url="https://news.example.com/a")

        unique = relevance.deduplicate([hit(a, 0.9), hit(b, 0.8)])

        assert len(unique) == 1
        assert unique[0].article.title == "first"

    def test_missing_url_falls_back_to_title(self, relevance):
        a = make_article(title="Markets  Rally", url="")
        b = make_article(title="markets rally", url="")
        c = make_article(title="Something else", url="")

        unique = relevance.deduplicate([hit(a), hit(b), hit(c)])

        assert [r.article.title for r in unique] == ["Markets  Rally", "Something else"]

    def test_dedupe_key(self):
        assert dedupe_key(make_article(url="https://x.example/1")) == "url:https://x.example/1"
        assert dedupe_key(make_article(title=" A\tB ", url="")) == "title:a b"

    def test_normalize_title_handles_none(self):
        assert normalize_title(None) == ""


class TestDenylist:
    """Articles mentioning a denylisted term are dropped."""

    def test_denied_in_title(self, relevance):
        assert relevance.is_denied(make_article(title="Wildlife officials warn"))

    def test_denied_in_content(self, relevance):
        article = make_article(content="Volunteers count rare birds every spring.")
        assert relevance.is_denied(article)

    def test_case_insensitive(self, relevance):
        assert relevance.is_denied(make_article(summary="RARE BIRDS return"))

    def test_clean_article_kept(self, relevance):
        assert not relevance.is_denied(make_article())

    def test_empty_denylist_allows_everything(self, store):
        assert not RelevanceFilter(store).is_denied(make_article(title="wildlife"))

    def test_filter_denied(self, relevance):
        clean = make_article()
        denied = make_article(title="wildlife census")

        kept = relevance.filter_denied([hit(denied), hit(clean)])

        assert [r.article for r in kept] == [clean]


class TestKeywordScoring:
    """Literal keyword scoring over stored articles."""

    def test_field_weights(self, relevance):
        article = make_article(title="rates", summary="rates", content="rates")
        assert relevance.score_article(article, ["rates"]) == 5 + 3 + 1

    def test_content_only_match(self, relevance):
        article = make_article(title="Headline", summary="Summary", content="about rates")
        assert relevance.score_article(article, ["rates"]) == 1

    def test_category_expansion(self, relevance):
        article = make_article(
            title="Nvidia unveils chip",
            summary="New software stack",
            content="Details inside"
        )
        tokens = ["tech", "news"]
        categories = relevance._matched_categories(tokens)

        assert categories == ['tech']
        # nvidia +2 in title, software +1 in summary
        assert relevance.score_article(article, tokens, categories) == 3

    def test_category_matched_as_substring_of_token(self, relevance):
        assert relevance._matched_categories(["fintech"]) == ['tech']

    def test_keyword_search_normalises_scores(self, relevance, store):
        fill(store, [make_article(title="rates", summary="", content="")])

        results = relevance.keyword_search("rates")

        assert len(results) == 1
        assert results[0].score == pytest.approx(0.5)
        assert results[0].origin == 'keyword'

    def test_keyword_search_skips_zero_scores_and_denied(self, relevance, store):
        fill(store, [
            make_article(title="Election results", summary="", content=""),
            make_article(title="Weather today", summary="", content=""),
            make_article(title="Election wildlife", summary="", content=""),
        ])

        results = relevance.keyword_search("election")

        assert [r.article.title for r in results] == ["Election results"]

    def test_keyword_search_dedupes(self, relevance, store):
        fill(store, [
            make_article(title="Election", url="https://x.example/1"),
            make_article(title="Election again", url="https://x.example/1"),
        ])

        assert len(relevance.keyword_search("election")) == 1

    def test_ties_broken_by_newest_then_scan_order(self, relevance, store):
        older = datetime(2024, 1, 1, tzinfo=timezone.utc)
        newer = datetime(2024, 6, 1, tzinfo=timezone.utc)
        fill(store, [
            make_article(title="vote a", summary="", content="", published_date=older),
            make_article(title="vote b", summary="", content="", published_date=newer),
            make_article(title="vote c", summary="", content="", published_date=older),
        ])

        results = relevance.keyword_search("vote")

        assert [r.article.title for r in results] == ["vote b", "vote a", "vote c"]

    def test_higher_score_beats_newer(self, relevance, store):
        fill(store, [
            make_article(title="vote", summary="vote", content="",
                         published_date=datetime(2020, 1, 1, tzinfo=timezone.utc)),
            make_article(title="vote", summary="", content="",
                         published_date=datetime(2024, 1, 1, tzinfo=timezone.utc)),
        ])

        results = relevance.keyword_search("vote")

        assert results[0].score > results[1].score
        assert results[0].article.published_date.year == 2020

    def test_blank_query(self, relevance, store):
        fill(store, [make_article()])
        assert relevance.keyword_search("   ") == []

    def test_scan_limit_bounds_search(self, store):
        fill(store, [make_article(title=f"vote {i}") for i in range(5)])
        limited = RelevanceFilter(store, scan_limit=2)

        assert len(limited.keyword_search("vote", limit=10)) == 2


class TestApply:
    """End-to-end filtering and escalation."""

    def test_enough_results_not_escalated(self, relevance):
        results = [hit(make_article(), 0.9), hit(make_article(), 0.8)]

        ranked, escalated = relevance.rank(results, "anything", limit=5)

        assert escalated is False
        assert ranked == results

    def test_sparse_results_replaced_by_larger_keyword_set(self, relevance, store):
        fill(store, [make_article(title=f"Budget vote {i}") for i in range(3)])
        lone = hit(make_article(title="Unrelated"), 0.7)

        ranked, escalated = relevance.rank([lone], "budget", limit=5)

        assert escalated is True
        assert len(ranked) == 3
        assert all(r.origin == 'keyword' for r in ranked)

    def test_sparse_results_kept_when_keyword_not_larger(self, relevance, store):
        fill(store, [make_article(title="Budget vote")])
        lone = hit(make_article(title="Budget talks"), 0.7)

        ranked, escalated = relevance.rank([lone], "budget", limit=5)

        assert escalated is False
        assert ranked == [lone]

    def test_duplicates_count_once_toward_threshold(self, relevance, store):
        fill(store, [make_article(title=f"Tariff news {i}") for i in range(3)])
        a = make_article(url="https://x.example/dup")
        b = make_article(url="https://x.example/dup")

        ranked = relevance.apply([hit(a), hit(b)], "tariff", limit=5)

        assert len(ranked) == 3

    def test_limit_applied(self, relevance):
        results = [hit(make_article(), 0.9 - i * 0.1) for i in range(5)]
        assert len(relevance.apply(results, "q", limit=2)) == 2

    def test_zero_limit(self, relevance):
        assert relevance.apply([hit(make_article())], "q", limit=0) == []

    def test_no_results_and_empty_store(self, relevance):
        assert relevance.apply([], "anything", limit=5) == []
