"""
Tests for query parsing and the search/retrieval engine.
"""

import pytest

from linkvault.db.types import LinkDocument, VectorMatch
from linkvault.search import (
    NO_RESULTS_ANSWER,
    LinkSearch,
    RetrievalError,
    SearchFilters,
    keyword_score,
    parse_query,
)
from linkvault.util.containers import TTLCache
from tests.conftest import FakeIndex, fake_embed, make_match


class CountingEmbed:
    def __init__(self):
        self.calls = 0

    def __call__(self, text: str) -> list[float]:
        self.calls += 1
        return fake_embed(text)


class BrokenIndex:
    def nearest(self, namespace, vector, k):
        raise RuntimeError("index down")


class TestParseQuery:
    def test_filters_and_keywords(self):
        parsed = parse_query("category:Design ortra tags=branding month:2025-03")
        assert parsed.filters == SearchFilters(
            category="design", tag="branding", date="2025-03"
        )
        assert parsed.keywords == ["ortra"]

    def test_plain_text(self):
        parsed = parse_query("Cool  Packaging ideas")
        assert not parsed.filters.any()
        assert parsed.keywords == ["cool", "packaging", "ideas"]

    def test_unknown_key_is_a_keyword(self):
        assert parse_query("color:red").keywords == ["color:red"]

    def test_bare_filter_words_and_empty_values_dropped(self):
        parsed = parse_query("category title: tag")
        assert not parsed.filters.any()
        assert parsed.keywords == []


class TestSearchFilters:
    doc = LinkDocument(
        url="https://ortra.design",
        title="Ortra Studio",
        description="Brand identity for a tea shop",
        categories=["Design"],
        tags=["Branding", "Packaging"],
        date_added="2025-03-14T09:30:00+00:00",
    )

    def test_all_filters_must_match(self):
        assert SearchFilters(category="design", tag="branding").matches(self.doc)
        assert not SearchFilters(category="design", tag="logo").matches(self.doc)

    def test_tags_need_whole_entry(self):
        assert not SearchFilters(tag="brand").matches(self.doc)

    def test_title_and_description_substring(self):
        assert SearchFilters(title="ortra", description="tea shop").matches(self.doc)

    def test_date_prefix(self):
        assert SearchFilters(date="2025-03").matches(self.doc)
        assert not SearchFilters(date="2024-03").matches(self.doc)

    def test_merged_with_overrides(self):
        merged = SearchFilters(category="news", title="x").merged_with(
            SearchFilters(category="Design")
        )
        assert merged == SearchFilters(category="design", title="x")


def test_keyword_score_counts_each_keyword_once():
    doc = LinkDocument(
        url="https://ortra.design",
        title="Ortra Studio",
        tags=["Packaging"],
    )
    assert keyword_score(doc, ["ortra", "packaging", "missing"]) == 2
    assert keyword_score(doc, []) == 0


class TestLinkSearch:
    def test_keyword_scenario(self, fake_index, link_search):
        fake_index.matches = [
            make_match("1", 0.10, url="https://unrelated.test", title="Bread"),
            make_match("2", 0.30, url="https://ortra.design", title="Studio site"),
            make_match("3", 0.20, url="https://a.test", title="Ortra Studio"),
            make_match(
                "4", 0.40, url="https://b.test", title="Tea", tags=["ortra", "ORTRA tea"]
            ),
        ]

        page = link_search.search("ortra", "user-1", k=20, offset=0, limit=10)

        assert [link.url for link in page.links] == [
            "https://a.test",
            "https://ortra.design",
            "https://b.test",
        ]
        assert all(link.score == 1 for link in page.links)
        assert page.total == 3
        assert fake_index.calls == [("user-1", 20)]

    def test_more_keyword_hits_rank_first(self, fake_index, link_search):
        fake_index.matches = [
            make_match("1", 0.1, url="https://a.test", title="Ortra"),
            make_match("2", 0.9, url="https://b.test", title="Ortra Studio"),
        ]
        page = link_search.search("ortra studio", "user-1")
        assert [link.url for link in page.links] == ["https://b.test", "https://a.test"]
        assert [link.score for link in page.links] == [2, 1]

    def test_query_filters_replace_keyword_requirement(self, fake_index, link_search):
        fake_index.matches = [
            make_match("1", 0.1, url="https://a.test", title="A", categories=["Design"]),
            make_match("2", 0.2, url="https://b.test", title="B", categories=["News"]),
        ]
        page = link_search.search("category:design", "user-1")
        assert [link.url for link in page.links] == ["https://a.test"]
        assert page.links[0].category == "Design"

    def test_explicit_filters(self, fake_index, link_search):
        fake_index.matches = [
            make_match("1", 0.1, url="https://a.test", tags=["Branding"]),
            make_match("2", 0.2, url="https://b.test", tags=["Logo"]),
        ]
        page = link_search.search(
            "anything", "user-1", filters=SearchFilters(tag="Logo")
        )
        assert [link.url for link in page.links] == ["https://b.test"]

    def test_no_keywords_keeps_everything(self, fake_index, link_search):
        fake_index.matches = [
            make_match("1", 0.2, url="https://a.test", title="A"),
            make_match("2", 0.1, url="https://b.test", title="B"),
        ]
        page = link_search.search("category", "user-1")
        assert [link.url for link in page.links] == ["https://b.test", "https://a.test"]

    def test_duplicate_urls_keep_higher_score(self, fake_index, link_search):
        fake_index.matches = [
            make_match("1", 0.1, url="https://a.test", title="Ortra"),
            make_match("2", 0.5, url="https://a.test", title="Ortra Studio"),
        ]
        page = link_search.search("ortra studio", "user-1")
        assert len(page.links) == 1
        assert page.links[0].title == "Ortra Studio"
        assert page.links[0].score == 2

    def test_pagination_is_consistent(self, fake_index, link_search):
        fake_index.matches = [
            make_match(str(i), i / 100, url=f"https://{i}.test", title=f"Ortra {i}")
            for i in range(25)
        ]
        first = link_search.search("ortra", "s", k=100, offset=0, limit=10)
        second = link_search.search("ortra", "s", k=100, offset=10, limit=10)
        both = link_search.search("ortra", "s", k=100, offset=0, limit=20)

        assert first.links + second.links == both.links
        assert first.total == second.total == both.total == 25

    def test_offset_past_end(self, fake_index, link_search):
        fake_index.matches = [make_match("1", 0.1, url="https://a.test", title="Ortra")]
        page = link_search.search("ortra", "s", offset=5)
        assert page.links == []
        assert page.total == 1
        assert page.answer == NO_RESULTS_ANSWER

    def test_bad_blob_does_not_sink_batch(self, fake_index, link_search):
        fake_index.matches = [
            VectorMatch(id="bad", text="Saved text", metadata="{not json", distance=0.1),
            make_match("good", 0.2, url="https://a.test", title="A"),
        ]
        page = link_search.search("category", "user-1")
        assert [link.title for link in page.links] == ["Saved text", "A"]

    def test_answer_lists_links(self, fake_index, link_search):
        fake_index.matches = [make_match("1", 0.1, url="https://a.test", title="Ortra")]
        page = link_search.search("ortra", "user-1")
        assert page.answer.startswith("Here are your matching links (1-1 of 1):")
        assert "* Ortra - https://a.test" in page.answer

    def test_repeated_query_is_cached(self):
        embed = CountingEmbed()
        index = FakeIndex([make_match("1", 0.1, url="https://a.test", title="Ortra")])
        search = LinkSearch(index, embed, TTLCache(300))

        first = search.search("ortra", "s")
        second = search.search("ortra", "s")
        assert second is first
        assert embed.calls == 1

        search.search("ortra", "s", offset=1)
        search.search("ortra", "other-session")
        assert embed.calls == 3

    def test_cache_expires(self):
        now = [0.0]
        embed = CountingEmbed()
        index = FakeIndex([make_match("1", 0.1, url="https://a.test", title="Ortra")])
        search = LinkSearch(index, embed, TTLCache(300, clock=lambda: now[0]))

        search.search("ortra", "s")
        now[0] = 301.0
        search.search("ortra", "s")
        assert embed.calls == 2

    def test_failures_raise_and_are_not_cached(self):
        embed = CountingEmbed()
        index = FakeIndex([make_match("1", 0.1, url="https://a.test", title="Ortra")])
        search = LinkSearch(index, embed, TTLCache(300))

        search.index = BrokenIndex()
        with pytest.raises(RetrievalError, match="index down"):
            search.search("ortra", "s")

        search.index = index
        page = search.search("ortra", "s")
        assert page.total == 1


def test_search_over_real_index(index, embed):
    from linkvault.db.types import VectorRecord

    docs = {
        "1": LinkDocument(url="https://ortra.design", title="Ortra Studio"),
        "2": LinkDocument(url="https://bread.test", title="Sourdough basics"),
    }
    index.upsert(
        "user-1",
        [
            VectorRecord(id=i, vector=embed(d.title), text=d.title, metadata=d)
            for i, d in docs.items()
        ],
    )
    search = LinkSearch(index, embed, TTLCache(300))

    page = search.search("ortra", "user-1")
    assert [link.url for link in page.links] == ["https://ortra.design"]

    assert search.search("ortra", "someone-else").links == []
