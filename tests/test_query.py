import asyncio

import pytest

from identifiers import DurableId
from posts import Post
from query import Debouncer, PostFilters, SortMode, filter_posts, sort_posts, sort_views
from reconcile import PostView


def make_post(post_id, title="Market basics", content="What is an index fund?", category="General",
              tags=(), created_at=1.0):
    return Post(id=DurableId(post_id), author_id="alice", author_handle="alice@example.com",
                title=title, content=content, category=category, tags=tuple(tags), created_at=created_at)


POSTS = [
    make_post("p1", title="Index Funds 101", category="Beginner", created_at=3.0),
    make_post("p2", content="Covered calls on TSLA", category="Stocks", tags=("options",), created_at=1.0),
    make_post("p3", title="Weekly news", category="News", tags=("Macro", "Rates"), created_at=2.0),
]


def ids(posts):
    return [str(post.id) for post in posts]


@pytest.mark.parametrize("query,expected", [
    ("", ["p1", "p2", "p3"]),
    ("index", ["p1", "p3"]),
    ("FUNDS", ["p1"]),
    ("tsla", ["p2"]),
    ("rates", ["p3"]),
    ("nothing matches", []),
])
def test_search_is_case_insensitive_over_title_content_and_tags(query, expected):
    assert ids(filter_posts(POSTS, PostFilters(q=query))) == expected


@pytest.mark.parametrize("query", ["a", "in", "news", "s"])
def test_search_result_is_a_subset(query):
    result = filter_posts(POSTS, PostFilters(q=query))
    assert set(ids(result)) <= set(ids(POSTS))
    assert ids(result) == [pid for pid in ids(POSTS) if pid in ids(result)]


@pytest.mark.parametrize("category,expected", [
    ("", ["p1", "p2", "p3"]),
    ("all", ["p1", "p2", "p3"]),
    ("ALL", ["p1", "p2", "p3"]),
    ("stocks", ["p2"]),
    ("News", ["p3"]),
    ("Other", []),
])
def test_category_filter(category, expected):
    assert ids(filter_posts(POSTS, PostFilters(category=category))) == expected


def test_filters_combine():
    assert ids(filter_posts(POSTS, PostFilters(q="index", category="beginner"))) == ["p1"]


def test_only_unfiltered_listing_is_cacheable():
    assert PostFilters().is_cacheable
    assert PostFilters(category="all", q="   ").is_cacheable
    assert not PostFilters(q="fees").is_cacheable
    assert not PostFilters(category="Stocks").is_cacheable


def test_coerce_accepts_mappings_and_sort_strings():
    filters = PostFilters.coerce({"q": " fees ", "sort": "most-replied"})

    assert filters.q == "fees"
    assert filters.sort is SortMode.MOST_REPLIED
    assert PostFilters.coerce(None) == PostFilters()
    with pytest.raises(ValueError):
        PostFilters(sort="alphabetical")
    with pytest.raises(ValueError, match="page"):
        PostFilters.coerce({"q": "fees", "page": 2})


def test_sort_by_creation_time():
    assert ids(sort_posts(POSTS, SortMode.NEWEST)) == ["p1", "p3", "p2"]
    assert ids(sort_posts(POSTS, SortMode.OLDEST)) == ["p2", "p3", "p1"]


def test_most_replied_breaks_ties_by_recency_then_keeps_order():
    views = [
        PostView(make_post("a", created_at=1.0), 2),
        PostView(make_post("b", created_at=5.0), 2),
        PostView(make_post("c", created_at=9.0), 0),
        PostView(make_post("d", created_at=5.0), 2),
        PostView(make_post("e", created_at=2.0), 7),
    ]

    ordered = sort_views(views, SortMode.MOST_REPLIED)

    assert [str(v.post.id) for v in ordered] == ["e", "b", "d", "a", "c"]


def test_view_sort_modes_without_replies():
    views = [PostView(post, 0) for post in POSTS]

    assert [str(v.post.id) for v in sort_views(views, SortMode.NEWEST)] == ["p1", "p3", "p2"]
    assert [str(v.post.id) for v in sort_views(views, SortMode.OLDEST)] == ["p2", "p3", "p1"]


@pytest.mark.asyncio
async def test_debouncer_runs_only_the_last_call():
    calls = []

    async def record(value):
        calls.append(value)
        return value

    debouncer = Debouncer(record, delay=0.02)
    debouncer.trigger("a")
    debouncer.trigger("ab")
    debouncer.trigger("abc")

    assert await debouncer.wait() == "abc"
    assert calls == ["abc"]


@pytest.mark.asyncio
async def test_debouncer_calls_spaced_beyond_delay_all_run():
    calls = []

    async def record(value):
        calls.append(value)

    debouncer = Debouncer(record, delay=0.01)
    debouncer.trigger("first")
    await debouncer.wait()
    debouncer.trigger("second")
    await debouncer.wait()

    assert calls == ["first", "second"]


@pytest.mark.asyncio
async def test_debouncer_cancel():
    calls = []

    async def record(value):
        calls.append(value)

    debouncer = Debouncer(record, delay=0.01)
    debouncer.trigger("never")
    debouncer.cancel()
    await asyncio.sleep(0.03)

    assert calls == []
    assert not debouncer.pending
