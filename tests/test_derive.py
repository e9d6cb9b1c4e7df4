from biasbrief.feed.derive import clamp_page, derive, matches_query, sort_articles, total_pages_for
from biasbrief.news.models import Article, SortOrder


def _articles(make_article, count, **kwargs):
    return [make_article(i, date=f"2024-01-{i:02d}", **kwargs) for i in range(1, count + 1)]


def test_pagination_of_23_articles(make_article):
    articles = _articles(make_article, 23)

    first = derive(articles, per_page=9, page=1)
    assert first.total_pages == 3
    assert first.total_count == 23
    assert len(first.articles) == 9

    last = derive(articles, per_page=9, page=3)
    assert len(last.articles) == 5

    beyond = derive(articles, per_page=9, page=4)
    assert beyond.current_page == 3
    assert [a.id for a in beyond.articles] == [a.id for a in last.articles]


def test_page_below_one_clamps_to_first_page(make_article):
    view = derive(_articles(make_article, 5), per_page=2, page=0)
    assert view.current_page == 1


def test_empty_set_has_one_page():
    view = derive([], per_page=9, page=3)
    assert view.total_pages == 1
    assert view.current_page == 1
    assert view.articles == []


def test_sorting_by_date(make_article):
    articles = [
        make_article(1, date="2023-01-01"),
        make_article(2, date="2023-06-01"),
        make_article(3, date="2023-03-01"),
    ]

    newest = sort_articles(articles, SortOrder.NEW_TO_OLD)
    assert [a.date for a in newest] == ["2023-06-01", "2023-03-01", "2023-01-01"]

    oldest = sort_articles(articles, SortOrder.OLD_TO_NEW)
    assert [a.date for a in oldest] == ["2023-01-01", "2023-03-01", "2023-06-01"]


def test_unparsable_dates_sort_deterministically(make_article):
    articles = [
        make_article(1, date="someday"),
        make_article(2, date="2023-06-01"),
        make_article(3, date=""),
        make_article(4, date="2023-01-01"),
    ]

    newest = sort_articles(articles, SortOrder.NEW_TO_OLD)
    assert [a.id for a in newest] == ["2", "4", "1", "3"]

    oldest = sort_articles(articles, SortOrder.OLD_TO_NEW)
    assert [a.id for a in oldest] == ["1", "3", "4", "2"]


def test_sorting_never_fails_on_extreme_dates(make_article):
    articles = [
        make_article(1, date="0001-01-01T00:00:00+05:00"),
        make_article(2, date="2023-06-01"),
        make_article(3, date="9999-12-31T23:00:00-05:00"),
    ]

    newest = sort_articles(articles, SortOrder.NEW_TO_OLD)
    assert [a.id for a in newest] == ["2", "1", "3"]


def test_search_is_case_insensitive_substring():
    article = Article(id="1", title_biased="Senate Passes Bill")

    assert matches_query(article, "senate")
    assert matches_query(article, "PASSES")
    assert not matches_query(article, "congress")
    assert matches_query(article, "   ")


def test_search_covers_unbiased_title_snippet_and_body():
    article = Article(id="1", title_unbiased="Calm", snippet="Congress meets", body="<p>budget</p>")

    assert matches_query(article, "congress")
    assert matches_query(article, "budget")
    assert matches_query(article, "calm")


def test_section_filter(make_article):
    articles = [make_article(1, section="Sport"), make_article(2, section="Technology")]

    view = derive(articles, category="Sport")
    assert [a.id for a in view.articles] == ["1"]

    everything = derive(articles, category="All")
    assert everything.total_count == 2


def test_custom_feed_filters_on_category_only_for_all_tab(make_article):
    articles = [
        make_article(1, section="Football", category="Sport"),
        make_article(2, section="Politics", category="News"),
        make_article(3, section="Film", category="Arts"),
    ]

    custom = derive(articles, category="All", custom_news=True, preferred_categories=["Sport", "Arts"])
    assert sorted(a.id for a in custom.articles) == ["1", "3"]

    tab = derive(articles, category="Politics", custom_news=True, preferred_categories=["Sport"])
    assert [a.id for a in tab.articles] == ["2"]


def test_custom_feed_without_preferences_is_empty(make_article):
    view = derive([make_article(1)], custom_news=True, preferred_categories=[])
    assert view.articles == []


def test_bookmark_view_is_not_paginated(make_article):
    articles = _articles(make_article, 23)
    ids = [str(i) for i in range(1, 21)]

    view = derive(articles, per_page=9, page=2, bookmark_ids=ids, category="Sport")
    assert view.total_count == 20
    assert len(view.articles) == 20
    assert view.total_pages == 1


def test_search_applies_after_category(make_article):
    articles = [
        make_article(1, section="Sport", title_biased="Cup final"),
        make_article(2, section="Politics", title_biased="Cup of tea diplomacy"),
    ]

    view = derive(articles, category="Sport", search_query="cup")
    assert [a.id for a in view.articles] == ["1"]


def test_helpers():
    assert total_pages_for(0, 9) == 1
    assert total_pages_for(18, 9) == 2
    assert total_pages_for(19, 9) == 3
    assert clamp_page(7, 3) == 3
    assert clamp_page(-1, 3) == 1
