import json
from datetime import date
from unittest.mock import MagicMock, patch

import pytest
import requests

from gh_traffic_stats.cache import metric_key, page_key
from gh_traffic_stats.exceptions import CacheWriteError, DecodeError, FetchError
from gh_traffic_stats.github import ClientConfig, GitHubFetcher, parse_link_header
from gh_traffic_stats.models import MetricKind


def make_response(body, status_code=200, link=None):
    """
    builds a mocked requests.Response with a JSON body
    and an optional Link header.
    """
    response = MagicMock()
    response.status_code = status_code
    response.content = body if isinstance(body, bytes) else json.dumps(body).encode()
    response.headers = {"Link": link} if link else {}
    return response


def repo_entry(name, owner="octocat"):
    return {"name": name, "full_name": f"{owner}/{name}", "owner": {"login": owner}}


def next_link(page):
    return (
        f'<https://api.github.com/user/1/repos?page={page}>; rel="next", '
        '<https://api.github.com/user/1/repos?page=3>; rel="last"'
    )


TRAFFIC = {
    "count": 7,
    "uniques": 4,
    "clones": [
        {"timestamp": "2023-03-25T00:00:00Z", "count": 3, "uniques": 2},
        {"timestamp": "2023-03-26T00:00:00Z", "count": 4, "uniques": 2},
    ],
}


@pytest.fixture()
def session():
    session = MagicMock()
    session.headers = {}
    return session


@pytest.fixture()
def sleep():
    return MagicMock()


def make_fetcher(cache, session, sleep, **config):
    return GitHubFetcher(ClientConfig(token="secret", **config), cache, session=session, sleep=sleep)


class TestParseLinkHeader:
    def test_empty(self):
        assert parse_link_header(None) == {}
        assert parse_link_header("") == {}

    def test_github_style(self):
        links = parse_link_header(
            '<https://api.github.com/repos?page=2>; rel="next", '
            '<https://api.github.com/repos?page=5>; rel="last"'
        )
        assert links == {
            "next": "https://api.github.com/repos?page=2",
            "last": "https://api.github.com/repos?page=5",
        }

    def test_out_of_order_and_extra_params(self):
        links = parse_link_header(
            '<https://x.test/a?page=1>; rel="first"; title="First page",'
            '<https://x.test/a?page=3>;type="application/json";  rel=next'
        )
        assert links["next"] == "https://x.test/a?page=3"
        assert links["first"] == "https://x.test/a?page=1"

    def test_comma_inside_url(self):
        links = parse_link_header('<https://x.test/a?ids=1,2&page=2>; rel="next"')
        assert links == {"next": "https://x.test/a?ids=1,2&page=2"}

    def test_multiple_relations_in_one_rel(self):
        links = parse_link_header('<https://x.test/p2>; rel="next last"')
        assert links == {"next": "https://x.test/p2", "last": "https://x.test/p2"}

    def test_ignores_garbage_segments(self):
        assert parse_link_header('garbage; rel="next"') == {}
        assert parse_link_header("<https://x.test/p2>; title=foo") == {}


class TestClientConfig:
    def test_headers(self, cache, session, sleep):
        make_fetcher(cache, session, sleep)
        assert session.headers["Authorization"] == "Bearer secret"
        assert session.headers["Accept"] == "application/vnd.github+json"
        assert session.headers["X-GitHub-Api-Version"] == "2022-11-28"
        assert "User-Agent" in session.headers


class TestListResources:
    def test_follows_pagination_in_order(self, cache, session, sleep):
        session.get.side_effect = [
            make_response([repo_entry("a"), repo_entry("b")], link=next_link(2)),
            make_response([repo_entry("c")], link=next_link(3)),
            make_response([repo_entry("d")]),
        ]
        fetcher = make_fetcher(cache, session, sleep)

        repos = fetcher.list_resources("octocat")

        assert [r.name for r in repos] == ["a", "b", "c", "d"]
        assert session.get.call_count == 3
        pages = [c.kwargs["params"]["page"] for c in session.get.call_args_list]
        assert pages == [1, 2, 3]
        url = session.get.call_args_list[0].args[0]
        assert url == "https://api.github.com/users/octocat/repos"
        assert session.get.call_args_list[0].kwargs["timeout"] == 30

    def test_pages_are_cached(self, cache, session, sleep):
        session.get.side_effect = [
            make_response([repo_entry("a")], link=next_link(2)),
            make_response([repo_entry("b")]),
        ]
        make_fetcher(cache, session, sleep).list_resources("octocat")

        assert cache.get(page_key("octocat", 1)) is not None
        assert cache.get(page_key("octocat", 2)) is not None

    def test_cached_full_pages_continue_without_network(self, cache, session, sleep):
        session.get.side_effect = [
            make_response([repo_entry("a"), repo_entry("b")], link=next_link(2)),
            make_response([repo_entry("c"), repo_entry("d")], link=next_link(3)),
            make_response([repo_entry("e")]),
        ]
        first = make_fetcher(cache, session, sleep, per_page=2).list_resources("octocat")

        session.get.reset_mock()
        second = make_fetcher(cache, session, sleep, per_page=2).list_resources("octocat")

        assert session.get.call_count == 0
        assert second == first
        assert [r.name for r in second] == ["a", "b", "c", "d", "e"]

    def test_error_status_aborts(self, cache, session, sleep):
        session.get.side_effect = [
            make_response([repo_entry("a")], link=next_link(2)),
            make_response({"message": "Bad credentials"}, status_code=401),
        ]
        fetcher = make_fetcher(cache, session, sleep)

        with pytest.raises(FetchError, match="401"):
            fetcher.list_resources("octocat")
        assert cache.get(page_key("octocat", 2)) is None

    def test_empty_body_aborts(self, cache, session, sleep):
        session.get.return_value = make_response(b"")
        with pytest.raises(FetchError, match="empty"):
            make_fetcher(cache, session, sleep).list_resources("octocat")
        assert cache.get(page_key("octocat", 1)) is None

    def test_invalid_json_aborts(self, cache, session, sleep):
        session.get.return_value = make_response(b"{not json")
        with pytest.raises(DecodeError):
            make_fetcher(cache, session, sleep).list_resources("octocat")

    def test_unexpected_shape_aborts(self, cache, session, sleep):
        session.get.return_value = make_response({"message": "not a list"})
        with pytest.raises(DecodeError):
            make_fetcher(cache, session, sleep).list_resources("octocat")

    def test_transport_error(self, cache, session, sleep):
        session.get.side_effect = requests.ConnectionError("down")
        with pytest.raises(FetchError, match="octocat"):
            make_fetcher(cache, session, sleep).list_resources("octocat")


class TestDailyCounters:
    def test_returns_daily_rows_only(self, cache, session, sleep):
        session.get.return_value = make_response(TRAFFIC)
        fetcher = make_fetcher(cache, session, sleep)

        counters = fetcher.daily_counters("octocat", "hello", MetricKind.CLONES)

        assert [(c.date, c.count, c.uniques) for c in counters] == [
            (date(2023, 3, 25), 3, 2),
            (date(2023, 3, 26), 4, 2),
        ]
        url = session.get.call_args.args[0]
        assert url == "https://api.github.com/repos/octocat/hello/traffic/clones"
        assert session.get.call_args.kwargs["params"] == {"per": "day"}

    def test_uses_cache(self, cache, session, sleep):
        cache.put(metric_key("octocat", "hello", MetricKind.CLONES), json.dumps(TRAFFIC).encode())
        fetcher = make_fetcher(cache, session, sleep)

        counters = fetcher.daily_counters("octocat", "hello", MetricKind.CLONES)

        assert len(counters) == 2
        session.get.assert_not_called()
        sleep.assert_not_called()

    def test_stale_cache_refetches_once(self, cache, clock, session, sleep):
        key = metric_key("octocat", "hello", MetricKind.CLONES)
        cache.put(key, json.dumps({"count": 0, "uniques": 0, "clones": []}).encode())
        clock.advance(3700)
        session.get.return_value = make_response(TRAFFIC)
        fetcher = make_fetcher(cache, session, sleep)

        counters = fetcher.daily_counters("octocat", "hello", MetricKind.CLONES)

        assert len(counters) == 2
        assert session.get.call_count == 1
        assert json.loads(cache.path_for(key).read_bytes()) == TRAFFIC

    def test_wrong_metric_shape(self, cache, session, sleep):
        session.get.return_value = make_response(TRAFFIC)
        with pytest.raises(DecodeError, match="views"):
            make_fetcher(cache, session, sleep).daily_counters("octocat", "hello", MetricKind.VIEWS)

    def test_bad_entry(self, cache, session, sleep):
        body = {"count": 1, "uniques": 1, "views": [{"timestamp": "yesterday", "count": 1, "uniques": 1}]}
        session.get.return_value = make_response(body)
        with pytest.raises(DecodeError):
            make_fetcher(cache, session, sleep).daily_counters("octocat", "hello", MetricKind.VIEWS)

    def test_error_status_mentions_context(self, cache, session, sleep):
        session.get.return_value = make_response({"message": "Forbidden"}, status_code=403)
        with pytest.raises(FetchError, match="views octocat/hello"):
            make_fetcher(cache, session, sleep).daily_counters("octocat", "hello", MetricKind.VIEWS)

    def test_failed_cache_write_fails_the_fetch(self, cache, session, sleep):
        session.get.return_value = make_response(TRAFFIC)
        fetcher = make_fetcher(cache, session, sleep)

        with patch("gh_traffic_stats.cache.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(CacheWriteError):
                fetcher.daily_counters("octocat", "hello", MetricKind.CLONES)

        assert not cache.path_for(metric_key("octocat", "hello", MetricKind.CLONES)).exists()


class TestRateLimit:
    def test_sleeps_before_every_request(self, cache, session):
        events = []
        sleep = MagicMock(side_effect=lambda s: events.append(("sleep", s)))

        def get(url, **kwargs):
            events.append(("get", url))
            return make_response(TRAFFIC)

        session.get.side_effect = get
        fetcher = make_fetcher(cache, session, sleep, rate_limit_delay=0.3)

        fetcher.daily_counters("octocat", "a", MetricKind.CLONES)
        fetcher.daily_counters("octocat", "b", MetricKind.CLONES)

        assert [e[0] for e in events] == ["sleep", "get", "sleep", "get"]
        assert all(e[1] == 0.3 for e in events if e[0] == "sleep")

    def test_spacing_between_calls(self, cache, session, clock):
        call_times = []

        def get(url, **kwargs):
            call_times.append(clock.now)
            return make_response(TRAFFIC)

        session.get.side_effect = get
        fetcher = make_fetcher(cache, session, clock.advance, rate_limit_delay=0.5)

        for repo in ("a", "b", "c"):
            fetcher.daily_counters("octocat", repo, MetricKind.CLONES)

        gaps = [b - a for a, b in zip(call_times, call_times[1:])]
        assert len(gaps) == 2
        assert all(gap >= 0.5 - 1e-9 for gap in gaps)
