import threading
import time

import pytest
import requests

from resolver import resolve_all, resolve_stream_link
from tests.conftest import FakeResponse, invalid_json


def echo_link(params):
    return {"js": {"cmd": "http://cdn/" + params["cmd"].rsplit("/", 1)[-1]}}


def test_resolve_movie_link(authed_portal, session):
    session.route("vod", "create_link", echo_link)
    assert resolve_stream_link(authed_portal, "/media/file_7.mpg", "movies") == "http://cdn/file_7.mpg"

    call = session.calls_for("create_link")[0]
    assert call.url == (
        "http://example.com/c/portal.php?type=vod&action=create_link"
        "&cmd=%2Fmedia%2Ffile_7.mpg&JsHttpRequest=1-xml"
    )
    assert "series" not in call.params


def test_resolve_series_link_uses_vod_type_and_series_flag(authed_portal, session):
    session.route("vod", "create_link", echo_link)
    resolve_stream_link(authed_portal, "eyJ0eXBlIjoic2VyaWVzIn0=", "series")
    call = session.calls_for("create_link")[0]
    assert call.params["type"] == "vod"
    assert call.url.endswith("&cmd=eyJ0eXBlIjoic2VyaWVzIn0%3D&series=1&JsHttpRequest=1-xml")


@pytest.mark.parametrize("response", [
    FakeResponse({}, status_code=500),
    invalid_json(),
    FakeResponse({"js": {}}),
    FakeResponse({"js": {"cmd": ""}}),
    FakeResponse({"js": {"cmd": 12}}),
    FakeResponse({"js": "error"}),
    requests.exceptions.ConnectionError("reset"),
])
def test_resolution_failures_return_empty_string(authed_portal, session, response):
    session.route("vod", "create_link", response)
    assert resolve_stream_link(authed_portal, "/media/file_1.mpg", "movies") == ""


def test_resolve_all_keeps_input_order_under_concurrency(authed_portal, session):
    def slow_first(params):
        name = params["cmd"].rsplit("/", 1)[-1]
        # earlier items finish last
        time.sleep(0.02 * (5 - int(name.split("_")[1].split(".")[0])))
        return echo_link(params)
    session.route("vod", "create_link", slow_first)

    cmds = [f"/media/file_{i}.mpg" for i in range(5)]
    assert resolve_all(authed_portal, cmds, "movies", workers=4) == [
        f"http://cdn/file_{i}.mpg" for i in range(5)
    ]


def test_resolve_all_isolates_failures(authed_portal, session):
    def flaky(params):
        if params["cmd"].endswith("file_1.mpg"):
            return FakeResponse({}, status_code=404)
        return echo_link(params)
    session.route("vod", "create_link", flaky)

    cmds = [f"/media/file_{i}.mpg" for i in range(3)]
    assert resolve_all(authed_portal, cmds, "movies", workers=3) == [
        "http://cdn/file_0.mpg", "", "http://cdn/file_2.mpg",
    ]


def test_resolve_all_sequential_runs_on_calling_thread(authed_portal, session):
    threads = set()

    def record_thread(params):
        threads.add(threading.current_thread())
        return echo_link(params)
    session.route("vod", "create_link", record_thread)

    resolve_all(authed_portal, ["/a/1", "/a/2", "/a/3"], "series", workers=1)
    assert threads == {threading.current_thread()}


def test_resolve_all_reports_progress(authed_portal, session):
    session.route("vod", "create_link", echo_link)
    ticks = []
    resolve_all(authed_portal, ["/a/1", "/a/2", "/a/3"], "movies", workers=2, progress_callback=ticks.append)
    assert ticks == [1, 1, 1]


def test_resolve_all_rejects_non_positive_workers(authed_portal):
    with pytest.raises(ValueError):
        resolve_all(authed_portal, ["/a/1"], "movies", workers=0)
