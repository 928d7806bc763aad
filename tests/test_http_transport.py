import asyncio

import pytest
from aiohttp import test_utils as aiohttp_test_utils
from aiohttp import web

from drupalcheck.errors import TransportError
from drupalcheck.fetcher import PageFetcher
from drupalcheck.http import HttpClient
from drupalcheck.redirects import RedirectTracer
from drupalcheck.runner import CheckState, DrupalCheck
from drupalcheck.settings import HttpSettings, Settings

DRUPAL_PAGE = (
    '<html><head><meta name="generator" content="Drupal 10 (https://www.drupal.org)" />'
    '<script>jQuery.extend(Drupal.settings, {"basePath": "/"});</script>'
    "</head><body>hello</body></html>"
)


def _drupal_app() -> web.Application:
    # Главная страница с сигнатурами Drupal и доступный /misc/drupal.js.
    async def index(request: web.Request) -> web.Response:
        resp = web.Response(text=DRUPAL_PAGE, content_type="text/html")
        resp.headers["Expires"] = "Sun, 19 Nov 1978 05:00:00 GMT"
        resp.headers["X-Generator"] = "Drupal 10.1 (https://www.drupal.org)"
        resp.headers["X-Drupal-Cache"] = "HIT"
        resp.headers.add("X-Powered-By", "PHP/8.2")
        resp.headers.add("X-Powered-By", "Varnish")
        return resp

    async def drupal_js(request: web.Request) -> web.Response:
        return web.Response(text="var Drupal = {};", content_type="application/javascript")

    app = web.Application()
    app.router.add_get("/", index)
    app.router.add_get("/misc/drupal.js", drupal_js)
    return app


def _redirect_app() -> web.Application:
    # Сервер, который на любой "лишний" путь отвечает редиректом на главную.
    async def index(request: web.Request) -> web.Response:
        return web.Response(text="<html>plain site</html>", content_type="text/html")

    async def drupal_js(request: web.Request) -> web.Response:
        raise web.HTTPMovedPermanently(location="/")

    async def loop(request: web.Request) -> web.Response:
        raise web.HTTPFound(location=f"/loop/{int(request.match_info['n']) + 1}")

    app = web.Application()
    app.router.add_get("/", index)
    app.router.add_get("/misc/drupal.js", drupal_js)
    app.router.add_get("/loop/{n}", loop)
    return app


async def _serve(app: web.Application, scenario):
    server = aiohttp_test_utils.TestServer(app)
    await server.start_server()
    try:
        return await scenario(server)
    finally:
        await server.close()


def _client(max_redirects: int = 5) -> HttpClient:
    return HttpClient(rps=100, total_timeout_s=5, connect_timeout_s=5, max_redirects=max_redirects)


def test_full_check_against_live_drupal_server() -> None:
    async def scenario(server):
        http = _client()
        check = DrupalCheck(str(server.make_url("/")), http=http)
        async with http.create_session() as session:
            return await check.run(session)

    report = asyncio.run(_serve(_drupal_app(), scenario))

    assert report.state == CheckState.COMPLETED
    assert set(report.results.values()) == {"passed"}
    assert report.results["misc/drupal.js"] == "passed"
    # Одна цифра: "Drupal 10.1" -> "1".
    assert report.version == "1"


def test_real_headers_are_joined_and_head_has_no_body() -> None:
    async def scenario(server):
        http = _client()
        async with http.create_session() as session:
            page = await http.fetch_ex(session, str(server.make_url("/")))
            head = await http.fetch_ex(session, str(server.make_url("/misc/drupal.js")), method="HEAD")
        return page, head

    page, head = asyncio.run(_serve(_drupal_app(), scenario))

    assert page.ok is True
    assert page.response.header("X-Powered-By") == "PHP/8.2, Varnish"
    assert "Drupal 10" in page.response.body.decode("utf-8")
    assert head.ok is True
    assert head.response.status == 200
    assert head.response.body == b""


def test_head_trace_last_hop_matches_response_url() -> None:
    async def scenario(server):
        http = _client()
        async with http.create_session() as session:
            result = await RedirectTracer(http).trace(session, str(server.make_url("/")), "/misc/drupal.js", "HEAD")
        return str(server.make_url("/misc/drupal.js")), result

    expected_url, result = asyncio.run(_serve(_drupal_app(), scenario))

    assert result.error is False
    assert result.last_hop.status == 200
    assert result.last_hop.url == expected_url
    assert result.last_hop.url == result.response.final_url


def test_redirect_to_root_fails_static_asset_heuristic() -> None:
    async def scenario(server):
        http = _client()
        check = DrupalCheck(str(server.make_url("/")), http=http)
        async with http.create_session() as session:
            report = await check.run(session)
            trace = await RedirectTracer(http).trace(session, str(server.make_url("/")), "/misc/drupal.js", "HEAD")
        return report, trace

    report, trace = asyncio.run(_serve(_redirect_app(), scenario))

    assert report.results["misc/drupal.js"] == "failed"
    assert report.is_drupal is False
    assert [hop.status for hop in trace.hops] == [301, 200]
    assert trace.last_hop.url.endswith("/")
    assert trace.last_hop.url == trace.response.final_url


def test_redirect_loop_is_transport_error_for_primary_fetch() -> None:
    async def scenario(server):
        http = _client(max_redirects=2)
        async with http.create_session() as session:
            return await PageFetcher(http).fetch(session, str(server.make_url("/loop/0")))

    result = asyncio.run(_serve(_redirect_app(), scenario))

    assert result.ok is False
    assert isinstance(result.error, TransportError)
    assert result.error.reason_code == "too_many_redirects"


def test_redirect_loop_stops_tracer_after_max_redirects() -> None:
    async def scenario(server):
        http = _client(max_redirects=2)
        async with http.create_session() as session:
            return await RedirectTracer(http).trace(session, str(server.make_url("/")), "/loop/0", "GET")

    result = asyncio.run(_serve(_redirect_app(), scenario))

    assert result.error is True
    assert result.reason == "request_failure"
    assert result.reason_code == "too_many_redirects"
    assert len(result.hops) == 3
    assert result.last_hop.url == result.response.final_url


@pytest.mark.filterwarnings("error::RuntimeWarning")
def test_check_can_run_twice_on_separate_event_loops() -> None:
    # check() поднимает новый event loop на каждый вызов; лимитер не должен переиспользоваться между ними.
    settings = Settings(http=HttpSettings(connect_timeout=1, total_timeout=1))
    check = DrupalCheck("http://127.0.0.1:1/", settings=settings)

    first = check.check()
    second = check.check()

    assert first.state == second.state == CheckState.FETCH_FAILED
    assert first.results == second.results == {}
    assert first.is_drupal is second.is_drupal is False
    assert type(first.errors[0]) is type(second.errors[0])
