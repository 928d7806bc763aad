from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urljoin, urlsplit, urlunsplit

from .http import HttpClient, HttpResponse

logger = logging.getLogger(__name__)

REASON_BAD_RESPONSE = "bad_response"
REASON_REQUEST_FAILURE = "request_failure"

ALLOWED_SCHEMES = ("http", "https")


@dataclass(frozen=True)
class TraceHop:
    """URL и статус одного ответа в цепочке (включая финальный)."""
    url: str
    status: int


@dataclass(frozen=True)
class TraceResult:
    """
    Результат пробы пути с ручным следованием редиректам.

    hops: все ответы по порядку, последний элемент всегда соответствует response.
    reason: None | "bad_response" (есть ответ 4xx/5xx) | "request_failure" (пригодного ответа нет).
    code: HTTP-статус последнего ответа или 0, если ответа не было.
    """
    location: str
    effective_url: str
    hops: tuple[TraceHop, ...]
    response: Optional[HttpResponse]
    error: bool
    reason: Optional[str] = None
    code: int = 0
    reason_code: Optional[str] = None

    @property
    def last_hop(self) -> Optional[TraceHop]:
        return self.hops[-1] if self.hops else None


def replace_path(base_url: str, path: str) -> str:
    """Меняем путь у base_url; query и fragment отбрасываем."""
    parts = urlsplit(base_url)
    if not path.startswith("/"):
        path = "/" + path
    return urlunsplit((parts.scheme, parts.netloc, path, "", ""))


def site_root(url: str) -> str:
    """scheme://host[:port] без пути."""
    parts = urlsplit(url)
    return urlunsplit((parts.scheme, parts.netloc, "", "", ""))


def _referer_for(current_url: str, next_url: str) -> Optional[str]:
    """
    Referer для следующего шага: текущий URL без userinfo и fragment.
    При переходе https -> http заголовок не отправляем.
    """
    cur = urlsplit(current_url)
    nxt = urlsplit(next_url)
    if cur.scheme == "https" and nxt.scheme != "https":
        return None
    netloc = cur.netloc.rsplit("@", 1)[-1]
    return urlunsplit((cur.scheme, netloc, cur.path, cur.query, ""))


def _next_method(method: str, status: int) -> str:
    # GET и HEAD сохраняются, остальные методы после 301/302/303 становятся GET.
    if status in (301, 302, 303) and method not in ("GET", "HEAD"):
        return "GET"
    return method


class RedirectTracer:
    """
    Проба пути с ручным следованием редиректам.

    aiohttp умеет следовать редиректам сам, но не проставляет Referer
    и не даёт ограничить схемы, поэтому каждый шаг делаем отдельным запросом.
    Исключений наружу не бросает: любая ошибка -> TraceResult(error=True).
    """

    def __init__(self, http: HttpClient, max_redirects: Optional[int] = None) -> None:
        self._http = http
        self._max_redirects = http.max_redirects if max_redirects is None else int(max_redirects)

    async def trace(self, session, base_url: str, path: str, method: str = "GET") -> TraceResult:
        location = replace_path(base_url, path)
        current_url = location
        current_method = method.upper()
        extra_headers: dict[str, str] = {}
        hops: list[TraceHop] = []
        redirects = 0

        def _fail(
            reason: str,
            response: Optional[HttpResponse],
            code: int,
            reason_code: Optional[str],
        ) -> TraceResult:
            logger.debug(
                "[trace] %s %s failed reason=%s reason_code=%s code=%s hops=%s",
                method,
                location,
                reason,
                reason_code,
                code,
                len(hops),
            )
            return TraceResult(
                location=location,
                effective_url=current_url,
                hops=tuple(hops),
                response=response,
                error=True,
                reason=reason,
                code=code,
                reason_code=reason_code,
            )

        while True:
            res = await self._http.fetch_ex(
                session,
                current_url,
                method=current_method,
                allow_redirects=False,
                read_body=current_method != "HEAD",
                headers=extra_headers or None,
            )
            if not res.ok or res.response is None:
                return _fail(REASON_REQUEST_FAILURE, None, 0, res.reason_code)

            resp = res.response
            hops.append(TraceHop(url=resp.final_url or current_url, status=resp.status))
            logger.debug("[trace] hop %s %s -> %s", current_method, current_url, resp.status)

            target = resp.header("Location")
            if 300 <= resp.status < 400 and target:
                if redirects >= self._max_redirects:
                    return _fail(REASON_REQUEST_FAILURE, resp, resp.status, "too_many_redirects")

                next_url = urljoin(current_url, target)
                if urlsplit(next_url).scheme not in ALLOWED_SCHEMES:
                    return _fail(REASON_REQUEST_FAILURE, resp, resp.status, "scheme_not_allowed")

                extra_headers = {}
                referer = _referer_for(current_url, next_url)
                if referer:
                    extra_headers["Referer"] = referer

                current_method = _next_method(current_method, resp.status)
                current_url = next_url
                redirects += 1
                continue

            if resp.status >= 400:
                return _fail(REASON_BAD_RESPONSE, resp, resp.status, "http_status")

            return TraceResult(
                location=location,
                effective_url=current_url,
                hops=tuple(hops),
                response=resp,
                error=False,
                reason=None,
                code=resp.status,
            )
