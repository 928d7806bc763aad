from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Optional

import aiohttp
from aiolimiter import AsyncLimiter

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "DrupalCheck/1.0 (+read-only-fingerprint)"


@dataclass(frozen=True)
class HttpRedirectHop:
    """Один шаг цепочки редиректов."""
    url: str
    status: int
    location: Optional[str]


@dataclass(frozen=True)
class HttpResponse:
    """
    Ответ HTTP.

    headers: регистр имён сохранён, повторяющиеся заголовки склеены через ", ".
    """
    status: int
    final_url: str
    headers: dict[str, str]
    body: bytes
    charset: Optional[str]

    method: str = "GET"
    elapsed_ms: Optional[int] = None
    redirects: tuple[HttpRedirectHop, ...] = ()

    def header(self, name: str) -> str:
        """Значение заголовка без учёта регистра, "" если заголовка нет."""
        if name in self.headers:
            return self.headers[name]
        low = name.lower()
        for k, v in self.headers.items():
            if k.lower() == low:
                return v
        return ""


@dataclass(frozen=True)
class HttpFetchResult:
    """
    Подробный результат запроса.
    Если ok=False, response=None и заполнены reason_code/error_text.
    """
    ok: bool
    response: Optional[HttpResponse]
    reason_code: Optional[str]
    error_text: Optional[str]
    elapsed_ms: Optional[int]


def flatten_headers(raw: Any) -> dict[str, str]:
    """
    aiohttp отдаёт CIMultiDict: один заголовок может встречаться несколько раз.
    Склеиваем значения через ", ", как это делают прокси и getHeaderLine().
    """
    result: dict[str, str] = {}
    for key in raw.keys():
        if key in result:
            continue
        getall = getattr(raw, "getall", None)
        values = getall(key) if getall is not None else [raw[key]]
        result[key] = ", ".join(values)
    return result


class HttpClient:
    """
    HTTP-клиент для проверок.

    Основные особенности:
    - Глобальный лимит RPS (через AsyncLimiter).
    - Раздельные таймауты (connect/total).
    - Пул соединений aiohttp (TCPConnector) с DNS cache и keepalive.
    - Ровно одна попытка на запрос: ретраев нет, ошибка сети = результат с reason_code.
    - Опциональное чтение body (read_body=False) для HEAD-проб.
    """

    def __init__(
        self,
        rps: float,
        total_timeout_s: float,
        *,
        connect_timeout_s: Optional[float] = None,
        max_redirects: int = 5,
        user_agent: str = DEFAULT_USER_AGENT,
        pool_limit: int = 100,
        pool_limit_per_host: int = 10,
        dns_cache_ttl_s: int = 300,
        keepalive_timeout_s: int = 20,
    ) -> None:
        # AsyncLimiter привязывается к event loop: создаём его лениво, по одному на loop.
        self._rps = float(rps)
        self._limiter: Optional[AsyncLimiter] = None
        self._limiter_loop: Optional[asyncio.AbstractEventLoop] = None

        self._total_timeout_s = float(total_timeout_s)
        self._connect_timeout_s = connect_timeout_s
        self._max_redirects = int(max_redirects)
        self._user_agent = user_agent

        self._pool_limit = int(pool_limit)
        self._pool_limit_per_host = int(pool_limit_per_host)
        self._dns_cache_ttl_s = int(dns_cache_ttl_s)
        self._keepalive_timeout_s = int(keepalive_timeout_s)

        self._timeout = self._build_timeout()

        logger.debug(
            "HttpClient init rps=%s total_timeout_s=%s connect=%s max_redirects=%s pool_limit=%s per_host=%s",
            rps,
            self._total_timeout_s,
            self._connect_timeout_s,
            self._max_redirects,
            self._pool_limit,
            self._pool_limit_per_host,
        )

    @property
    def max_redirects(self) -> int:
        return self._max_redirects

    def _get_limiter(self) -> AsyncLimiter:
        """Лимитер RPS для текущего event loop (check() создаёт новый loop на каждый прогон)."""
        loop = asyncio.get_running_loop()
        if self._limiter is None or self._limiter_loop is not loop:
            self._limiter = AsyncLimiter(max_rate=self._rps, time_period=1.0)
            self._limiter_loop = loop
        return self._limiter

    def _build_timeout(self) -> aiohttp.ClientTimeout:
        """Строит раздельные таймауты aiohttp."""
        return aiohttp.ClientTimeout(
            total=self._total_timeout_s,
            connect=self._connect_timeout_s,
        )

    def build_connector(self) -> aiohttp.TCPConnector:
        """
        Создаёт TCPConnector для пула соединений.

        - limit: общий лимит одновременных коннектов
        - limit_per_host: лимит на один host
        - ttl_dns_cache: кэш DNS
        - keepalive_timeout: время жизни keepalive соединения
        """
        return aiohttp.TCPConnector(
            limit=self._pool_limit,
            limit_per_host=self._pool_limit_per_host,
            ttl_dns_cache=self._dns_cache_ttl_s,
            keepalive_timeout=self._keepalive_timeout_s,
        )

    def create_session(self) -> aiohttp.ClientSession:
        """
        Фабрика ClientSession с правильным пулом и таймаутами.

        Использование:
            async with http.create_session() as session:
                res = await http.fetch_ex(session, url, ...)
        """
        connector = self.build_connector()
        return aiohttp.ClientSession(connector=connector, timeout=self._timeout)

    def _classify_error(self, exc: BaseException) -> tuple[str, str]:
        """
        Нормализация сетевых ошибок в стабильные коды.
        """
        # ServerTimeoutError наследуется от asyncio.TimeoutError, проверяем его первым.
        if isinstance(exc, aiohttp.ServerTimeoutError):
            return "timeout_server", str(exc)

        if isinstance(exc, asyncio.TimeoutError):
            return "timeout_total", str(exc)

        if isinstance(exc, aiohttp.ClientSSLError):
            return "tls_error", str(exc)

        if isinstance(exc, aiohttp.ClientConnectorError):
            # Внутри может быть gaierror (DNS), ConnectionRefusedError и т.д.
            inner = getattr(exc, "os_error", None)
            if inner is not None:
                name = inner.__class__.__name__.lower()
                if "gaierror" in name:
                    return "dns_error", str(exc)
                if "connectionrefusederror" in name:
                    return "connection_refused", str(exc)
                if "networkunreachable" in name:
                    return "network_unreachable", str(exc)
            return "connect_error", str(exc)

        if isinstance(exc, aiohttp.TooManyRedirects):
            return "too_many_redirects", str(exc)

        if isinstance(exc, aiohttp.InvalidURL):
            return "invalid_url", str(exc)

        if isinstance(exc, aiohttp.ClientError):
            return "client_error", str(exc)

        return "unknown_error", str(exc)

    async def fetch_ex(
        self,
        session: aiohttp.ClientSession,
        url: str,
        *,
        allow_redirects: bool = True,
        method: str = "GET",
        read_limit_bytes: int = 2_000_000,
        read_body: bool = True,
        headers: Optional[dict[str, str]] = None,
    ) -> HttpFetchResult:
        """
        Один HTTP-запрос без исключений наружу:
        - reason_code/error_text при ошибках
        - redirects цепочка (если allow_redirects=True)
        - ограничение на чтение body (read_limit_bytes)
        - режим без чтения body (read_body=False)
        """
        req_headers = {
            "User-Agent": self._user_agent,
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
        }
        if headers:
            req_headers.update(headers)

        async with self._get_limiter():
            t0 = time.monotonic()
            try:
                async with session.request(
                    method,
                    url,
                    timeout=self._timeout,
                    # max_redirects=0 у aiohttp означает "без лимита", поэтому 0 = не следовать.
                    allow_redirects=allow_redirects and self._max_redirects > 0,
                    max_redirects=self._max_redirects,
                    headers=req_headers,
                ) as resp:
                    redirects = tuple(
                        HttpRedirectHop(
                            url=str(h.url),
                            status=h.status,
                            location=h.headers.get("Location"),
                        )
                        for h in resp.history
                    )

                    body = b""
                    if read_body and method.upper() != "HEAD":
                        body = await resp.content.read(read_limit_bytes)
                    else:
                        resp.release()

                    elapsed_ms = int((time.monotonic() - t0) * 1000)
                    logger.debug(
                        "HTTP %s %s -> %s (redirects=%s) elapsed=%sms bytes=%s",
                        method,
                        url,
                        resp.status,
                        len(redirects),
                        elapsed_ms,
                        len(body),
                    )

                    response = HttpResponse(
                        status=resp.status,
                        final_url=str(resp.url),
                        headers=flatten_headers(resp.headers),
                        body=body,
                        charset=getattr(resp, "charset", None),
                        method=method,
                        elapsed_ms=elapsed_ms,
                        redirects=redirects,
                    )
                    return HttpFetchResult(
                        ok=True,
                        response=response,
                        reason_code=None,
                        error_text=None,
                        elapsed_ms=elapsed_ms,
                    )

            except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
                reason_code, error_text = self._classify_error(exc)
                elapsed_ms = int((time.monotonic() - t0) * 1000)
                logger.warning(
                    "HTTP %s %s failed reason=%s elapsed=%sms error=%s",
                    method,
                    url,
                    reason_code,
                    elapsed_ms,
                    error_text,
                )
                return HttpFetchResult(
                    ok=False,
                    response=None,
                    reason_code=reason_code,
                    error_text=error_text,
                    elapsed_ms=elapsed_ms,
                )
