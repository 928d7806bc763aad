from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Union
from urllib.parse import urlparse

from .errors import BadResponseError, RequestError, TransportError
from .http import HttpClient, HttpResponse

logger = logging.getLogger(__name__)

FetchError = Union[TransportError, BadResponseError, RequestError]

ALLOWED_SCHEMES = ("http", "https")


@dataclass(frozen=True)
class PageFetchResult:
    """Результат основного GET: либо response, либо error."""

    response: Optional[HttpResponse]
    error: Optional[FetchError]

    @property
    def ok(self) -> bool:
        return self.error is None and self.response is not None


def is_http_url(url: str) -> bool:
    parsed = urlparse(url)
    return parsed.scheme in ALLOWED_SCHEMES and bool(parsed.netloc)


class PageFetcher:
    """
    Основной запрос страницы.

    Одна попытка, без ретраев. Редиректы следует сам транспорт (max_redirects клиента).
    Статус >= 400 считается ошибкой так же, как и сетевая ошибка.
    """

    def __init__(self, http: HttpClient) -> None:
        self._http = http

    async def fetch(self, session, target: str) -> PageFetchResult:
        if not is_http_url(target):
            logger.warning("[fetch] invalid target url: %r", target)
            return PageFetchResult(
                response=None,
                error=RequestError(target, "invalid_url", "absolute http/https URL expected"),
            )

        res = await self._http.fetch_ex(session, target, method="GET", allow_redirects=True)
        if not res.ok or res.response is None:
            return PageFetchResult(
                response=None,
                error=TransportError(target, res.reason_code or "unknown_error", res.error_text or ""),
            )

        response = res.response
        if response.status >= 400:
            logger.info("[fetch] %s -> HTTP %s, treating as failure", target, response.status)
            return PageFetchResult(
                response=None,
                error=BadResponseError(response.final_url or target, response.status, response),
            )

        logger.debug("[fetch] %s -> %s final_url=%s", target, response.status, response.final_url)
        return PageFetchResult(response=response, error=None)
