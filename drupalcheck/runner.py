from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from .errors import CheckStateError, DrupalCheckError, RequestError
from .fetcher import PageFetcher
from .heuristics import PASSED, Heuristic, HeuristicOutcome, RunContext, decode_html, default_heuristics
from .http import HttpClient, HttpRedirectHop
from .redirects import RedirectTracer
from .settings import HttpSettings, Settings

logger = logging.getLogger(__name__)


class CheckState(str, Enum):
    UNSTARTED = "unstarted"
    FETCHING = "fetching"
    FETCH_FAILED = "fetch_failed"
    EVALUATING = "evaluating"
    COMPLETED = "completed"


TERMINAL_STATES = (CheckState.COMPLETED, CheckState.FETCH_FAILED)


@dataclass(frozen=True)
class CheckReport:
    """
    Итог одной проверки.

    results: ключ эвристики -> "passed"/"failed" в порядке выполнения
    (пусто, если основную страницу загрузить не удалось).
    """

    target: str
    state: CheckState
    results: dict[str, str] = field(default_factory=dict)
    version: Optional[str] = None
    errors: tuple[DrupalCheckError, ...] = ()
    final_url: Optional[str] = None
    redirects: tuple[HttpRedirectHop, ...] = ()
    elapsed_ms: Optional[int] = None

    @property
    def is_drupal(self) -> bool:
        return PASSED in self.results.values()

    def to_dict(self) -> dict[str, Any]:
        return {
            "target": self.target,
            "state": self.state.value,
            "is_drupal": self.is_drupal,
            "version": self.version if self.is_drupal else None,
            "results": dict(self.results),
            "errors": [e.to_dict() for e in self.errors],
            "final_url": self.final_url,
            "redirects": [
                {"url": hop.url, "status": hop.status, "location": hop.location} for hop in self.redirects
            ],
            "elapsed_ms": self.elapsed_ms,
        }


def build_http_client(settings: HttpSettings) -> HttpClient:
    return HttpClient(
        rps=settings.rps,
        total_timeout_s=settings.total_timeout,
        connect_timeout_s=settings.connect_timeout,
        max_redirects=settings.max_redirects,
        user_agent=settings.user_agent,
    )


class DrupalCheck:
    """
    Проверка одного URL на Drupal.

    unstarted -> fetching -> (fetch_failed | evaluating) -> completed

    - основной GET выполняется один раз за прогон;
    - при ошибке загрузки эвристики не запускаются, результат пуст, вердикт False;
    - иначе все эвристики выполняются по порядку, без остановки на первом успехе;
    - версия берётся у первой эвристики, которая её извлекла.

    HTTP-клиент и сессию можно передать снаружи (например, для общего пула).
    """

    def __init__(
        self,
        url: str,
        *,
        http: Optional[HttpClient] = None,
        settings: Optional[Settings] = None,
        heuristics: Optional[Sequence[Heuristic]] = None,
    ) -> None:
        self.url = url
        self._settings = settings or Settings()
        self._http = http or build_http_client(self._settings.http)
        self._fetcher = PageFetcher(self._http)
        self._tracer = RedirectTracer(self._http)
        self._heuristics = list(heuristics) if heuristics is not None else default_heuristics()
        self._state = CheckState.UNSTARTED
        self._report: Optional[CheckReport] = None

    @property
    def state(self) -> CheckState:
        return self._state

    def check(self) -> CheckReport:
        """Синхронная обёртка над run()."""
        return asyncio.run(self.run())

    async def run(self, session: Any = None) -> CheckReport:
        if session is None:
            async with self._http.create_session() as own_session:
                return await self._run(own_session)
        return await self._run(session)

    async def _run(self, session: Any) -> CheckReport:
        self._report = None
        self._state = CheckState.FETCHING
        logger.info("[check] start target=%s", self.url)

        fetched = await self._fetcher.fetch(session, self.url)
        if not fetched.ok:
            self._state = CheckState.FETCH_FAILED
            errors = (fetched.error,) if fetched.error is not None else ()
            self._report = CheckReport(target=self.url, state=self._state, errors=errors)
            logger.info("[check] fetch failed target=%s error=%s", self.url, fetched.error)
            return self._report

        self._state = CheckState.EVALUATING
        response = fetched.response
        context = RunContext(
            target=self.url,
            response=response,
            html=decode_html(response.body, response.charset),
            session=session,
            tracer=self._tracer,
        )

        results: dict[str, str] = {}
        errors: list[DrupalCheckError] = []
        version: Optional[str] = None

        for heuristic in self._heuristics:
            try:
                outcome = await heuristic.run(context)
            except Exception as exc:  # pylint: disable=broad-except
                # Сбой одной эвристики не должен ломать весь прогон.
                logger.exception("[check] heuristic_failed key=%s target=%s", heuristic.key, self.url)
                errors.append(RequestError(self.url, "heuristic_error", f"{heuristic.key}: {exc}"))
                outcome = HeuristicOutcome(passed=False)

            results[heuristic.key] = outcome.status
            if outcome.passed and outcome.version and version is None:
                version = outcome.version
            logger.debug(
                "[check] %s -> %s version=%s detail=%r",
                heuristic.key,
                outcome.status,
                outcome.version,
                outcome.detail,
            )

        self._state = CheckState.COMPLETED
        self._report = CheckReport(
            target=self.url,
            state=self._state,
            results=results,
            version=version,
            errors=tuple(errors),
            final_url=response.final_url,
            redirects=response.redirects,
            elapsed_ms=response.elapsed_ms,
        )
        logger.info(
            "[check] done target=%s is_drupal=%s version=%s",
            self.url,
            self._report.is_drupal,
            self._report.version,
        )
        return self._report

    # --- запросы результатов (только после завершения прогона)

    def report(self) -> CheckReport:
        if self._state not in TERMINAL_STATES or self._report is None:
            raise CheckStateError(self._state.value)
        return self._report

    def is_drupal(self) -> bool:
        return self.report().is_drupal

    verdict = is_drupal

    def version(self) -> Optional[str]:
        report = self.report()
        return report.version if report.is_drupal else None

    def results(self) -> dict[str, str]:
        return dict(self.report().results)

    def errors(self) -> list[DrupalCheckError]:
        return list(self.report().errors)


def check_url(url: str, settings: Optional[Settings] = None) -> CheckReport:
    """Проверка одного URL (синхронно)."""
    return DrupalCheck(url, settings=settings).check()


async def check_many(
    urls: Iterable[str],
    settings: Optional[Settings] = None,
    *,
    http: Optional[HttpClient] = None,
) -> list[CheckReport]:
    """
    Проверка нескольких URL через одну сессию.
    Каждая проверка независима; параллелизм ограничен check.concurrency, нагрузка — http.rps.
    Порядок отчётов совпадает с порядком urls.
    """
    settings = settings or Settings()
    http = http or build_http_client(settings.http)
    sem = asyncio.Semaphore(settings.check.concurrency)
    targets = list(urls)

    async with http.create_session() as session:
        async def check_one(url: str) -> CheckReport:
            async with sem:
                return await DrupalCheck(url, http=http, settings=settings).run(session)

        reports = await asyncio.gather(*(check_one(u) for u in targets))

    logger.info("[check] batch completed: %s targets, %s drupal", len(targets), sum(r.is_drupal for r in reports))
    return list(reports)
