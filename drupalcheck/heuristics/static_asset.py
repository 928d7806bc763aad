from __future__ import annotations

import logging
from urllib.parse import urlsplit

from ..redirects import site_root
from .base import Heuristic, HeuristicOutcome, RunContext

logger = logging.getLogger(__name__)

DRUPAL_JS_PATH = "/misc/drupal.js"


class StaticAssetHeuristic(Heuristic):
    """
    HEAD /misc/drupal.js от корня сайта.

    Засчитываем только если после всех редиректов:
    - путь остался ровно /misc/drupal.js (редирект на "/" не считается),
    - последний статус 200,
    - X-Powered-By финального ответа не содержит ASP.NET
      (IIS часто отвечает 200 на любой путь).
    Ошибка пробы = провал эвристики, других последствий нет.
    """

    key = "misc/drupal.js"

    async def run(self, context: RunContext) -> HeuristicOutcome:
        root = site_root(context.target)
        trace = await context.tracer.trace(context.session, root, DRUPAL_JS_PATH, "HEAD")

        if trace.error or trace.response is None or trace.last_hop is None:
            logger.debug(
                "[misc/drupal.js] probe failed target=%s reason=%s code=%s",
                context.target,
                trace.reason,
                trace.code,
            )
            return HeuristicOutcome(passed=False, detail=trace.reason)

        last = trace.last_hop
        path = urlsplit(last.url).path
        powered_by = trace.response.header("X-Powered-By")

        passed = path == DRUPAL_JS_PATH and last.status == 200 and "ASP.NET" not in powered_by
        logger.debug(
            "[misc/drupal.js] target=%s last_url=%s status=%s powered_by=%r passed=%s",
            context.target,
            last.url,
            last.status,
            powered_by,
            passed,
        )
        return HeuristicOutcome(passed=passed, detail=f"{last.status} {last.url}")
