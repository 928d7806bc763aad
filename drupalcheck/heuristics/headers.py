from __future__ import annotations

from .base import Heuristic, HeuristicOutcome, RunContext
from .utils import first_digit

# Дата, которую кеширующий слой Drupal ставит в Expires для "не кешировать".
DRUPAL_EXPIRES = "Sun, 19 Nov 1978 05:00:00 GMT"


class ExpiresHeaderHeuristic(Heuristic):
    """Expires: точное совпадение строки, без нормализации."""

    key = "expires header"

    async def run(self, context: RunContext) -> HeuristicOutcome:
        value = context.response.header("Expires")
        return HeuristicOutcome(passed=value == DRUPAL_EXPIRES, detail=value or None)


class XGeneratorHeaderHeuristic(Heuristic):
    """X-Generator содержит "Drupal"; первая цифра значения — версия."""

    key = "x-generator header"

    async def run(self, context: RunContext) -> HeuristicOutcome:
        value = context.response.header("X-Generator")
        if "Drupal" not in value:
            return HeuristicOutcome(passed=False)
        return HeuristicOutcome(passed=True, version=first_digit(value), detail=value)


class XDrupalCacheHeaderHeuristic(Heuristic):
    key = "x-drupal-cache header"

    async def run(self, context: RunContext) -> HeuristicOutcome:
        value = context.response.header("X-Drupal-Cache")
        return HeuristicOutcome(passed=bool(value), detail=value or None)
