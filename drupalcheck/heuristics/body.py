from __future__ import annotations

import re

from .base import Heuristic, HeuristicOutcome, RunContext
from .utils import first_digit

SETTINGS_MARKER = "jquery.extend(drupal.settings"

# Без re.S: точка не захватывает перевод строки, тег ищем в пределах одной строки.
META_GENERATOR_RE = re.compile(r'<meta name="generator" content="Drupal .*"')


class DrupalSettingsHeuristic(Heuristic):
    """Инлайн-настройки Drupal 6/7: jQuery.extend(Drupal.settings, ...)."""

    key = "drupal.settings"

    async def run(self, context: RunContext) -> HeuristicOutcome:
        return HeuristicOutcome(passed=SETTINGS_MARKER in context.html.lower())


class MetaGeneratorHeuristic(Heuristic):
    """<meta name="generator" content="Drupal N ...">; первая цифра тега — версия."""

    key = "body-meta-generator"

    async def run(self, context: RunContext) -> HeuristicOutcome:
        m = META_GENERATOR_RE.search(context.html)
        if m is None:
            return HeuristicOutcome(passed=False)
        tag = m.group(0)
        return HeuristicOutcome(passed=True, version=first_digit(tag), detail=tag)
