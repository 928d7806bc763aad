from __future__ import annotations

import abc
from dataclasses import dataclass
from typing import Any, Optional

from ..http import HttpResponse
from ..redirects import RedirectTracer

PASSED = "passed"
FAILED = "failed"


@dataclass(frozen=True)
class RunContext:
    """
    Контекст одного прогона эвристик.

    Эвристики получают его только на чтение: основной ответ уже загружен,
    html декодирован один раз. tracer/session нужны пробе /misc/drupal.js.
    """

    target: str
    response: HttpResponse
    html: str
    session: Any
    tracer: RedirectTracer


@dataclass(frozen=True)
class HeuristicOutcome:
    """
    Итог одной эвристики.
    version: одна цифра, если эвристика умеет её извлекать и нашла.
    """

    passed: bool
    version: Optional[str] = None
    detail: Optional[str] = None

    @property
    def status(self) -> str:
        return PASSED if self.passed else FAILED


class Heuristic(abc.ABC):
    """Базовый класс эвристики: key — имя в карте результатов."""

    key: str

    @abc.abstractmethod
    async def run(self, context: RunContext) -> HeuristicOutcome:
        raise NotImplementedError
