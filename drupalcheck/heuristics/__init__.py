from .base import FAILED, PASSED, Heuristic, HeuristicOutcome, RunContext
from .body import DrupalSettingsHeuristic, MetaGeneratorHeuristic
from .headers import ExpiresHeaderHeuristic, XDrupalCacheHeaderHeuristic, XGeneratorHeaderHeuristic
from .static_asset import StaticAssetHeuristic
from .utils import decode_html


def default_heuristics() -> list[Heuristic]:
    """
    Эвристики в фиксированном порядке выполнения.
    Порядок задаёт порядок ключей в карте результатов.
    """
    return [
        ExpiresHeaderHeuristic(),
        DrupalSettingsHeuristic(),
        StaticAssetHeuristic(),
        XGeneratorHeaderHeuristic(),
        XDrupalCacheHeaderHeuristic(),
        MetaGeneratorHeuristic(),
    ]


HEURISTIC_KEYS: tuple[str, ...] = tuple(h.key for h in default_heuristics())


__all__ = [
    "FAILED",
    "HEURISTIC_KEYS",
    "PASSED",
    "Heuristic",
    "HeuristicOutcome",
    "RunContext",
    "decode_html",
    "default_heuristics",
]
