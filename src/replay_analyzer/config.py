from functools import lru_cache
import json
import logging
from pydantic import Field
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    # Core
    environment: str = Field("development", alias="ENVIRONMENT")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    api_host: str = Field("0.0.0.0", alias="API_HOST")
    api_port: int = Field(8000, alias="API_PORT")

    # Replay parsing
    idle_threshold_ms: int = Field(5000, alias="IDLE_THRESHOLD_MS")
    scroll_depth_page_multiplier: float = Field(3.0, alias="SCROLL_DEPTH_PAGE_MULTIPLIER")  # page height in viewports
    session_concurrency: int = Field(4, alias="SESSION_CONCURRENCY")
    max_events_per_session: int = Field(200_000, alias="MAX_EVENTS_PER_SESSION")

    # Priority scoring
    detector_concurrency: int = Field(8, alias="DETECTOR_CONCURRENCY")
    priority_queue_limit: int = Field(50, alias="PRIORITY_QUEUE_LIMIT")
    priority_min_score: int = Field(10, alias="PRIORITY_MIN_SCORE")
    default_signal_weight: int = Field(10, alias="DEFAULT_SIGNAL_WEIGHT")
    signal_weights: str | None = Field(None, alias="SIGNAL_WEIGHTS")  # JSON mapping signal_type->weight
    recency_breakpoints: str | None = Field(None, alias="RECENCY_BREAKPOINTS")  # format days:mult;days:mult
    recency_fallback: float = Field(0.5, alias="RECENCY_FALLBACK")

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "allow"


@lru_cache
def get_settings() -> Settings:
    return Settings()


def reset_settings():
    """Clear cached settings (useful in tests when env vars change)."""
    get_settings.cache_clear()


def parse_signal_weights(raw: str | None) -> dict[str, int]:
    if not raw:
        return {}
    try:
        data = json.loads(raw)
    except ValueError:
        logger.warning("SIGNAL_WEIGHTS is not valid JSON; ignoring override")
        return {}
    if not isinstance(data, dict):
        logger.warning("SIGNAL_WEIGHTS must be a JSON object; ignoring override")
        return {}
    weights: dict[str, int] = {}
    for k, v in data.items():
        try:
            weights[str(k).strip()] = max(0, min(60, int(v)))
        except (TypeError, ValueError):
            logger.warning(f"Ignoring non-numeric weight for signal type {k}")
    return weights


def parse_recency_breakpoints(raw: str | None) -> list[tuple[float, float]]:
    points: list[tuple[float, float]] = []
    if not raw:
        return points
    for part in [p for p in raw.split(";") if p.strip()]:
        if ":" not in part:
            continue
        days, mult = part.split(":", 1)
        try:
            points.append((float(days.strip()), float(mult.strip())))
        except ValueError:
            logger.warning(f"Ignoring malformed recency breakpoint {part!r}")
    return sorted(points)


def build_weight_table(settings: Settings | None = None) -> dict[str, int]:
    """Default signal weights with any SIGNAL_WEIGHTS overrides applied."""
    from replay_analyzer.scoring.signals import DEFAULT_SIGNAL_WEIGHTS

    s = settings or get_settings()
    table = dict(DEFAULT_SIGNAL_WEIGHTS)
    table.update(parse_signal_weights(s.signal_weights))
    return table


def build_recency_policy(settings: Settings | None = None):
    from replay_analyzer.scoring.signals import RecencyPolicy

    s = settings or get_settings()
    points = parse_recency_breakpoints(s.recency_breakpoints)
    if not points:
        return RecencyPolicy(fallback=s.recency_fallback)
    return RecencyPolicy(breakpoints=tuple(points), fallback=s.recency_fallback)
