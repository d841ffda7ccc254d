from dataclasses import dataclass, field
from enum import Enum
import logging
import os
from pathlib import Path

# Normally you'd pass API keys with envars or a secrets manager, and that's the
# first thing we look at. For running locally out of the box, the Gemini key
# can also live in a key.txt file next to the Gemini client (never checked in).
_key_file = Path(__file__).parent.joinpath("ai", "gemini", "key.txt")

DESKTOP_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"


class AIModel(str, Enum):
    GEMINI = "gemini"
    OPENAI = "openai"


@dataclass(kw_only=True)
class TagRanking:
    """
    Weights for ranking tags that a page already provides. These are a
    heuristic rather than anything principled, so they're tunable instead of
    being baked into the ranking code.
    """

    title_weight: int = 3
    description_weight: int = 2
    generic_penalty: int = 1
    generic_tags: frozenset[str] = frozenset({"design", "brand", "logo"})
    max_tags: int = 5


@dataclass(kw_only=True)
class Settings:
    """
    Everything the pipeline needs to know about its environment. Built once at
    startup and handed to each component, so tests can construct one with
    fakes and nothing reads the environment behind your back.
    """

    ai_model: AIModel = AIModel.GEMINI
    gemini_api_key: str = ""
    gemini_model: str = "gemini-2.0-flash"
    embedding_model: str = "text-embedding-004"
    openai_api_key: str = ""
    openai_model: str = "gpt-4.1-nano"

    # Seconds, as requests wants them
    probe_timeout: float = 5.0
    fetch_timeout: float = 15.0

    # Milliseconds, as Playwright wants them
    render_timeout_ms: int = 30000
    settle_ms: int = 1000

    user_agent: str = DESKTOP_USER_AGENT
    db_path: str = "linkvault.db"
    # Directory for the Chroma vector store
    vector_path: str = "linkvault_vectors"
    search_cache_ttl: float = 300.0
    tag_ranking: TagRanking = field(default_factory=TagRanking)


def _read_key_file() -> str:
    if _key_file.exists():
        return _key_file.read_text().strip()
    return ""


def load_settings() -> Settings:
    env = os.environ
    defaults = Settings()
    return Settings(
        ai_model=AIModel(env.get("LINKVAULT_AI_MODEL", defaults.ai_model.value)),
        gemini_api_key=env.get("GEMINI_API_KEY") or _read_key_file(),
        gemini_model=env.get("LINKVAULT_GEMINI_MODEL", defaults.gemini_model),
        embedding_model=env.get(
            "LINKVAULT_EMBEDDING_MODEL", defaults.embedding_model
        ),
        openai_api_key=env.get("OPENAI_API_KEY", ""),
        openai_model=env.get("LINKVAULT_OPENAI_MODEL", defaults.openai_model),
        probe_timeout=float(
            env.get("LINKVAULT_PROBE_TIMEOUT", defaults.probe_timeout)
        ),
        fetch_timeout=float(
            env.get("LINKVAULT_FETCH_TIMEOUT", defaults.fetch_timeout)
        ),
        render_timeout_ms=int(
            env.get("LINKVAULT_RENDER_TIMEOUT_MS", defaults.render_timeout_ms)
        ),
        settle_ms=int(env.get("LINKVAULT_SETTLE_MS", defaults.settle_ms)),
        db_path=env.get("LINKVAULT_DB_PATH", defaults.db_path),
        vector_path=env.get("LINKVAULT_VECTOR_PATH", defaults.vector_path),
        search_cache_ttl=float(
            env.get("LINKVAULT_SEARCH_CACHE_TTL", defaults.search_cache_ttl)
        ),
    )


def configure_logging(level: int | str = logging.INFO) -> None:
    logging.basicConfig(level=level, format=LOG_FORMAT)
