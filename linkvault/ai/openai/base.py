import logging
from openai import OpenAI, RateLimitError
from retry import retry
import threading

from linkvault.config import Settings

logger = logging.getLogger(__name__)

INSTRUCTIONS = (
    "You are helping organize a personal library of saved web links. "
    "Answer with exactly the format requested and nothing else."
)

_local = threading.local()


def _get_client(api_key: str) -> OpenAI:
    if getattr(_local, "api_key", None) != api_key:
        setattr(_local, "client", OpenAI(api_key=api_key))
        setattr(_local, "api_key", api_key)
    return getattr(_local, "client")


@retry(RateLimitError, tries=5, delay=2, backoff=2)
def openai_query(settings: Settings, prompt: str) -> str:
    try:
        response = _get_client(settings.openai_api_key).responses.create(
            model=settings.openai_model,
            instructions=INSTRUCTIONS,
            input=prompt,
        )
        if response.error:
            raise RuntimeError(
                f"Error: {response.error.message} ({response.error.code})"
            )
        return response.output_text
    except RateLimitError as e:
        logger.warning("Rate limit error: %s", e)
        raise
