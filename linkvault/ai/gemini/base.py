from google import genai
from google.genai.types import ContentDict, PartDict
import logging
import threading

from linkvault.config import Settings

logger = logging.getLogger(__name__)

_local = threading.local()


def _get_client(api_key: str) -> genai.Client:
    # One client per thread, and a new one if the key changes underneath us
    if getattr(_local, "api_key", None) != api_key:
        setattr(_local, "client", genai.Client(api_key=api_key))
        setattr(_local, "api_key", api_key)
    return getattr(_local, "client")


def query(settings: Settings, prompt: str) -> str:
    contents: ContentDict = ContentDict(
        parts=[
            PartDict(text=prompt),
        ],
        role="user",
    )
    response = _get_client(settings.gemini_api_key).models.generate_content(
        model=settings.gemini_model,
        contents=contents,
    )
    if response.usage_metadata:
        logger.debug("Gemini tokens: %s", response.usage_metadata.total_token_count)
    text = response.text
    if not text:
        raise ValueError("No text generated")
    return text


def embed(settings: Settings, text: str) -> list[float]:
    """
    Turns text into a vector with the configured embedding model. The same
    model has to be used for indexing and querying, or the distances mean
    nothing.
    """
    response = _get_client(settings.gemini_api_key).models.embed_content(
        model=settings.embedding_model,
        contents=text,
    )
    if not response.embeddings or not response.embeddings[0].values:
        raise ValueError("No embedding generated")
    return list(response.embeddings[0].values)
