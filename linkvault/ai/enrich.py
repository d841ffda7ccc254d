import json
import logging
import re

from linkvault.ai.gemini.base import query as gemini_query
from linkvault.ai.openai.base import openai_query
from linkvault.ai.types import LinkMetadata
from linkvault.config import AIModel, Settings, TagRanking
from linkvault.util.html import merge_unique, split_keywords

logger = logging.getLogger(__name__)

# Models love to wrap their answers in markdown code fences even when told not
# to, so these get stripped before anything is parsed.
CODE_FENCE = re.compile(r"```(?:json)?", re.IGNORECASE)

GENERATED_TAG_COUNT = 5


def ask(settings: Settings, prompt: str) -> str:
    if settings.ai_model == AIModel.GEMINI:
        return gemini_query(settings, prompt)
    elif settings.ai_model == AIModel.OPENAI:
        return openai_query(settings, prompt)
    raise ValueError(f"Unknown model: {settings.ai_model}")


def strip_code_fences(text: str) -> str:
    return CODE_FENCE.sub("", text).strip()


def enrich_categories(metadata: LinkMetadata, settings: Settings) -> list[str]:
    """
    Asks the AI for broad categories. This is strictly best-effort: a link
    with no categories is still a perfectly good link, so any failure here
    (the service, the parsing, a response that isn't a list) just means no
    categories.
    """
    prompt = f"""
Given the following metadata, classify the link into one or more broad categories.

Title: {metadata.title}
Description: {metadata.description}
Tags: {", ".join(metadata.tags)}

Output the categories as a JSON array of strings only, without any additional
text or formatting. For example: ["Design", "Technology"]
"""
    try:
        result = strip_code_fences(ask(settings, prompt))
        parsed = json.loads(result or "[]")
    except Exception as e:
        logger.warning("AI categorization failed for %s: %s", metadata.url, e)
        return []

    if not isinstance(parsed, list):
        logger.warning("AI categorization returned a non-list: %r", parsed)
        return []

    return merge_unique([], [c for c in parsed if isinstance(c, str)])


def score_tag(
    tag: str, title_lower: str, description_lower: str, ranking: TagRanking
) -> int:
    """
    Tags that show up in the title or description are probably about this
    page specifically, and multi-word tags ("minimalist packaging design")
    tend to say more than single words. A handful of single words are so
    common on design sites that they're nudged down.
    """
    lower_tag = tag.lower()
    score = 0
    if lower_tag in title_lower:
        score += ranking.title_weight
    if lower_tag in description_lower:
        score += ranking.description_weight

    word_count = len([w for w in tag.split(" ") if w])
    score += word_count

    if word_count == 1 and lower_tag in ranking.generic_tags:
        score -= ranking.generic_penalty
    return score


def rank_tags(metadata: LinkMetadata, ranking: TagRanking) -> list[str]:
    title_lower = metadata.title.lower()
    description_lower = metadata.description.lower()

    tags = merge_unique([], metadata.tags)
    scored = [
        (tag, score_tag(tag, title_lower, description_lower, ranking))
        for tag in tags
    ]
    # sort() is stable, so equal scores keep the page's original order
    scored.sort(key=lambda x: x[1], reverse=True)
    return [tag for tag, _ in scored[: ranking.max_tags]]


def generate_tags(metadata: LinkMetadata, settings: Settings) -> list[str]:
    prompt = f"""
Given the following metadata, generate a list of {GENERATED_TAG_COUNT} relevant and
concise tags that best describe the content.

Title: "{metadata.title}"
Description: "{metadata.description}"

Output the tags as a comma-separated list without any additional text.
"""
    try:
        result = strip_code_fences(ask(settings, prompt))
    except Exception as e:
        logger.warning("AI tag generation failed for %s: %s", metadata.url, e)
        return []

    tags = merge_unique([], split_keywords(result))
    return tags[: settings.tag_ranking.max_tags]


def enrich_tags(metadata: LinkMetadata, settings: Settings) -> list[str]:
    """
    If the page gave us tags, rank them and keep the best few. Otherwise ask
    the AI to come up with some.
    """
    if metadata.tags:
        tags = rank_tags(metadata, settings.tag_ranking)
        logger.info("Ranked %d existing tags for %s", len(tags), metadata.url)
        return tags

    tags = generate_tags(metadata, settings)
    logger.info("Generated %d tags for %s", len(tags), metadata.url)
    return tags


def enrich(metadata: LinkMetadata, settings: Settings) -> LinkMetadata:
    # Categories are asked about with the raw tags, before they're trimmed
    categories = enrich_categories(metadata, settings)
    tags = enrich_tags(metadata, settings)
    return metadata.model_copy(update={"categories": categories, "tags": tags})
