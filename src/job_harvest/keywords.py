from __future__ import annotations

MIN_MESSAGE_LENGTH = 50

DEFAULT_KEYWORDS = (
    "job",
    "hiring",
    "position",
    "vacancy",
    "developer",
    "engineer",
    "salary",
    "remote",
    "experience",
    "apply",
)

BOILERPLATE_PHRASES = (
    "subscribe to",
    "join our",
    "follow us",
)

PROMO_PREFIXES = (
    "👆",
    "⬆️",
    "⬆",
)


def parse_keywords_csv(value: str | None) -> list[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def build_keyword_set(extra_csv: str | None = None) -> tuple[str, ...]:
    combined = list(DEFAULT_KEYWORDS) + parse_keywords_csv(extra_csv)
    normalized = {word.casefold() for word in combined if word.strip()}
    return tuple(sorted(normalized))


def is_boilerplate(text: str) -> bool:
    lowered = text.strip().casefold()
    if lowered.startswith(PROMO_PREFIXES):
        return True
    return any(phrase in lowered for phrase in BOILERPLATE_PHRASES)


def is_candidate_job_post(text: str | None, keywords: tuple[str, ...] = DEFAULT_KEYWORDS) -> bool:
    """Cheap local check run before any message reaches the reasoning service."""
    if not text or not text.strip():
        return False
    if len(text) < MIN_MESSAGE_LENGTH:
        return False
    if is_boilerplate(text):
        return False
    lowered = text.casefold()
    return any(keyword in lowered for keyword in keywords)
