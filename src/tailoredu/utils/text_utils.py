"""Text processing utilities.

Common text manipulation functions used across modules.
"""

import re

# Patterns for removing thinking/reasoning blocks from LLM output
THINK_PATTERNS = [
    re.compile(r"<think>.*?</think>", re.DOTALL | re.IGNORECASE),
    re.compile(r"<thinking>.*?</thinking>", re.DOTALL | re.IGNORECASE),
    re.compile(r"<analysis>.*?</analysis>", re.DOTALL | re.IGNORECASE),
    re.compile(r"<reasoning>.*?</reasoning>", re.DOTALL | re.IGNORECASE),
]

# Optional currency symbol, digit groups joined by "." or ",", optional "%"
NUMBER_PATTERN = re.compile(r"[$£€¥]?(\d+(?:[.,]\d+)*)\s*%?")

_LEADING_FLOAT = re.compile(r"\d+(?:\.\d+)?")

NUMBER_TOLERANCE = 0.001


def strip_think(text: str) -> str:
    """Remove thinking/reasoning tags from LLM output.

    Args:
        text: Raw LLM output text

    Returns:
        Cleaned text without thinking artifacts
    """
    result = text
    for pattern in THINK_PATTERNS:
        result = pattern.sub("", result)
    return result.strip()


def count_words(text: str) -> int:
    """Count whitespace-separated, non-empty tokens."""
    return len([word for word in text.split() if word])


def extract_numbers(text: str) -> list[float]:
    """Extract numeric tokens from text, sorted ascending.

    Handles currency symbols ($5), decimals (3.5), thousands
    separators (1,200) and percentages (40%).

    Args:
        text: Free text

    Returns:
        Sorted list of parsed values
    """
    numbers: list[float] = []
    for match in NUMBER_PATTERN.finditer(text):
        raw = match.group(1).replace(",", "")
        # "1.2.3" parses as its leading value 1.2
        leading = _LEADING_FLOAT.match(raw)
        numbers.append(float(leading.group(0)))
    return sorted(numbers)


def numbers_match(a: list[float], b: list[float]) -> bool:
    """Compare two sorted number lists with floating-point tolerance."""
    if len(a) != len(b):
        return False
    return all(abs(x - y) <= NUMBER_TOLERANCE for x, y in zip(a, b))


def format_numbers(numbers: list[float]) -> str:
    """Format numbers the way they appear in issue messages: [24, 5.5]."""
    parts = [str(int(n)) if n.is_integer() else str(n) for n in numbers]
    return "[" + ", ".join(parts) + "]"
