"""Search tag derivation for generated images."""

MAX_TAGS = 5
MIN_TAG_LENGTH = 3


def derive_tags(prompt: str) -> list[str]:
    """Derive the search tags stored with an image record.

    Splits the prompt on whitespace, keeps tokens longer than two characters
    and returns the first five in their original order.  Tokens are neither
    deduplicated nor lowercased, so the result is fully determined by the
    prompt text.

    Args:
        prompt: The (trimmed) user prompt.

    Returns:
        Up to five tag strings.

    Example:
        >>> derive_tags("a serene lake surrounded by mountains")
        ['serene', 'lake', 'surrounded', 'mountains']
    """
    return [token for token in prompt.split() if len(token) >= MIN_TAG_LENGTH][:MAX_TAGS]
