"""
Extract the translated payload from raw chat model output.

Models do not reliably return only the translated string: some wrap it in
quotes, some prefix it with "Translation:", some echo the boundary markers
from the prompt. The payload itself (whitespace runs, format specifiers such
as ``%@`` or ``%1$@``) must come through byte for byte.
"""
import re

OPEN_SENTINEL = "\u276e"
CLOSE_SENTINEL = "\u276f"
SENTINELS = OPEN_SENTINEL + CLOSE_SENTINEL
QUOTES = "\"'"

PREFIX_MARKER_PATTERN = re.compile(
    r'(?:here is the translation|translated text|translation)\s*:',
    re.IGNORECASE
)
STRING_WRAPPER_PATTERN = re.compile(r'^string\("(.+)"\)$', re.DOTALL)


def _extract_between_sentinels(raw: str):
    start = raw.find(OPEN_SENTINEL)
    if start == -1:
        return None
    end = raw.find(CLOSE_SENTINEL, start + 1)
    if end == -1:
        return None
    return raw[start + 1:end]


def _strip_prefix_marker(raw: str):
    matches = list(PREFIX_MARKER_PATTERN.finditer(raw))
    if not matches:
        return None
    return _clean_wrapping(raw[matches[-1].end():].strip())


def _unwrap_once(text: str) -> str:
    text = text.strip(SENTINELS)

    match = STRING_WRAPPER_PATTERN.match(text)
    if match:
        text = match.group(1)

    text = text.replace('\\"', '"').replace("\\'", "'")

    if len(text) >= 2 and text[0] == text[-1] and text[0] in QUOTES:
        text = text[1:-1]

    return text.strip(SENTINELS)


def _clean_wrapping(raw: str) -> str:
    text = raw
    while True:
        unwrapped = _unwrap_once(text)
        if unwrapped == text:
            return text
        text = unwrapped


def normalize_response(raw: str) -> str:
    """
    Normalize raw model output into the translated text.

    Rules, first match wins:
    1. Text between the first ❮ and the next ❯ is returned as is.
    2. Otherwise the trimmed text after the last "Translation:"-style marker,
       cleaned as in rule 3.
    3. Otherwise ``string("...")`` wrappers, escaped quotes, matching pairs of
       surrounding straight quotes and stray sentinels are removed, layer by
       layer until none is left.

    Args:
        raw: The content returned by the model.

    Returns:
        The cleaned translation. Never raises.
    """
    between = _extract_between_sentinels(raw)
    if between is not None:
        return between

    after_marker = _strip_prefix_marker(raw)
    if after_marker is not None:
        return after_marker

    return _clean_wrapping(raw)
