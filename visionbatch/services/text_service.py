import re


_LINE_BREAKS = re.compile(r"\r\n?")
_HYPHEN_BREAK = re.compile(r"-\n")
_SINGLE_BREAK = re.compile(r"(?<!\n)\n(?!\n)")
_MULTI_SPACE = re.compile(r" {2,}")


def normalize(raw_text: str) -> str:
    """
    Clean raw OCR output. The steps run in this order:
    - CRLF / CR -> LF
    - "exam-\\nple" -> "example"
    - single line breaks -> space (blank-line paragraph breaks survive)
    - runs of spaces -> one space (tabs untouched)
    - trim
    """
    if not raw_text:
        return ""

    text = _LINE_BREAKS.sub("\n", raw_text)
    text = _HYPHEN_BREAK.sub("", text)
    text = _SINGLE_BREAK.sub(" ", text)
    text = _MULTI_SPACE.sub(" ", text)
    return text.strip()
