import re
from typing import List

from ..jobs.models import TranscriptionSegment

_SPECIAL_TOKENS = re.compile(
    r"<\|(?:startoftranscript|endoftranscript|startofprompt|endofprompt|[0-9]+(?:\.[0-9]+)?)\|>"
)
_LEADING_RANGE = re.compile(r"^\s*\[[^\]]*\]\s*")
_PAREN_CUE = re.compile(r"\([^)]*\)")
_WHITESPACE = re.compile(r"\s+")
_SENTENCE = re.compile(r"[^.!?]+[.!?]*")


def sanitize_transcript_text(text: str, preserve: bool = False) -> str:
    """
    Strip decoder artifacts from recognizer output.

    Removes Whisper special tokens, inline ``<|1.23|>`` timestamps, leading
    ``[0m0s - 0m3s]`` ranges and parenthetical non-speech cues such as
    ``(engine sounds)``. With ``preserve`` the text is returned untouched.
    """
    if preserve or not text:
        return text

    cleaned = _SPECIAL_TOKENS.sub("", text)

    lines = []
    for line in cleaned.splitlines():
        line = _LEADING_RANGE.sub("", line)
        stripped = line.strip()
        if stripped.startswith("(") and stripped.endswith(")"):
            continue
        line = _PAREN_CUE.sub("", line).strip()
        if line:
            lines.append(line)

    return _WHITESPACE.sub(" ", "\n".join(lines)).strip()


def split_sentences(text: str) -> List[str]:
    return [s.strip() for s in _SENTENCE.findall(text or "") if s.strip(" \t\n.!?")]


def segments_from_text(text: str, duration: float) -> List[TranscriptionSegment]:
    """Spread sentences evenly over ``duration`` when no timings are known."""
    duration = max(0.0, duration or 0.0)
    sentences = split_sentences(text)
    if not sentences:
        return [TranscriptionSegment(start=0.0, end=duration, text=text)]

    step = duration / len(sentences)
    return [
        TranscriptionSegment(
            start=index * step,
            end=min((index + 1) * step, duration),
            text=sentence,
        )
        for index, sentence in enumerate(sentences)
    ]
