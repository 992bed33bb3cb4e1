from __future__ import annotations

import re
from functools import lru_cache
from typing import Callable, List

import tinysegmenter

Tokenizer = Callable[[str], List[str]]

_JAPANESE = re.compile(r"[\u3040-\u309F\u30A0-\u30FF\u4E00-\u9FAF]")
_HIRAGANA_ONLY = re.compile(r"^[\u3040-\u309F]+$")
_SINGLE_HIRAGANA = re.compile(r"^[\u3040-\u309F]$")
_DIGITS = re.compile(r"^\d+$")
_SINGLE_LATIN = re.compile(r"^[a-z]$")
_PUNCTUATION = re.compile(
    r"^[。、！？「」『』（）\[\]【】・…―～：；“”‘’.,!?;:'\"(){}\s\-_/\\|<>=+*&^%$#@`~]+$"
)


@lru_cache(maxsize=1)
def _segmenter() -> tinysegmenter.TinySegmenter:
    return tinysegmenter.TinySegmenter()


def segment(text: str) -> List[str]:
    """Split text into word-like tokens (handles Japanese without spaces)."""
    if not text:
        return []
    return list(_segmenter().tokenize(text))


def normalize_token(token: str) -> str:
    return token.lower().strip()


def has_japanese(token: str) -> bool:
    return bool(_JAPANESE.search(token))


def is_hiragana_only(token: str) -> bool:
    return bool(_HIRAGANA_ONLY.match(token))


def is_noise_token(token: str) -> bool:
    """Numbers, single letters, bare particles and punctuation."""
    return bool(
        len(token) < 2
        or _DIGITS.match(token)
        or _SINGLE_LATIN.match(token)
        or _PUNCTUATION.match(token)
        or _SINGLE_HIRAGANA.match(token)
    )
