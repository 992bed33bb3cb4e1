from __future__ import annotations

from functools import lru_cache

import tiktoken


@lru_cache(maxsize=1)
def get_encoding():
    return tiktoken.get_encoding("cl100k_base")


def truncate_to_tokens(text: str, max_tokens: int) -> str:
    """
    Cut text to at most `max_tokens` tokens.
    Text whose UTF-8 length already fits is returned without loading the encoding.
    """
    if text is None:
        text = ""
    if max_tokens <= 0:
        return ""
    if len(text.encode("utf-8")) <= max_tokens:
        return text
    enc = get_encoding()
    toks = enc.encode(text)
    if len(toks) <= max_tokens:
        return text
    return enc.decode(toks[:max_tokens])
