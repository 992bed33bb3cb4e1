"""
Normalize a ChatGPT data export into ordered conversations.

Accepts `conversations.json` or the `chat.html` viewer (which embeds the same
array as `var jsonData = ...`). Each conversation's `mapping` is a graph of
nodes {id, parent, children, message}; it is flattened depth-first from the
root so sibling order is kept, then messages are ordered by timestamp.
"""

from __future__ import annotations

import json
import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from chatprofile.config import (
    DEFAULT_CONVERSATION_TITLE,
    EXPORT_SUFFIXES,
    MAX_FILE_SIZE_BYTES,
    MAX_MESSAGE_CHARS,
)
from chatprofile.errors import ExportParseError, ParseErrorCode
from chatprofile.models import Conversation, Message, ParseResult, ParseStats

logger = logging.getLogger(__name__)

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")
_HTML_MARKER = "var jsonData = "
_EPOCH = datetime.fromtimestamp(0, tz=timezone.utc)


# --------- Loading ---------

def parse_export_file(path: Union[str, Path]) -> ParseResult:
    export_path = Path(path)
    if not export_path.is_file():
        raise ExportParseError(
            ParseErrorCode.READ_ERROR,
            "Export file not found.",
            {"path": str(export_path)},
        )
    suffix = export_path.suffix.lower()
    if suffix not in EXPORT_SUFFIXES:
        raise ExportParseError(
            ParseErrorCode.INVALID_FILE_TYPE,
            "Expected conversations.json or chat.html from a ChatGPT export.",
            {"suffix": suffix},
        )
    try:
        size = export_path.stat().st_size
        if size > MAX_FILE_SIZE_BYTES:
            raise ExportParseError(
                ParseErrorCode.FILE_TOO_LARGE,
                "Export file is too large.",
                {"size": size, "limit": MAX_FILE_SIZE_BYTES},
            )
        data = export_path.read_bytes()
    except OSError as e:
        raise ExportParseError(ParseErrorCode.READ_ERROR, f"Could not read export: {e}") from e
    return parse_export_bytes(data, html=suffix in (".html", ".htm"))


def parse_export_bytes(data: Union[bytes, str], *, html: bool = False) -> ParseResult:
    if isinstance(data, bytes):
        try:
            text = data.decode("utf-8-sig")
        except UnicodeDecodeError as e:
            raise ExportParseError(ParseErrorCode.INVALID_JSON, "Export is not valid UTF-8.") from e
    else:
        text = data
    if not text.strip():
        raise ExportParseError(ParseErrorCode.EMPTY_FILE, "Export file is empty.")
    if html:
        text = _extract_html_json(text)
    try:
        raw = json.loads(text)
    except json.JSONDecodeError as e:
        raise ExportParseError(
            ParseErrorCode.INVALID_JSON,
            "Export is not valid JSON.",
            {"line": e.lineno, "column": e.colno},
        ) from e
    return parse_export_data(raw)


def _extract_html_json(text: str) -> str:
    """Cut the jsonData literal out of chat.html by bracket matching."""
    start = text.find(_HTML_MARKER)
    if start == -1:
        raise ExportParseError(ParseErrorCode.INVALID_FORMAT, "Could not find jsonData in HTML export.")
    i = start + len(_HTML_MARKER)
    n = len(text)
    while i < n and text[i].isspace():
        i += 1
    if i >= n or text[i] not in "[{":
        raise ExportParseError(ParseErrorCode.INVALID_FORMAT, "Invalid jsonData start in HTML export.")

    depth = 0
    in_str = False
    escape = False
    for j in range(i, n):
        ch = text[j]
        if in_str:
            if escape:
                escape = False
            elif ch == "\\":
                escape = True
            elif ch == '"':
                in_str = False
            continue
        if ch == '"':
            in_str = True
            continue
        if ch in "[{":
            depth += 1
        elif ch in "]}":
            depth -= 1
            if depth == 0:
                return text[i : j + 1]
    raise ExportParseError(ParseErrorCode.INVALID_JSON, "Could not parse jsonData from HTML export.")


# --------- Validation and conversion ---------

def _validate_format(data: Any) -> List[Dict[str, Any]]:
    if not isinstance(data, list):
        raise ExportParseError(
            ParseErrorCode.INVALID_FORMAT,
            "Export must be a list of conversations.",
            {"type": type(data).__name__},
        )
    if not data:
        raise ExportParseError(ParseErrorCode.EMPTY_FILE, "Export contains no conversations.")
    first = data[0]
    if not isinstance(first, dict) or "mapping" not in first or "id" not in first:
        raise ExportParseError(
            ParseErrorCode.INVALID_FORMAT,
            "Conversations must carry 'id' and 'mapping' fields.",
        )
    return [c for c in data if isinstance(c, dict)]


def parse_export_data(data: Any) -> ParseResult:
    raw_conversations = _validate_format(data)
    conversations: List[Conversation] = []
    total_messages = 0
    skipped = 0
    for raw in raw_conversations:
        conversation, kept, dropped = _convert_conversation(raw)
        conversations.append(conversation)
        total_messages += kept + dropped
        skipped += dropped

    # newest first; sorted() is stable so equal timestamps keep export order
    conversations = sorted(conversations, key=lambda c: c.create_time, reverse=True)
    stats = ParseStats(
        total_conversations=len(conversations),
        total_messages=total_messages,
        skipped_messages=skipped,
    )
    logger.info(
        "Parsed %d conversations (%d messages, %d skipped)",
        stats.total_conversations,
        stats.total_messages,
        stats.skipped_messages,
    )
    return ParseResult(conversations=conversations, stats=stats)


def _convert_conversation(raw: Dict[str, Any]) -> Tuple[Conversation, int, int]:
    mapping = raw.get("mapping")
    if not isinstance(mapping, dict):
        mapping = {}
    messages, skipped = flatten_mapping(mapping)

    create_time = _to_datetime(raw.get("create_time"))
    if create_time is None:
        stamped = [m.create_time for m in messages if m.create_time is not None]
        create_time = min(stamped) if stamped else _EPOCH
    update_time = _to_datetime(raw.get("update_time")) or create_time

    title = raw.get("title")
    if not isinstance(title, str) or not title.strip():
        title = DEFAULT_CONVERSATION_TITLE

    conversation = Conversation(
        id=str(raw.get("id") or raw.get("conversation_id") or ""),
        title=title.strip(),
        create_time=create_time,
        update_time=update_time,
        messages=tuple(messages),
    )
    return conversation, len(messages), skipped


def find_root(mapping: Dict[str, Any]) -> Optional[str]:
    for node_id, node in mapping.items():
        if not isinstance(node, dict):
            continue
        if node.get("parent") is None or "root" in str(node_id):
            return node_id
    return None


def flatten_mapping(mapping: Dict[str, Any]) -> Tuple[List[Message], int]:
    """
    Walk the node graph from its root and return (messages, skipped_count).
    Unreachable nodes are ignored; a missing root yields no messages.
    """
    root = find_root(mapping)
    if root is None:
        return [], 0

    messages: List[Message] = []
    skipped = 0
    visited = set()
    stack = [root]
    while stack:
        node_id = stack.pop()
        if node_id in visited:
            continue
        visited.add(node_id)
        node = mapping.get(node_id)
        if not isinstance(node, dict):
            continue

        raw_message = node.get("message")
        if isinstance(raw_message, dict):
            message = extract_message(raw_message, node_id)
            if message is None:
                skipped += 1
            else:
                messages.append(message)

        children = node.get("children")
        if not isinstance(children, list):
            children = []
        children = [c for c in children if isinstance(c, str)]
        for child in reversed(children):
            if child not in visited and child in mapping:
                stack.append(child)

    # missing timestamps first, otherwise chronological; stable for ties
    messages.sort(key=lambda m: (m.create_time is not None, m.create_time or _EPOCH))
    return messages, skipped


def extract_message(raw: Dict[str, Any], node_id: str) -> Optional[Message]:
    author = raw.get("author") or {}
    role = author.get("role") if isinstance(author, dict) else None
    if not role or role == "system":
        return None
    text = extract_text(raw.get("content") or {})
    if not text:
        return None
    return Message(
        id=str(raw.get("id") or node_id),
        role=str(role),
        content=text,
        create_time=_to_datetime(raw.get("create_time")),
    )


def extract_text(content: Any) -> str:
    """Best-effort plain text from a message content object."""
    if not isinstance(content, dict):
        return ""
    pieces: List[str] = []
    parts = content.get("parts")
    if isinstance(parts, list) and parts:
        for part in parts:
            if isinstance(part, str):
                pieces.append(part)
            elif isinstance(part, dict) and isinstance(part.get("text"), str):
                pieces.append(part["text"])
    elif isinstance(content.get("text"), str):
        pieces.append(content["text"])
    text = "\n".join(sanitize_text(p) for p in pieces if p)
    return text.strip()[:MAX_MESSAGE_CHARS]


def sanitize_text(text: str) -> str:
    return _CONTROL_CHARS.sub("", text)


def _to_datetime(ts: Any) -> Optional[datetime]:
    if ts is None or isinstance(ts, bool):
        return None
    try:
        val = float(ts)
    except (TypeError, ValueError):
        return None
    try:
        return datetime.fromtimestamp(val, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None
