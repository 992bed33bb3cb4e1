import os
from datetime import timezone, tzinfo
from typing import Optional
from zoneinfo import ZoneInfo

# export parsing
MAX_FILE_SIZE_BYTES = 1024 * 1024 * 1024
MAX_MESSAGE_CHARS = 50_000
DEFAULT_CONVERSATION_TITLE = "Untitled conversation"
EXPORT_SUFFIXES = (".json", ".html", ".htm")

# statistics
CHARS_PER_TOKEN = 4  # rough estimate, not a tokenizer
EVIDENCE_LIMIT = 10
TOP_WORDS = 30
TOP_CATCH_PHRASES = 10
CATCH_PHRASE_MIN_COUNT = 3
TOP_CONVERSATIONS = 5
NGRAM_MIN_COUNTS = {1: 5, 2: 5, 3: 3}
NGRAM_LIMITS = {1: 20, 2: 15, 3: 10}
TIMEZONE = os.getenv("CHATPROFILE_TIMEZONE", "UTC")

# provider
MODEL = os.getenv("CHATPROFILE_MODEL", "gpt-5-nano")
EMBEDDING_MODEL = os.getenv("CHATPROFILE_EMBEDDING_MODEL", "text-embedding-3-small")
PROVIDER_MAX_RETRIES = 3
PROVIDER_BACKOFF_SECONDS = 1.0
PROVIDER_REQUEST_TIMEOUT_SECONDS = 60.0
RATE_LIMIT_DEFAULT_RETRY_AFTER = 60
MAX_EMBEDDING_TOKENS = 8000

# orchestration
TOTAL_TIMEOUT_SECONDS = 300.0
STEP_TIMEOUT_SECONDS = 90.0
DIGEST_MAX_CONVERSATIONS = 100
DIGEST_MESSAGE_CHARS = 200
DIGEST_CONVERSATION_CHARS = 500

# intelligence map
MAP_MAX_CONVERSATIONS = 30
MAP_BATCH_SIZE = 10
MAP_MIN_POINTS = 3
MAP_TIMEOUT_SECONDS = 60.0
MAP_SUMMARY_CHARS = 100
AXIS_LABEL_MIN_REMAINING_SECONDS = 5.0
AXIS_SAMPLE_SIZE = 3


def get_timezone(name: Optional[str] = None) -> tzinfo:
    name = (name or TIMEZONE or "UTC").strip()
    if name.upper() == "UTC":
        return timezone.utc
    return ZoneInfo(name)
