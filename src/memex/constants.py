"""Fixed limits and names shared across Memex."""

from __future__ import annotations

MEMEX_DIR_NAME = ".memex"
SESSIONS_DIR_NAME = "sessions"
DB_FILE_NAME = "memex.db"
LEGACY_MEMORY_FILE = "memory.json"
CONFIG_FILE_NAME = "config.json"
ACTIVE_SESSION_FILE = "active-session.json"
PENDING_COMPRESSION_FILE = "pending-compression.json"
RESUME_FILE_NAME = "RESUME.md"
RAW_LOG_SUFFIX = "-raw.txt"
STRUCTURED_LOG_SUFFIX = ".jsonl"

# Compression
MIN_TRANSCRIPT_CHARS = 50
TRANSCRIPT_TAIL_CHARS = 12_000
TOO_SHORT_SUMMARY = "Session too short to compress."
FAILED_SUMMARY = "Session recorded but compression failed - raw log preserved."
EMPTY_SUMMARY = "Session compressed; no summary returned."

# Memory caps
MAX_RECENT_SESSIONS = 5
MAX_CONVERSATION_TURNS = 30
MAX_FOCUS_HISTORY = 10

# Redaction
SKIP_PLACEHOLDER = "[content excluded by <memex:skip>]"

# Context assembly
CHARS_PER_TOKEN = 4
TIER_CHAR_LIMITS = {1: 300, 2: 2_000, 3: 35_000}
TRUNCATION_NOTICE = "\n\n> [memex: context truncated to fit token budget]"

# Supervisor
DEFAULT_INJECT_DELAY_SECONDS = 3.0
COMMAND_LOOKUP_TIMEOUT_SECONDS = 5.0

# Keys Memex uses for its own summarization calls; never passed to the agent.
CREDENTIAL_ENV_KEYS = (
    "ANTHROPIC_API_KEY",
    "OPENAI_API_KEY",
    "LITELLM_API_KEY",
    "LITELLM_BASE_URL",
    "LITELLM_MODEL",
    "LITELLM_TEAM_ID",
    "ANTHROPIC_MODEL",
    "OPENAI_MODEL",
    "AI_PROVIDER",
    "MEMEX_OPENAI_API_KEY",
    "MEMEX_ANTHROPIC_API_KEY",
)

# Webhook
WEBHOOK_TIMEOUT_SECONDS = 5.0

# Session search
SEARCH_RESULT_LIMIT = 20
SEARCH_SNIPPET_WORDS = 12

# Auto-snapshot
SNAPSHOT_JOIN_TIMEOUT_SECONDS = 30.0
