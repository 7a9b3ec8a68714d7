"""
Project-wide constants for the AuthorForge AI orchestration core
"""

# ==============================================================================
# Retry and Network Configuration
# ==============================================================================

MAX_ATTEMPTS = 3
RETRY_BASE_DELAY = 1.0  # seconds
RETRY_MAX_DELAY = 30.0  # seconds
REQUEST_TIMEOUT = 60.0  # seconds
RATE_LIMIT_WINDOW = 60  # seconds

# Conservative fallback for the remote free tier
FALLBACK_REQUESTS_PER_MINUTE = 15

# ==============================================================================
# Models
# ==============================================================================

DEFAULT_REMOTE_MODEL = "gemini-2.5-flash"
DEFAULT_VALIDATION_MODEL = "gemini-2.5-flash"
VALIDATION_PROMPT = "test"
DEFAULT_LOCAL_BASE_URL = "http://127.0.0.1:8080"

DEFAULT_TEMPERATURE = 0.7
DEFAULT_TOP_P = 0.95
DEFAULT_TOP_K = 40

LOCAL_JSON_INSTRUCTION = "\n\nRespond strictly in valid JSON format."

# ==============================================================================
# Usage Accounting
# ==============================================================================

DEFAULT_TOKENIZER_ENCODING = "cl100k_base"
CHARS_PER_TOKEN = 4
DAILY_TOKEN_LIMIT = 2_000_000

# ==============================================================================
# Context Budgets (characters)
# ==============================================================================

# Per-section budgets for manuscript context
LOCAL_SECTION_LIMIT = 1000
LOCAL_HEAD_CHARS = 500
LOCAL_TAIL_CHARS = 200
LOCAL_EXCERPT_CHARS = 200

REMOTE_SECTION_LIMIT = 4000
REMOTE_HEAD_CHARS = 1500
REMOTE_TAIL_CHARS = 1500
REMOTE_EXCERPT_CHARS = 1000

MIN_SECTION_CHARS = 50

OMITTED_MARKER = "...[omitted]..."
TRUNCATED_MARKER = "... [truncated]"

# Whole-prompt clipping limits
LOCAL_CHAT_CONTEXT_CHARS = 4000
REMOTE_CHAT_CONTEXT_CHARS = 30000
LOCAL_ANALYSIS_CHARS = 8000
REMOTE_ANALYSIS_CHARS = 50000
LOCAL_SUMMARY_CHARS = 3000
REMOTE_SUMMARY_CHARS = 8000

# ==============================================================================
# Batch Processing
# ==============================================================================

INTER_BATCH_DELAY = 1.0  # seconds

HEALTH_BATCH_SIZE_REMOTE = 5
HEALTH_BATCH_SIZE_LOCAL = 2
HEALTH_CHAPTER_CHARS_REMOTE = 5000
HEALTH_CHAPTER_CHARS_LOCAL = 2000

CONTINUITY_BATCH_SIZE_REMOTE = 10
CONTINUITY_BATCH_SIZE_LOCAL = 3
CONTINUITY_CHAPTER_CHARS = 3000
