"""Shared constants for language-model configuration and endpoints."""

DEFAULT_LLM_MODEL = "models/gemini-2.5-flash-preview-05-20"
"""Model preselected for new users."""

DEFAULT_LLM_TEMPERATURE = 0.7
"""Sampling temperature used by the direct transport when none is configured."""

DEFAULT_APP_BASE_URL = "http://localhost:3000"
"""Web application exposing the chat, sandbox and auth routes."""

CHAT_PATH = "/api/chat"
SANDBOX_PATH = "/api/sandbox"
AUTH_PATH = "/api/auth"

DEFAULT_TIMEOUT_SECONDS = 300.0
"""Upper bound for a single streaming or sandbox request."""

RATE_LIMIT_MARKER = "rate limit"
"""Lower-cased substring identifying rate-limit failures."""

ANONYMOUS_USER_ID = "anonymous"
"""Identity sent to the sandbox endpoint for unauthenticated sessions."""

AUTO_TEMPLATE = "auto"
"""Template selection meaning "let the model choose among all templates"."""
