"""Centralized engine constants and defaults."""

# Graph traversal
MAX_NODE_VISITS = 10_000

# Steps that need a browser surface
BROWSER_STEP_TYPES = frozenset(
    {
        "navigate",
        "click",
        "type",
        "extract",
        "extractWithLogic",
        "scroll",
        "screenshot",
        "selectOption",
        "fileUpload",
        "hover",
    }
)

# AI completion defaults and clamps
AI_DEFAULT_TEMPERATURE = 0.0
AI_DEFAULT_MAX_TOKENS = 256
AI_MAX_TOKENS_LIMIT = 4096
AI_DEFAULT_TIMEOUT_MS = 20_000
AI_MIN_TIMEOUT_MS = 1_000
AI_MAX_TIMEOUT_MS = 120_000

AI_BASE_URLS = {
    "openai": "https://api.openai.com/v1",
    "anthropic": "https://api.anthropic.com",
    "ollama": "http://localhost:11434",
}

# Third-party APIs
TWITTER_API_BASE = "https://api.twitter.com/2"
SLACK_API_BASE = "https://slack.com/api"
DISCORD_API_BASE = "https://discord.com/api/v10"
DISCORD_DEFAULT_LIST_LIMIT = 10
DISCORD_MAX_LIST_LIMIT = 100

# Webhook retry
DEFAULT_RETRY_DELAY_MS = 1_000

# Browser
DEFAULT_VIEWPORT = (1280, 720)
DEFAULT_NAVIGATION_TIMEOUT_MS = 30_000
DEFAULT_HTTP_TIMEOUT = 30  # seconds

# Scheduling
INTERVAL_UNIT_MS = {
    "minutes": 60 * 1000,
    "hours": 60 * 60 * 1000,
    "days": 24 * 60 * 60 * 1000,
}
DEFAULT_LOG_LIMIT = 10

# Editions
EDITIONS = ("community", "enterprise")
ENTERPRISE_STEP_FEATURES = {
    "fileSystem": "fileSystemAutomation",
    "systemCommand": "systemAutomation",
    "environmentVariable": "systemAutomation",
    "dataTransform": "advancedApiWorkflows",
    "databaseQuery": "databaseAutomation",
    "sendEmail": "emailAutomation",
    "readEmail": "emailAutomation",
    "cloudStorage": "cloudIntegration",
}
