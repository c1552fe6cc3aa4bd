"""Centralized constants for the Sidebot bridge.

All magic numbers, ports and timeout values should be defined here for easy maintenance.
"""

# Listening endpoints
DEFAULT_HOST: str = "127.0.0.1"
DEFAULT_HTTP_PORT: int = 3000  # Command surface (Claude Desktop / MCP side)
DEFAULT_WS_PORT: int = 3001  # Figma plugin connection

# Model settings
DEFAULT_MODEL: str = "claude-sonnet-4-5-20250929"
CHAT_MAX_TOKENS: int = 2048
ANALYSIS_MAX_TOKENS: int = 4096
CHAT_HISTORY_LIMIT: int = 20  # Most recent turns forwarded to the model

# AI call timeout (seconds)
AI_CALL_TIMEOUT: float = 90.0

# Credential
API_KEY_PREFIX: str = "sk-ant-"
API_KEY_ENV: str = "ANTHROPIC_API_KEY"
CONFIG_APP_ID: str = "com.sidebot.bridge"
CONFIG_FILE_NAME: str = "config.json"

# Notion proxy
NOTION_API_BASE: str = "https://api.notion.com/v1"
NOTION_VERSION: str = "2022-06-28"
NOTION_TIMEOUT: float = 30.0
NOTION_PAGE_SIZE: int = 100
