"""
Minecraft <-> Discord Bridge Configuration
==========================================

1. Environment
2. Discord
3. Minecraft server
4. Game worker process
5. Reconnect policy
6. Status surface
7. Auth challenge detection
8. Web server (status API)
9. Logging
"""
import os
import logging
import shlex
from dotenv import load_dotenv

# ============================================================================
# 1. Environment
# ============================================================================
load_dotenv()

# ============================================================================
# 2. DISCORD
# ============================================================================
# Secrets and deployment-specific ids stay in the environment.
DISCORD_TOKEN = os.getenv("DISCORD_BOT_TOKEN") or os.getenv("DISCORD_TOKEN")
DISCORD_CHANNEL_ID = int(os.getenv("DISCORD_CHANNEL_ID") or 0)
COMMAND_PREFIX = "!"
ENABLE_PREFLIGHT_CHECKS = True

# Reactions on the control post
JOIN_EMOJI = "✅"
LEAVE_EMOJI = "❌"

# ============================================================================
# 3. MINECRAFT SERVER
# ============================================================================
MC_HOST = os.getenv("MC_HOST", "donutsmp.net")
MC_PORT = int(os.getenv("MC_PORT") or 25565)
MC_VERSION = os.getenv("MC_VERSION", "1.21.4")
MC_AUTH = os.getenv("MC_AUTH", "microsoft")
# Account name / cache key for the worker. Empty = let the worker decide.
MC_USERNAME = os.getenv("MC_USERNAME", "")

# ============================================================================
# 4. GAME WORKER PROCESS
# ============================================================================
# The protocol client runs as a separate process that speaks JSON lines on
# stdin/stdout. Its stderr (and any non-JSON stdout) is the side channel.
GAME_WORKER_COMMAND = shlex.split(os.getenv("GAME_WORKER_COMMAND", "node mineflayer_worker.js"))
GAME_WORKER_QUIT_TIMEOUT_SECONDS = 5.0
# How long leave/termination waits for a cancelled connect() to unwind
GAME_WORKER_CONNECT_CANCEL_TIMEOUT_SECONDS = 5.0
# stderr read size per delivery
GAME_WORKER_READ_CHUNK_BYTES = 4096

# Diagnostic lines that are dropped instead of logged (protocol library spam)
SIDE_CHANNEL_SUPPRESS_PATTERNS = ["Chunk size", "partial packet"]

# ============================================================================
# 5. RECONNECT POLICY
# ============================================================================
# Delay before attempt N is RECONNECT_DELAY_SECONDS * N (no upper cap).
MAX_RECONNECT_ATTEMPTS = int(os.getenv("MAX_RECONNECT_ATTEMPTS") or 10)
RECONNECT_DELAY_SECONDS = float(os.getenv("RECONNECT_DELAY_SECONDS") or 15.0)

# ============================================================================
# 6. STATUS SURFACE
# ============================================================================
# Position updates are coalesced and pushed at most once per interval.
STATUS_REFRESH_SECONDS = 30.0

# ============================================================================
# 7. AUTH CHALLENGE DETECTION
# ============================================================================
AUTH_LINK_MARKER = "microsoft.com/link"
AUTH_CODE_KEYWORD = "code"
AUTH_DEFAULT_URL = "https://www.microsoft.com/link"
# How much trailing text from earlier deliveries is kept to match prompts
# that arrive split across several writes.
AUTH_BUFFER_CHARS = 512

# ============================================================================
# 8. WEB SERVER (status API)
# ============================================================================
WEB_SERVER_ENABLED = True
WEB_SERVER_HOST = os.getenv("WEB_SERVER_HOST", "0.0.0.0")
WEB_SERVER_PORT = int(os.getenv("PORT") or 5000)
API_NAME = "Minecraft Discord Bot API"
API_VERSION = "1.0.0"

# ============================================================================
# 9. LOGGING
# ============================================================================
LOG_LEVEL = getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO)
LOG_FILE = os.getenv("LOG_FILE") or None  # "bridge.log" to also log to a file
