"""
AI Chat Overlay - Configuration
Paths, backend endpoints, launch commands and window geometry
"""

import os
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# =============================================================================
# PATHS
# =============================================================================
PROJECT_ROOT = Path(__file__).parent
DATA_DIR = Path(os.getenv("OVERLAY_DATA_DIR", str(PROJECT_ROOT / "data")))
LOGS_DIR = Path(os.getenv("OVERLAY_LOGS_DIR", str(PROJECT_ROOT / "logs")))
DIAGNOSTIC_LOG_PATH = LOGS_DIR / "diagnostic.log"
USER_SETTINGS_PATH = DATA_DIR / "user_settings.json"
CHAT_EXPORT_DIR = Path(os.getenv("CHAT_EXPORT_DIR", str(DATA_DIR / "exports")))

# =============================================================================
# VERSION
# =============================================================================
VERSION = "1.0.0"
PROJECT_NAME = "AI Chat Overlay"

# =============================================================================
# BACKEND ENDPOINTS
# =============================================================================
# These are only defaults for the settings panel. The URLs the user types in
# are persisted in the user settings file and take precedence.
OLLAMA_API_URL = os.getenv("OLLAMA_API_URL", "http://localhost:11434")
LLAMACPP_API_URL = os.getenv("LLAMACPP_API_URL", "http://localhost:8080")
COQUI_API_URL = os.getenv("COQUI_API_URL", "http://localhost:5002")

OLLAMA_DEFAULT_PORT = "11434"
LLAMACPP_DEFAULT_PORT = "8080"
COQUI_DEFAULT_PORT = "5002"

# Llama.cpp /completion parameters
LLAMACPP_N_PREDICT = int(os.getenv("LLAMACPP_N_PREDICT", "512"))
LLAMACPP_TEMPERATURE = float(os.getenv("LLAMACPP_TEMPERATURE", "0.7"))

# Seconds before a backend HTTP call gives up
BACKEND_REQUEST_TIMEOUT = int(os.getenv("BACKEND_REQUEST_TIMEOUT", "120"))
BACKEND_PROBE_TIMEOUT = 5

# =============================================================================
# LOCAL SERVICE LAUNCH
# =============================================================================
# Executables used when the overlay starts a backend itself.
# Llama.cpp's server binary is resolved relative to the configured working
# directory (older builds ship it as ./server, newer ones as llama-server).
OLLAMA_EXECUTABLE = os.getenv("OLLAMA_EXECUTABLE", "ollama")
OLLAMA_PROCESS_NAME = os.getenv("OLLAMA_PROCESS_NAME", "ollama")
LLAMACPP_SERVER_BINARY = os.getenv("LLAMACPP_SERVER_BINARY", "./server")
COQUI_PYTHON = os.getenv("COQUI_PYTHON", "python")
SERVICE_BIND_HOST = os.getenv("SERVICE_BIND_HOST", "0.0.0.0")

# Wait after spawning so a broken launch shows up as an early exit
SERVICE_START_GRACE_PERIOD = float(os.getenv("SERVICE_START_GRACE_PERIOD", "2.0"))

# How often the GUI drains process exit notifications
SERVICE_EVENT_POLL_INTERVAL_MS = 500

# Delay before the GUI re-checks a backend's API after starting it
SERVICE_REFRESH_DELAY_MS = 3000

# =============================================================================
# WINDOW GEOMETRY
# =============================================================================
WINDOW_TITLE = "AI Chat Overlay"
WINDOW_DEFAULT_X = 50
WINDOW_DEFAULT_Y = 50
WINDOW_DEFAULT_WIDTH = 430
WINDOW_DEFAULT_HEIGHT = 650

# Accordion ("minimize to bar") footprint: header only
ACCORDION_WIDTH = 315
ACCORDION_HEIGHT = 48

# =============================================================================
# HTTP CONTROL API CONFIGURATION
# =============================================================================
HTTP_ENABLED = os.getenv("HTTP_ENABLED", "true").lower() == "true"
HTTP_HOST = os.getenv("HTTP_HOST", "127.0.0.1")
HTTP_PORT = int(os.getenv("HTTP_PORT", "5055"))

# Seconds an HTTP request waits for the GUI thread to run its command.
# Starting a service blocks for the grace period, so keep this above it.
HTTP_DISPATCH_TIMEOUT = 15.0

# =============================================================================
# LOGGING CONFIGURATION
# =============================================================================
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_TO_FILE = True
LOG_TO_CONSOLE = True

# =============================================================================
# EXTERNAL LINKS
# =============================================================================
PROJECT_URL = "https://github.com/jpoll962/AI_Overlay"
DOCUMENTATION_URL = f"{PROJECT_URL}/wiki"
ISSUES_URL = f"{PROJECT_URL}/issues"
CLAUDE_WEB_URL = "https://claude.ai"
GROK_WEB_URL = "https://grok.com"
CHATGPT_WEB_URL = "https://chat.openai.com"
OLLAMA_REPO_URL = "https://github.com/ollama/ollama/tree/main"
LLAMACPP_REPO_URL = "https://github.com/ggerganov/llama.cpp"
COQUI_REPO_URL = "https://github.com/idiap/coqui-ai-TTS"
