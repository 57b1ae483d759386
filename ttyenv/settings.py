"""
This module contains the configuration settings for the ttyenv supervisor.
It defines paths, process environment defaults, console and logging settings.
It is used throughout the application to ensure consistent settings and paths.
"""

import os
import pathlib
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv(override=True)

#* --- Core Paths ---
BASE_DIR = pathlib.Path(os.getenv("TTYENV_BASE_DIR", pathlib.Path.cwd())).resolve()
SERVERS_DIR = BASE_DIR / "servers"
OVERRIDES_JSON_PATH = BASE_DIR / "overrides.json"
ENVIRONMENT_NAME = os.getenv("TTYENV_NAME", "main")

#* --- Child Process Environment ---
# Variables under this prefix belong to the supervisor and never reach the child.
RESERVED_ENV_PREFIX = "TTYENV_"
TERMINAL_TYPE = "xterm-256color"
ROOT_DIRECTORY_MODE = 0o755

#* --- Console Output ---
CONSOLE_PREFIX = os.getenv("TTYENV_CONSOLE_PREFIX", "[TtyEnv]")
OUTPUT_READ_SIZE = 4096
OUTPUT_POLL_INTERVAL = 0.25  # seconds between pty readiness checks
OUTPUT_DRAIN_TIMEOUT = 2     # seconds to wait for trailing output after exit

#* --- Supervisor Settings ---
STATS_SAMPLE_INTERVAL = 1.0  # seconds, CPU percentage window
DEFAULT_WAIT_TIMEOUT = 0     # 0 waits forever
GRACEFUL_STOP_TIMEOUT = 10   # seconds after SIGTERM before force-killing

#* --- Grafana Loki (optional log shipping) ---
LOKI_ENABLED = os.getenv("TTYENV_LOKI_ENABLED", "False").lower() in ('true', '1', 't')
LOKI_URL = os.getenv("TTYENV_LOKI_URL", "http://localhost:3100")
LOKI_ORG_ID = os.getenv("TTYENV_LOKI_ORG_ID", "fake")

#* --- Application variables ---
VERBOSE_LOGGING = False

#* --- MODIFIABLE SETTINGS (Changeable at runtime via 'config' command) ---
MODIFIABLE_SETTINGS = {
    "TERMINAL_TYPE", "CONSOLE_PREFIX",
    "STATS_SAMPLE_INTERVAL", "DEFAULT_WAIT_TIMEOUT", "GRACEFUL_STOP_TIMEOUT",
    "OUTPUT_DRAIN_TIMEOUT",
    # Logging
    "LOG_BUFFER_SIZE", "LOG_BUFFER_FLUSH_INTERVAL",
}

#* --- Default Values for Modifiable Settings ---
LOG_BUFFER_SIZE = 100
LOG_BUFFER_FLUSH_INTERVAL = 10
