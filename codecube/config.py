import os
import string
from typing import Dict

# ========= Static config =========
DEFAULT_HOST = "localhost"
DEFAULT_PORT = 22
DEFAULT_HOST_KEY_PATH = ".ssh/codecube_host_key"
DEFAULT_DB_PATH = "code-cube-pastes.db"
DEFAULT_CACHE_DIR = ".codecube-cache"

ID_ALPHABET = string.ascii_lowercase + string.digits
ID_LENGTH = 8
DEFAULT_ID_ATTEMPTS = 3
MAX_ID_ATTEMPTS = 20

CHAR_LIMIT = 100_000
INPUT_WIDTH = 20
INPUT_PLACEHOLDER = "Hello, World!"

DEFAULT_WIDTH = 80
DEFAULT_HEIGHT = 24

TICK_INTERVAL = 1.0
MAX_TICK_INTERVAL = 10.0
PROGRESS_STEP = 0.25

DEFAULT_STORE_TIMEOUT = 5.0
MAX_STORE_TIMEOUT = 60.0
STORE_WORKERS = 8
SQLITE_BUSY_TIMEOUT = 5.0

BUFFER_SIZE = 4096
RECV_TIMEOUT = 1.0
ESC_TIMEOUT = 0.05
QUEUE_POLL_INTERVAL = 0.5
CHANNEL_ACCEPT_TIMEOUT = 20.0
SHELL_WAIT_TIMEOUT = 10.0
LISTEN_BACKLOG = 100
HOST_KEY_BITS = 2048

# ========= Terminal control =========
ENTER_ALT_SCREEN = "\x1b[?1049h\x1b[?25l\x1b[?2004h"
EXIT_ALT_SCREEN = "\x1b[?2004l\x1b[?25h\x1b[?1049l"
CLEAR_SCREEN = "\x1b[H\x1b[2J"


# ========= Runtime Configuration =========
class ServerConfig:
    def __init__(self):
        self.HOST: str = DEFAULT_HOST
        self.PORT: int = DEFAULT_PORT
        self.HOST_KEY_PATH: str = DEFAULT_HOST_KEY_PATH
        self.DB_PATH: str = DEFAULT_DB_PATH
        self.CACHE_DIR: str = DEFAULT_CACHE_DIR
        self.STORE_TIMEOUT: float = DEFAULT_STORE_TIMEOUT
        self.ID_ATTEMPTS: int = DEFAULT_ID_ATTEMPTS
        self.TICK_INTERVAL: float = TICK_INTERVAL
        self.CACHE_DIRS: Dict[str, str] = {}

    def load_from_env(self):
        self.HOST = os.environ.get("CODECUBE_HOST", self.HOST)
        self.PORT = int(os.environ.get("CODECUBE_PORT", self.PORT))
        self.HOST_KEY_PATH = os.environ.get("CODECUBE_HOST_KEY", self.HOST_KEY_PATH)
        self.DB_PATH = os.environ.get("CODECUBE_DB_PATH", self.DB_PATH)
        self.CACHE_DIR = os.environ.get("CODECUBE_CACHE_DIR", self.CACHE_DIR)
        self.STORE_TIMEOUT = float(os.environ.get("CODECUBE_STORE_TIMEOUT", self.STORE_TIMEOUT))
        self.ID_ATTEMPTS = int(os.environ.get("CODECUBE_ID_ATTEMPTS", self.ID_ATTEMPTS))
        self.TICK_INTERVAL = float(os.environ.get("CODECUBE_TICK_INTERVAL", self.TICK_INTERVAL))

# Global instance
config = ServerConfig()
