from os import getenv

DEFAULT_ENCODING: str = "utf8"

# NOTE: Local file sharing is the default use case, so we only listen on the
# loopback interface unless told otherwise.
HOST: str = getenv("HOST", "127.0.0.1")

# A port of `0` asks the OS for an ephemeral port.
PORT: int = int(getenv("PORT", 0))

# Used when the requested port can't be bound.
FALLBACK_PORT: int = int(getenv("FALLBACK_PORT", 3456))

PREFIX: str = getenv("DIRSERVE_PREFIX", "/")

# Delay in seconds between two index synchronization cycles
INTERVAL: float = float(getenv("DIRSERVE_INTERVAL", 1.0))

LOG_REQUESTS: bool = getenv("DIRSERVE_LOG_REQUESTS", "1") == "1"

LOG_LEVEL: str = getenv("DIRSERVE_LOG_LEVEL", "info")

# Request paths that denote the entry page. The near-miss `index.htm` is
# deliberately not part of it.
INDEX_NAMES: tuple[str, ...] = ("index.html",)

# EOF
