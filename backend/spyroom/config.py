import os


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev")

    # CORS
    CORS_ORIGINS = os.environ.get("CORS_ORIGINS", "*")

    # Reverse proxy / IP headers
    TRUST_PROXY_HEADERS = os.environ.get("TRUST_PROXY_HEADERS", "1") == "1"

    # Logging
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
    LOG_DIR = os.environ.get("LOG_DIR", "")

    # Rooms
    MIN_PLAYERS = int(os.environ.get("MIN_PLAYERS", "3"))
    MAX_PLAYERS = int(os.environ.get("MAX_PLAYERS", "9"))
    ROOM_CODE_ATTEMPTS = int(os.environ.get("ROOM_CODE_ATTEMPTS", "50"))
    EMPTY_ROOM_GRACE_SEC = int(os.environ.get("EMPTY_ROOM_GRACE_SEC", "600"))
    SWEEP_INTERVAL_SEC = int(os.environ.get("SWEEP_INTERVAL_SEC", "120"))

    # Game
    QUESTIONS_DURATION_SEC = int(os.environ.get("QUESTIONS_DURATION_SEC", "300"))
    SPY_FAIRNESS = os.environ.get("SPY_FAIRNESS", "0") == "1"
    SPY_HISTORY_SIZE = int(os.environ.get("SPY_HISTORY_SIZE", "10"))
    WORD_BANK_PATH = os.environ.get("WORD_BANK_PATH", "")

    # Sweeper loop and per-room deadline callbacks
    BACKGROUND_TASKS = os.environ.get("BACKGROUND_TASKS", "1") == "1"
