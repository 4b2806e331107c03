# roomshare/core/config.py
import os
from typing import Literal
from dotenv import load_dotenv


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Settings:
    """
    Setup environment variables.
        - STORE_BACKEND the table store to use: "supabase", "redis" or "memory"
        - SUPABASE_URL / SUPABASE_KEY the hosted project and its anon key
        - ROOMSHARE_STATE_FILE where the user id and last session are kept
        - HEARTBEAT_INTERVAL_SECONDS / TYPING_IDLE_SECONDS presence timers
        - MEMBERS_ONLINE_ONLY list only online members (false lists everyone)
    """

    # Load environment variables from the .env file
    load_dotenv()

    STORE_BACKEND: Literal["supabase", "redis", "memory"] = os.getenv("STORE_BACKEND", "memory")

    SUPABASE_URL: str = os.getenv("SUPABASE_URL", "")
    SUPABASE_KEY: str = os.getenv("SUPABASE_KEY", "")

    REDIS_HOST: str = os.getenv("REDIS_HOST", "localhost")
    REDIS_PORT: int = int(os.getenv("REDIS_PORT", "6379"))
    REDIS_ACCESS_KEY: str = os.getenv("REDIS_ACCESS_KEY", "")
    REDIS_SSL: bool = _env_bool("REDIS_SSL", "false")

    STATE_FILE: str = os.getenv("ROOMSHARE_STATE_FILE", "roomshare_state.json")

    HEARTBEAT_INTERVAL_SECONDS: float = float(os.getenv("HEARTBEAT_INTERVAL_SECONDS", "30"))
    TYPING_IDLE_SECONDS: float = float(os.getenv("TYPING_IDLE_SECONDS", "1.5"))
    ROOM_CODE_ATTEMPTS: int = int(os.getenv("ROOM_CODE_ATTEMPTS", "5"))
    MEMBERS_ONLINE_ONLY: bool = _env_bool("MEMBERS_ONLINE_ONLY", "true")

    HOST: str = os.getenv("HOST", "127.0.0.1")
    PORT: int = int(os.getenv("PORT", "8000"))

settings = Settings()
