# common/config.py
"""Process-wide configuration read once at start-up (environment + .env)."""
import enum
import os
from pathlib import Path
from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict

DEFAULT_PORT = 9000
DEFAULT_CACHE_SIZE = 10
DEFAULT_MAX_FRAME = 256 * 1024 * 1024


class IntegrityPolicy(str, enum.Enum):
    """What a receiver does when a body does not match its digest.

    The server accepts mismatched uploads with a warning (WARN) unless
    NETFILE_STRICT_INTEGRITY is set; the client always uses REJECT for
    downloads, since a saved file must be provably correct or absent.
    """
    WARN = "warn"
    REJECT = "reject"


def _flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class Settings(BaseModel):
    model_config = ConfigDict(frozen=True)

    host: str = "0.0.0.0"
    server_host: str = "127.0.0.1"
    port: int = DEFAULT_PORT
    cache_size: int = DEFAULT_CACHE_SIZE
    root: Path = Path(".")
    public_key: Path = Path("public.pem")
    private_key: Path = Path("private.pem")
    encrypt: bool = True
    server_integrity: IntegrityPolicy = IntegrityPolicy.WARN
    max_frame: int = DEFAULT_MAX_FRAME
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, **overrides) -> "Settings":
        load_dotenv()
        values = dict(
            host=os.getenv("NETFILE_HOST", "0.0.0.0"),
            server_host=os.getenv("NETFILE_SERVER_HOST", "127.0.0.1"),
            port=int(os.getenv("NETFILE_PORT", str(DEFAULT_PORT))),
            cache_size=int(os.getenv("NETFILE_CACHE_SIZE", str(DEFAULT_CACHE_SIZE))),
            root=Path(os.getenv("NETFILE_ROOT", ".")),
            public_key=Path(os.getenv("NETFILE_PUBLIC_KEY", "public.pem")),
            private_key=Path(os.getenv("NETFILE_PRIVATE_KEY", "private.pem")),
            encrypt=_flag("NETFILE_ENCRYPT", True),
            server_integrity=IntegrityPolicy.REJECT if _flag("NETFILE_STRICT_INTEGRITY", False) else IntegrityPolicy.WARN,
            max_frame=int(os.getenv("NETFILE_MAX_FRAME", str(DEFAULT_MAX_FRAME))),
            log_level=os.getenv("NETFILE_LOG_LEVEL", "INFO"),
        )
        # CLI flags win over the environment; None means "not given"
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
