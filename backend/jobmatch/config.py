import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

# Override=True so changes in backend/.env take effect on process reload.
#
# Tests set DISABLE_DOTENV=1 so a developer's .env can't leak keys or a real
# DATABASE_URL into the test run.
if os.getenv("DISABLE_DOTENV") != "1":
    load_dotenv(override=True)


def _env_bool(name: str, default: str = "0") -> bool:
    v = (os.getenv(name, default) or default).strip().lower()
    return v in {"1", "true", "yes", "y", "on"}


def _env_float(name: str) -> float | None:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return None
    return float(raw)


_raw_database_url = (os.getenv("DATABASE_URL") or "").strip()
# Default to a local SQLite DB so the pipeline can run out-of-the-box.
_default_sqlite_path = (Path(__file__).resolve().parent.parent / "jobmatch.db").as_posix()
DATABASE_URL = _raw_database_url or f"sqlite:///{_default_sqlite_path}"

# -------------------- Embedding provider --------------------
# OPENAI_API_KEY is accepted for compatibility with older deployments.
EMBEDDINGS_API_KEY = os.getenv("EMBEDDINGS_API_KEY") or os.getenv("OPENAI_API_KEY") or ""
EMBEDDINGS_URL = os.getenv("EMBEDDINGS_URL", "https://api.openai.com/v1/embeddings")
EMBEDDINGS_MODEL = os.getenv("EMBEDDINGS_MODEL", "text-embedding-ada-002")
# 1536 for ada-002. 0 disables the dimension check.
EMBEDDINGS_DIM = int(os.getenv("EMBEDDINGS_DIM", "1536") or "1536")
EMBEDDINGS_MAX_CHARS = int(os.getenv("EMBEDDINGS_MAX_CHARS", "8000") or "8000")
# Unset means no client-side timeout; callers wrap the call in their own deadline.
EMBEDDINGS_TIMEOUT_S = _env_float("EMBEDDINGS_TIMEOUT_S")
EMBEDDINGS_LOG_PAYLOADS = _env_bool("EMBEDDINGS_LOG_PAYLOADS", "0")

# -------------------- Matching --------------------
MATCH_MIN_SCORE = int(os.getenv("MATCH_MIN_SCORE", "70") or "70")

# -------------------- Notifications --------------------
NOTIFY_CHANNEL = os.getenv("NOTIFY_CHANNEL", "email")
NOTIFY_CLAIM_TTL_S = int(os.getenv("NOTIFY_CLAIM_TTL_S", "300") or "300")

# SMTP (Gmail App Password recommended)
SMTP_HOST = (os.getenv("SMTP_HOST") or "").strip()
SMTP_PORT = int((os.getenv("SMTP_PORT") or "587").strip())
SMTP_USER = (os.getenv("SMTP_USER") or "").strip()
SMTP_PASS = (os.getenv("SMTP_PASS") or "").strip()
SMTP_FROM = (os.getenv("SMTP_FROM") or SMTP_USER).strip()
SMTP_TLS = _env_bool("SMTP_TLS", "1")


@dataclass(frozen=True)
class EmbeddingProviderConfig:
    api_key: str
    url: str
    model: str
    max_chars: int = 8000
    expected_dim: int = 0
    timeout_s: float | None = None
    log_payloads: bool = False

    @classmethod
    def from_env(cls) -> "EmbeddingProviderConfig":
        """Snapshot of the EMBEDDINGS_* settings, for passing to the gateway."""
        return cls(
            api_key=EMBEDDINGS_API_KEY,
            url=EMBEDDINGS_URL,
            model=EMBEDDINGS_MODEL,
            max_chars=EMBEDDINGS_MAX_CHARS,
            expected_dim=EMBEDDINGS_DIM,
            timeout_s=EMBEDDINGS_TIMEOUT_S,
            log_payloads=EMBEDDINGS_LOG_PAYLOADS,
        )


@dataclass(frozen=True)
class SmtpConfig:
    host: str
    port: int
    user: str
    password: str
    mail_from: str
    use_tls: bool = True

    @classmethod
    def from_env(cls) -> "SmtpConfig":
        return cls(
            host=SMTP_HOST,
            port=SMTP_PORT,
            user=SMTP_USER,
            password=SMTP_PASS,
            mail_from=SMTP_FROM,
            use_tls=SMTP_TLS,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.host and self.user and self.password and self.mail_from)
