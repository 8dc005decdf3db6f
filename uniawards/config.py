import os
import secrets
from dataclasses import dataclass, field
from typing import List

from dotenv import load_dotenv

# --- Load env ---
load_dotenv()


def require(name: str) -> str:
    val = os.getenv(name)
    if not val:
        raise RuntimeError(f"Missing required environment variable: {name}")
    return val


def _flag(name: str, default: bool = False) -> bool:
    val = os.getenv(name)
    if val is None:
        return default
    return val.strip().lower() in ("1", "true", "yes", "on")


def _csv(name: str, default: str = "") -> List[str]:
    return [item.strip() for item in os.getenv(name, default).split(",") if item.strip()]


@dataclass
class Config:
    """Runtime settings shared by the API and the page server"""

    database_url: str = "sqlite:///./uniawards.db"

    # Session tokens issued by the API
    jwt_secret: str = field(default_factory=lambda: secrets.token_hex(32))
    session_hours: int = 24

    # Role assignment on first sign-in: "fixed" or "domain"
    role_policy: str = "fixed"
    default_role: str = "voter"
    restricted_role: str = "viewer"
    university_domain: str = "university.edu"
    admin_emails: List[str] = field(default_factory=list)

    # Whether admins may cast votes as well as voters
    allow_admin_votes: bool = False

    # Nominee photos
    upload_dir: str = "./uploads"
    public_base_url: str = "http://localhost:8000"

    cors_origins: List[str] = field(default_factory=lambda: ["http://localhost:3000"])

    # Page server
    backend_api_url: str = "http://localhost:8000"
    web_base_url: str = "http://localhost:3000"
    flask_secret_key: str = field(default_factory=lambda: secrets.token_hex(16))

    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Config":
        return cls(
            database_url=os.getenv("DATABASE_URL", "sqlite:///./uniawards.db"),
            jwt_secret=os.getenv("JWT_SECRET") or secrets.token_hex(32),
            session_hours=int(os.getenv("SESSION_HOURS", "24")),
            role_policy=os.getenv("ROLE_POLICY", "fixed"),
            default_role=os.getenv("DEFAULT_ROLE", "voter"),
            restricted_role=os.getenv("RESTRICTED_ROLE", "viewer"),
            university_domain=os.getenv("UNIVERSITY_DOMAIN", "university.edu"),
            admin_emails=[e.lower() for e in _csv("ADMIN_EMAILS")],
            allow_admin_votes=_flag("ALLOW_ADMIN_VOTES"),
            upload_dir=os.getenv("UPLOAD_DIR", "./uploads"),
            public_base_url=os.getenv("PUBLIC_BASE_URL", "http://localhost:8000").rstrip("/"),
            cors_origins=_csv("CORS_ORIGINS", "http://localhost:3000"),
            backend_api_url=os.getenv("BACKEND_API_URL", "http://localhost:8000").rstrip("/"),
            web_base_url=os.getenv("WEB_BASE_URL", "http://localhost:3000").rstrip("/"),
            flask_secret_key=os.getenv("FLASK_SECRET_KEY") or secrets.token_hex(16),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )
