# core/config.py
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
project_root = Path(__file__).resolve().parent.parent.parent.parent
load_dotenv(project_root / ".env")


def _split_list(raw: str) -> tuple[str, ...]:
    return tuple(item.strip() for item in raw.split(",") if item.strip())


@dataclass(frozen=True)
class Settings:
    database_url: str = "sqlite:///./trust_desk.db"
    openai_api_key: str | None = None
    openai_model: str = "gpt-4o-mini"
    officer_name: str = "Margaret Chen"
    known_beneficiaries: tuple[str, ...] = ("Sam Miller", "Katie Miller")
    cors_origins: tuple[str, ...] = ("http://localhost:5173",)
    log_level: str = "INFO"

    @property
    def use_openai(self) -> bool:
        return bool(self.openai_api_key)

    @classmethod
    def from_env(cls) -> "Settings":
        defaults = cls()
        return cls(
            database_url=os.getenv("DATABASE_URL", defaults.database_url),
            openai_api_key=os.getenv("OPENAI_API_KEY") or None,
            openai_model=os.getenv("OPENAI_MODEL", defaults.openai_model),
            officer_name=os.getenv("TRUST_OFFICER", defaults.officer_name),
            known_beneficiaries=_split_list(
                os.getenv("KNOWN_BENEFICIARIES", ",".join(defaults.known_beneficiaries))
            ),
            cors_origins=_split_list(os.getenv("CORS_ORIGINS", ",".join(defaults.cors_origins))),
            log_level=os.getenv("LOG_LEVEL", defaults.log_level).upper(),
        )


def get_settings() -> Settings:
    return Settings.from_env()
