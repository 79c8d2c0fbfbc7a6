import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel

load_dotenv()

FIXTURES_DIR = Path(__file__).parent / "fixtures"


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Settings(BaseModel):
    data_dir: Path
    db_file: str = "tamkeen.db"
    session_file: str = "tamkeen-session.json"
    seed_demo: bool = True
    log_level: str = "INFO"
    host: str = "127.0.0.1"
    port: int = 5123
    fixtures_dir: Path = FIXTURES_DIR

    @property
    def db_path(self) -> Path:
        return self.data_dir / self.db_file

    @property
    def session_path(self) -> Path:
        return self.data_dir / self.session_file


def load_settings(data_dir: Optional[Path] = None) -> Settings:
    return Settings(
        data_dir=data_dir or Path(os.environ.get("TAMKEEN_DATA_DIR", Path.home() / ".tamkeen")).expanduser(),
        db_file=os.environ.get("TAMKEEN_DB_FILE", "tamkeen.db"),
        session_file=os.environ.get("TAMKEEN_SESSION_FILE", "tamkeen-session.json"),
        seed_demo=_env_bool("TAMKEEN_SEED_DEMO", True),
        log_level=os.environ.get("TAMKEEN_LOG_LEVEL", "INFO").upper(),
        host=os.environ.get("TAMKEEN_HOST", "127.0.0.1"),
        port=int(os.environ.get("TAMKEEN_PORT", "5123")),
        fixtures_dir=Path(os.environ.get("TAMKEEN_FIXTURES_DIR", FIXTURES_DIR)),
    )
