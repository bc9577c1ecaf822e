"""Environment-driven settings and logging setup."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv


LAYOUT_ENGINES = ("layered", "dot")


def _split_origins(raw: str) -> list[str]:
    return [o.strip() for o in raw.split(",") if o.strip()]


@dataclass
class Settings:
    database_path: Path = Path("family_tree.db")
    layout_engine: str = "layered"  # "layered" or "dot"
    node_width: float = 220
    node_height: float = 100
    rank_sep: float = 80
    node_sep: float = 40
    cors_origins: list[str] = field(
        default_factory=lambda: ["http://localhost:5173", "http://localhost:3000"]
    )
    log_level: str = "INFO"


def get_settings() -> Settings:
    """Load settings from the environment (and a .env file if present)."""
    load_dotenv()

    defaults = Settings()
    engine = os.getenv("KINTREE_LAYOUT_ENGINE", defaults.layout_engine).lower()
    if engine not in LAYOUT_ENGINES:
        raise ValueError(
            f"KINTREE_LAYOUT_ENGINE must be one of {', '.join(LAYOUT_ENGINES)}, got {engine!r}"
        )
    cors = os.getenv("KINTREE_CORS_ORIGINS")
    return Settings(
        database_path=Path(os.getenv("KINTREE_DATABASE", str(defaults.database_path))),
        layout_engine=engine,
        node_width=float(os.getenv("KINTREE_NODE_WIDTH", defaults.node_width)),
        node_height=float(os.getenv("KINTREE_NODE_HEIGHT", defaults.node_height)),
        rank_sep=float(os.getenv("KINTREE_RANK_SEP", defaults.rank_sep)),
        node_sep=float(os.getenv("KINTREE_NODE_SEP", defaults.node_sep)),
        cors_origins=_split_origins(cors) if cors is not None else defaults.cors_origins,
        log_level=os.getenv("KINTREE_LOG_LEVEL", defaults.log_level).upper(),
    )


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
