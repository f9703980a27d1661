# market_pipeline/config.py
# Purpose: central config (catalogs, store paths, quote provider knobs).
# Reads ENV once per invocation into a Settings object that gets passed down.

import os
from dataclasses import dataclass, fields
from typing import Mapping, Optional

from market_pipeline.errors import ConfigurationError

# ETFs scraped by the real-world job (ticker -> description)
POPULAR_ETFS = [
    ("SPY", "SPDR S&P 500 ETF Trust"),
    ("QQQ", "Invesco QQQ Trust (Nasdaq-100 Index)"),
    ("IVV", "iShares Core S&P 500 ETF"),
    ("VTI", "Vanguard Total Stock Market ETF"),
    ("VOO", "Vanguard S&P 500 ETF"),
    ("GLD", "SPDR Gold Shares"),
    ("EFA", "iShares MSCI EAFE ETF"),
    ("VEA", "Vanguard FTSE Developed Markets ETF"),
    ("BND", "Vanguard Total Bond Market ETF"),
    ("VWO", "Vanguard FTSE Emerging Markets ETF"),
    ("XLF", "Financial Select Sector SPDR Fund"),
    ("XLK", "Technology Select Sector SPDR Fund"),
    ("ARKK", "ARK Innovation ETF"),
    ("LQD", "iShares iBoxx $ Investment Grade Corporate Bond ETF"),
    ("TLT", "iShares 20+ Year Treasury Bond ETF"),
]

# Synthetic in-game tickers: (ticker, display name, category, seed price)
IN_GAME_CATALOG = [
    ("NOVA", "Nova Dynamics", "Technology", 142.50),
    ("QBIT", "Quantum Bit Systems", "Technology", 87.20),
    ("HLTH", "Helix Health Group", "Healthcare", 63.75),
    ("GRNE", "Greenline Energy", "Energy", 38.10),
    ("AQUA", "Aquaterra Utilities", "Utilities", 51.40),
    ("FRGE", "Ironforge Industrial", "Industrials", 96.00),
    ("MRKT", "Marketplace Holdings", "Consumer", 120.25),
    ("CRDT", "Crestline Credit", "Financials", 74.80),
    ("ORBT", "Orbital Logistics", "Industrials", 29.95),
    ("PIXL", "Pixel Forge Games", "Communication", 18.60),
]

ALPHAVANTAGE_URL = "https://www.alphavantage.co/query"
GCS_ENDPOINT = "https://storage.googleapis.com"

QUOTE_PROVIDERS = ("alphavantage", "yahoo")
FETCH_MODES = ("etfs", "most_active")


@dataclass(frozen=True)
class CollectionRef:
    """A database/collection pair inside the store."""
    database_id: str
    collection_id: str

    @property
    def path(self) -> str:
        return f"{self.database_id}/{self.collection_id}"


# Settings field -> environment variable
ENV_VARS = {
    "store_endpoint": "STORE_ENDPOINT",
    "store_project_id": "STORE_PROJECT_ID",
    "store_bucket": "STORE_BUCKET",
    "quote_provider": "QUOTE_PROVIDER",
    "quote_api_key": "QUOTE_API_KEY",
    "quote_base_url": "QUOTE_BASE_URL",
    "quote_timeout": "QUOTE_TIMEOUT_SECONDS",
    "fetch_mode": "FETCH_MODE",
    "request_delay": "REQUEST_DELAY_SECONDS",
    "batch_size": "BATCH_SIZE",
    "batch_delay": "BATCH_DELAY_SECONDS",
    "mock_fallback": "MOCK_FALLBACK",
    "mock_fallback_after": "MOCK_FALLBACK_AFTER",
    "real_world_database_id": "REALWORLD_DATABASE_ID",
    "real_world_collection_id": "REALWORLD_COLLECTION_ID",
    "manipulator_database_id": "MANIPULATOR_DATABASE_ID",
    "manipulator_collection_id": "MANIPULATOR_COLLECTION_ID",
    "in_game_database_id": "INGAME_DATABASE_ID",
    "in_game_collection_id": "INGAME_COLLECTION_ID",
    "manipulator_document_id": "MANIPULATOR_DOCUMENT_ID",
}

# What every job needs to reach the store
STORE_FIELDS = ("store_project_id", "store_bucket")
REAL_WORLD_FIELDS = ("real_world_database_id", "real_world_collection_id")
MANIPULATOR_FIELDS = ("manipulator_database_id", "manipulator_collection_id")
IN_GAME_FIELDS = ("in_game_database_id", "in_game_collection_id")


@dataclass(frozen=True)
class Settings:
    store_endpoint: str = GCS_ENDPOINT
    store_project_id: Optional[str] = None
    store_bucket: Optional[str] = None
    quote_provider: str = "alphavantage"
    quote_api_key: Optional[str] = None
    quote_base_url: str = ALPHAVANTAGE_URL
    quote_timeout: float = 10.0
    fetch_mode: str = "etfs"
    request_delay: float = 1.2     # Alpha Vantage free tier is tight
    batch_size: int = 5
    batch_delay: float = 0.1
    mock_fallback: bool = True
    mock_fallback_after: int = 3
    real_world_database_id: Optional[str] = None
    real_world_collection_id: Optional[str] = None
    manipulator_database_id: Optional[str] = None
    manipulator_collection_id: Optional[str] = None
    in_game_database_id: Optional[str] = None
    in_game_collection_id: Optional[str] = None
    manipulator_document_id: str = "current"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """Build settings from ENV; blank values count as unset."""
        env = os.environ if environ is None else environ
        values = {}
        for f in fields(cls):
            raw = (env.get(ENV_VARS[f.name]) or "").strip()
            if not raw:
                continue
            values[f.name] = _coerce(f.name, raw)
        if "store_project_id" not in values and (env.get("GOOGLE_CLOUD_PROJECT") or "").strip():
            values["store_project_id"] = env["GOOGLE_CLOUD_PROJECT"].strip()

        settings = cls(**values)
        if settings.quote_provider not in QUOTE_PROVIDERS:
            raise ConfigurationError(
                f"QUOTE_PROVIDER must be one of {', '.join(QUOTE_PROVIDERS)}, got {settings.quote_provider!r}")
        if settings.fetch_mode not in FETCH_MODES:
            raise ConfigurationError(
                f"FETCH_MODE must be one of {', '.join(FETCH_MODES)}, got {settings.fetch_mode!r}")
        if settings.batch_size < 1:
            raise ConfigurationError("BATCH_SIZE must be at least 1")
        return settings

    def require(self, *names: str) -> "Settings":
        """Raise ConfigurationError naming every missing variable."""
        missing = [ENV_VARS[n] for n in names if not getattr(self, n)]
        if missing:
            raise ConfigurationError(f"Missing required environment variable: {', '.join(missing)}")
        return self

    @property
    def real_world(self) -> CollectionRef:
        return CollectionRef(self.real_world_database_id, self.real_world_collection_id)

    @property
    def manipulator(self) -> CollectionRef:
        return CollectionRef(self.manipulator_database_id, self.manipulator_collection_id)

    @property
    def in_game(self) -> CollectionRef:
        return CollectionRef(self.in_game_database_id, self.in_game_collection_id)


_INT_FIELDS = {"batch_size", "mock_fallback_after"}
_FLOAT_FIELDS = {"quote_timeout", "request_delay", "batch_delay"}
_BOOL_FIELDS = {"mock_fallback"}


def _coerce(name: str, raw: str):
    try:
        if name in _INT_FIELDS:
            return int(raw)
        if name in _FLOAT_FIELDS:
            return float(raw)
    except ValueError:
        raise ConfigurationError(f"{ENV_VARS[name]} must be a number, got {raw!r}") from None
    if name in _BOOL_FIELDS:
        lowered = raw.lower()
        if lowered in ("1", "true", "yes"):
            return True
        if lowered in ("0", "false", "no"):
            return False
        raise ConfigurationError(f"{ENV_VARS[name]} must be true/false, got {raw!r}")
    if name in ("quote_provider", "fetch_mode"):
        return raw.lower()
    return raw
