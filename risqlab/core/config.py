"""RisqLab – Configuration.

Settings come from environment variables, optionally seeded from a
``.env`` file by python-dotenv, and are validated by pydantic-settings.
Engines never read :class:`RisqlabConfig` directly; they receive the
small typed views returned by :attr:`RisqlabConfig.db`,
:attr:`RisqlabConfig.index` and :attr:`RisqlabConfig.volatility`.
"""

from __future__ import annotations

from decimal import Decimal
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv


class DatabaseConfig(BaseModel):
    """Connection settings of the PostgreSQL database.

    One database holds both the market snapshots written by ingestion and
    everything the index and volatility engines derive from them.
    """

    host: str
    port: int
    name: str
    user: str
    password: str
    pool_size: int = Field(default=5, ge=1)


class IndexSettings(BaseModel):
    """Defaults used when the index configuration row is first created.

    Once an ``index_config`` row exists, the persisted row is
    authoritative; these values are only read on creation.

    Attributes:
        name: Index name; one active configuration per name.
        base_level: Level the index starts at on its base date.
        max_constituents: Number of assets kept after ranking.
    """

    name: str = "RisqLab 80"
    base_level: Decimal = Field(default=Decimal("100"), gt=0)
    max_constituents: int = Field(default=80, ge=1)


class VolatilitySettings(BaseModel):
    """Rolling volatility parameters.

    Attributes:
        window_days: Size of the trailing window of daily log returns.
        annualization_days: Periods per year used in ``sqrt(n)``
            annualisation. Crypto markets trade every day, hence 365.
        min_portfolio_constituents: Minimum number of constituents with
            full history required before a portfolio row is written.
        var_window_days: Maximum number of most recent log returns used
            for historical value at risk.
    """

    window_days: int = Field(default=90, ge=2)
    annualization_days: int = Field(default=365, gt=0)
    min_portfolio_constituents: int = Field(default=1, ge=1)
    var_window_days: int = Field(default=365, ge=2)


class RisqlabConfig(BaseSettings):
    """Main RisqLab configuration loaded from environment variables.

    Environment variables use the following mapping by default:

    - DB_* for the database connection
    - LOG_LEVEL / LOG_FILE for logging
    - INDEX_* for index defaults
    - VOLATILITY_WINDOW_DAYS / ANNUALIZATION_DAYS /
      PORTFOLIO_MIN_CONSTITUENTS / VAR_WINDOW_DAYS for the volatility
      and risk metric engines
    - ENVIRONMENT for environment name (development/staging/production)
    """

    model_config = SettingsConfigDict(
        env_prefix="",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    # Database
    db_host: str = Field(default="localhost", alias="DB_HOST")
    db_port: int = Field(default=5432, alias="DB_PORT")
    db_name: str = Field(default="risqlab", alias="DB_NAME")
    db_user: str = Field(default="risqlab", alias="DB_USER")
    db_password: str = Field(default="", alias="DB_PASSWORD")
    db_pool_size: int = Field(default=5, ge=1, alias="DB_POOL_SIZE")

    # Logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_file: str = Field(default="risqlab.log", alias="LOG_FILE")

    # Environment
    environment: str = Field(default="development", alias="ENVIRONMENT")

    # Index
    index_name: str = Field(default="RisqLab 80", alias="INDEX_NAME")
    index_base_level: Decimal = Field(default=Decimal("100"), gt=0, alias="INDEX_BASE_LEVEL")
    index_max_constituents: int = Field(default=80, ge=1, alias="INDEX_MAX_CONSTITUENTS")

    # Volatility
    volatility_window_days: int = Field(default=90, ge=2, alias="VOLATILITY_WINDOW_DAYS")
    annualization_days: int = Field(default=365, gt=0, alias="ANNUALIZATION_DAYS")
    portfolio_min_constituents: int = Field(default=1, ge=1, alias="PORTFOLIO_MIN_CONSTITUENTS")
    var_window_days: int = Field(default=365, ge=2, alias="VAR_WINDOW_DAYS")

    @property
    def db(self) -> DatabaseConfig:
        """Return the database connection configuration."""

        return DatabaseConfig(
            host=self.db_host,
            port=self.db_port,
            name=self.db_name,
            user=self.db_user,
            password=self.db_password,
            pool_size=self.db_pool_size,
        )

    @property
    def index(self) -> IndexSettings:
        """Return index creation defaults."""

        return IndexSettings(
            name=self.index_name,
            base_level=self.index_base_level,
            max_constituents=self.index_max_constituents,
        )

    @property
    def volatility(self) -> VolatilitySettings:
        """Return rolling volatility parameters.

        Environment variables:
        - VOLATILITY_WINDOW_DAYS
        - ANNUALIZATION_DAYS
        - PORTFOLIO_MIN_CONSTITUENTS
        - VAR_WINDOW_DAYS
        """

        return VolatilitySettings(
            window_days=self.volatility_window_days,
            annualization_days=self.annualization_days,
            min_portfolio_constituents=self.portfolio_min_constituents,
            var_window_days=self.var_window_days,
        )


def load_config(env_file: Optional[Path] = None) -> RisqlabConfig:
    """Load RisqLab configuration.

    For local development this function will attempt to load a `.env` file
    from the current working directory if one is present. Environment
    variables always take precedence over values from `.env`.

    Args:
        env_file: Optional explicit path to a `.env` file. If omitted,
            the function will look for `.env` in the current working
            directory.

    Returns:
        A fully populated :class:`RisqlabConfig` instance.

    Raises:
        FileNotFoundError: If an explicit ``env_file`` is provided but
            does not exist.
    """

    if env_file is not None:
        if not env_file.exists():
            msg = f"Environment file not found: {env_file}"
            raise FileNotFoundError(msg)
        # An explicit env file wins over values already in the process
        # environment so tests and one-off runs control configuration.
        load_dotenv(env_file, override=True)
    else:
        default_env = Path(".env")
        if default_env.exists():
            load_dotenv(default_env)

    return RisqlabConfig()  # type: ignore[call-arg]


_global_config: Optional[RisqlabConfig] = None


def get_config() -> RisqlabConfig:
    """Return the global RisqLab configuration singleton.

    The configuration is loaded on first access (lazy loading) and cached
    for subsequent calls.

    Returns:
        A cached :class:`RisqlabConfig` instance.
    """

    global _global_config
    if _global_config is None:
        _global_config = load_config()
    return _global_config
