"""
Application configuration using Pydantic Settings.

All configuration is loaded from environment variables, with an optional .env file
as a fallback. This pattern keeps secrets out of source code — the .env file is
gitignored, and .env.example provides a safe template for developers.

Pydantic Settings automatically:
  1. Reads from environment variables (highest priority)
  2. Falls back to .env file values
  3. Uses defaults defined here (lowest priority)

The Settings object is built exactly once, by the application factory
(ghostcard.main.create_app), and stored on app.state. Route handlers receive
it through the get_settings dependency and pass it down to services and
security helpers explicitly:

    settings: Settings = Depends(get_settings)
    card = await card_service.issue_card(db, settings, user)
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Central configuration for the GhostCard API.

    Required fields (no defaults) MUST be set in .env or environment:
      - SECRET_KEY: Used to sign JWT tokens
      - CARD_ENCRYPTION_KEY: Fernet key for encrypting card data at rest
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # --- Application ---
    APP_NAME: str = "GhostCard API"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False

    # --- Logging ---
    LOG_LEVEL: str = "INFO"
    # JSON lines for log shippers; set to false for human-readable dev output
    LOG_JSON: bool = True

    # --- Database ---
    # SQLite for local use; swap to a PostgreSQL (asyncpg) URL for production
    DATABASE_URL: str = "sqlite+aiosqlite:///./data/ghostcard.db"

    # --- Authentication ---
    # REQUIRED: No default — forces the developer to set a real secret
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    REFRESH_TOKEN_EXPIRE_DAYS: int = 7
    # Admins are provisioned by an operator unless this is switched on
    ALLOW_ADMIN_REGISTRATION: bool = False

    # --- Card Encryption ---
    # REQUIRED: Fernet key for encrypting card numbers and CVVs at rest.
    # Also keys the HMAC fingerprint used to look cards up by number.
    # Generate with: python -c "from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())"
    CARD_ENCRYPTION_KEY: str

    # --- Card issuance ---
    CARD_MAX_LIMIT_CENTS: int = 1_000_000  # 10,000.00
    MAX_ACTIVE_CARDS_PER_USER: int = 5
    CARD_VALIDITY_YEARS: int = 1
    CARD_NUMBER_MAX_ATTEMPTS: int = 10

    # --- Rate limiting (fixed window, per client address) ---
    RATE_LIMIT_ENABLED: bool = True
    AUTH_RATE_LIMIT: int = 10
    AUTH_RATE_WINDOW_SECONDS: int = 60 * 60
    CARD_RATE_LIMIT: int = 50
    CARD_RATE_WINDOW_SECONDS: int = 60 * 60
    CHARGE_RATE_LIMIT: int = 20
    CHARGE_RATE_WINDOW_SECONDS: int = 60 * 60
    ANALYTICS_RATE_LIMIT: int = 30
    ANALYTICS_RATE_WINDOW_SECONDS: int = 5 * 60
    GENERAL_RATE_LIMIT: int = 50
    GENERAL_RATE_WINDOW_SECONDS: int = 15 * 60

    # --- CORS ---
    # Origins allowed to make cross-origin requests (frontend URLs)
    ALLOWED_ORIGINS: list[str] = ["http://localhost:3000"]
