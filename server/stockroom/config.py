import os

from dotenv import load_dotenv

load_dotenv()


class Settings:
    database_url: str = os.getenv("DATABASE_URL", "sqlite+pysqlite:///./stockroom.db")
    database_echo: bool = os.getenv("DATABASE_ECHO", "False").lower() == "true"
    log_level: str = os.getenv("LOG_LEVEL", "INFO").upper()

    # Inventory behaviour
    reservation_ttl_days: int = int(os.getenv("RESERVATION_TTL_DAYS", "7"))
    transaction_retention_days: int = int(os.getenv("TRANSACTION_RETENTION_DAYS", "365"))
    expiring_batch_days: int = int(os.getenv("EXPIRING_BATCH_DAYS", "30"))
    transaction_page_size: int = int(os.getenv("TRANSACTION_PAGE_SIZE", "50"))

    cors_origins: list[str] = [
        origin.strip()
        for origin in os.getenv("CORS_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173").split(",")
        if origin.strip()
    ]


settings = Settings()
