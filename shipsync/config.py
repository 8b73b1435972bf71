"""
Application configuration loaded from environment variables (.env supported)
"""
import os
from dotenv import load_dotenv

load_dotenv()


class Settings:
    """Settings for the ECCANG sync core"""

    ENV = os.getenv("ENV", "DEV").upper()
    IS_PRODUCTION = ENV == "PROD" or ENV == "PRODUCTION"

    # Database
    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./shipsync.db")

    # ECCANG SOAP web service (base URL, e.g. http://host/default/svc/web-service)
    ECCANG_SERVICE_URL = os.getenv("ECCANG_SERVICE_URL", "")
    ECCANG_APP_TOKEN = os.getenv("ECCANG_APP_TOKEN", "")
    ECCANG_APP_KEY = os.getenv("ECCANG_APP_KEY", "")
    ECCANG_TIMEOUT = float(os.getenv("ECCANG_TIMEOUT", "15"))
    # Transport retries for read-only services; createOrder/cancelOrder are never retried
    ECCANG_MAX_RETRIES = int(os.getenv("ECCANG_MAX_RETRIES", "2"))

    # Track-number polling after order creation (12 x 10s ~ 2 minutes)
    TRACK_NUMBER_POLL_INTERVAL = float(os.getenv("TRACK_NUMBER_POLL_INTERVAL", "10"))
    TRACK_NUMBER_POLL_MAX_ATTEMPTS = int(os.getenv("TRACK_NUMBER_POLL_MAX_ATTEMPTS", "12"))

    # Logging
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO" if IS_PRODUCTION else "DEBUG")

    @property
    def ECCANG_CONFIGURED(self) -> bool:
        """True when URL, token and key are all set"""
        return all(
            (value or "").strip()
            for value in (self.ECCANG_SERVICE_URL, self.ECCANG_APP_TOKEN, self.ECCANG_APP_KEY)
        )

    def __str__(self):
        return f"Settings(ENV={self.ENV}, ECCANG_CONFIGURED={self.ECCANG_CONFIGURED})"


# Global settings instance
settings = Settings()
