import os
from typing import Dict, Any, Tuple, List
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic_settings import BaseSettings, SettingsConfigDict
from economy.log.logging import logger


def parse_csv(value: str) -> List[str]:
    """Parse a comma-separated settings string into a list."""
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings(BaseSettings):
    """
    Configuration class for environment variables and service settings.
    """
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )
    debug: bool = os.getenv("DEBUG", "True").lower() == "true"

    # Database settings
    database_url: str = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./economy.db")
    DB_POOL_SIZE: int = int(os.getenv("DB_POOL_SIZE", "5"))
    DB_MAX_OVERFLOW: int = int(os.getenv("DB_MAX_OVERFLOW", "10"))
    DB_POOL_TIMEOUT: int = int(os.getenv("DB_POOL_TIMEOUT", "30"))
    DB_POOL_RECYCLE: int = int(os.getenv("DB_POOL_RECYCLE", "1800"))

    # Authentication settings
    secret_key: str = os.getenv("SECRET_KEY", "your-secret-key-here")
    algorithm: str = os.getenv("ALGORITHM", "HS256")
    access_token_expire_minutes: int = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60"))

    # Service-to-service authentication
    INTERNAL_API_KEY: str = os.getenv("INTERNAL_API_KEY", "")

    # CORS settings
    CORS_ORIGINS: str = os.getenv("CORS_ORIGINS", "http://localhost:3000")
    CORS_ALLOW_CREDENTIALS: bool = os.getenv("CORS_ALLOW_CREDENTIALS", "true").lower() == "true"
    CORS_ALLOW_METHODS: str = os.getenv("CORS_ALLOW_METHODS", "GET,POST,PUT,DELETE,OPTIONS,PATCH")
    CORS_ALLOW_HEADERS: str = os.getenv("CORS_ALLOW_HEADERS", "Authorization,Content-Type,api-key,X-Request-ID")
    CORS_MAX_AGE: int = int(os.getenv("CORS_MAX_AGE", "600"))

    # HTTP request throttling (slowapi), independent of the daily generation quota
    RATE_LIMIT_ENABLED: bool = os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true"
    RATE_LIMIT_DEFAULT: str = os.getenv("RATE_LIMIT_DEFAULT", "120/minute")
    RATE_LIMIT_STORAGE_URI: str = os.getenv("RATE_LIMIT_STORAGE_URI", "memory://")

    # Calendar day used by check-in streaks and generation quotas
    BUSINESS_TIMEZONE: str = os.getenv("BUSINESS_TIMEZONE", "UTC")

    # Daily generation quotas per tier
    GENERATION_LIMIT_ANONYMOUS: int = int(os.getenv("GENERATION_LIMIT_ANONYMOUS", "3"))
    GENERATION_LIMIT_FREE: int = int(os.getenv("GENERATION_LIMIT_FREE", "5"))
    GENERATION_LIMIT_VIP: int = int(os.getenv("GENERATION_LIMIT_VIP", "50"))
    GENERATION_LIMIT_ADMIN: int = int(os.getenv("GENERATION_LIMIT_ADMIN", "200"))

    # Points
    CHECKIN_BASE_POINTS: int = int(os.getenv("CHECKIN_BASE_POINTS", "10"))
    HISTORY_MAX_LIMIT: int = int(os.getenv("HISTORY_MAX_LIMIT", "100"))

    # VIP
    VIP_AUTO_RENEW_DISCOUNT: str = os.getenv("VIP_AUTO_RENEW_DISCOUNT", "0.90")

    # Referral campaign used when no campaign row is active
    REFERRAL_DEFAULT_INVITER_REWARD: int = int(os.getenv("REFERRAL_DEFAULT_INVITER_REWARD", "10"))
    REFERRAL_DEFAULT_INVITEE_REWARD: int = int(os.getenv("REFERRAL_DEFAULT_INVITEE_REWARD", "5"))
    REFERRAL_DEFAULT_REQUIREMENT: str = os.getenv("REFERRAL_DEFAULT_REQUIREMENT", "verified_email")
    REFERRAL_DEFAULT_MAX_INVITES: int = int(os.getenv("REFERRAL_DEFAULT_MAX_INVITES", "3"))

    @property
    def cors_origins_list(self) -> List[str]:
        return parse_csv(self.CORS_ORIGINS)

    @property
    def cors_methods_list(self) -> List[str]:
        return parse_csv(self.CORS_ALLOW_METHODS)

    @property
    def cors_headers_list(self) -> List[str]:
        return parse_csv(self.CORS_ALLOW_HEADERS)

    @property
    def generation_limits(self) -> Dict[str, int]:
        """Daily generation quota keyed by tier name."""
        return {
            "anonymous": self.GENERATION_LIMIT_ANONYMOUS,
            "free": self.GENERATION_LIMIT_FREE,
            "vip": self.GENERATION_LIMIT_VIP,
            "admin": self.GENERATION_LIMIT_ADMIN,
        }


settings = Settings()


def validate_internal_api_key() -> Tuple[bool, Dict[str, Any]]:
    """
    Validate internal service API key configuration.

    Returns:
        Tuple[bool, Dict[str, Any]]:
            - Boolean indicating if configuration is valid
            - Dictionary with validation details
    """
    valid = True
    issues = []
    warnings = []

    if not settings.INTERNAL_API_KEY:
        issue = "Internal API key not configured (INTERNAL_API_KEY)"
        logger.error(issue, event_type="config_error", setting="INTERNAL_API_KEY")
        issues.append(issue)
        valid = False
    elif len(settings.INTERNAL_API_KEY) < 32:
        warning = "Internal API key is shorter than 32 characters"
        logger.warning(warning, event_type="config_warning", setting="INTERNAL_API_KEY")
        warnings.append(warning)

    return valid, {
        "valid": valid,
        "issues": issues,
        "warnings": warnings
    }


def validate_economy_config() -> Tuple[bool, Dict[str, Any]]:
    """
    Validate the reference timezone and the quota ladder.

    The tier quotas must be strictly increasing from anonymous to admin and
    the business timezone must be a known IANA zone.
    """
    valid = True
    issues = []
    warnings = []

    try:
        ZoneInfo(settings.BUSINESS_TIMEZONE)
    except (ZoneInfoNotFoundError, ValueError):
        issue = f"Unknown business timezone (BUSINESS_TIMEZONE={settings.BUSINESS_TIMEZONE})"
        logger.error(issue, event_type="config_error", setting="BUSINESS_TIMEZONE")
        issues.append(issue)
        valid = False

    ladder = [
        settings.GENERATION_LIMIT_ANONYMOUS,
        settings.GENERATION_LIMIT_FREE,
        settings.GENERATION_LIMIT_VIP,
        settings.GENERATION_LIMIT_ADMIN,
    ]
    if any(limit <= 0 for limit in ladder):
        issue = "Generation limits must be positive"
        logger.error(issue, event_type="config_error", setting="GENERATION_LIMIT_*")
        issues.append(issue)
        valid = False
    elif ladder != sorted(ladder) or len(set(ladder)) != len(ladder):
        warning = "Generation limits are not strictly increasing by tier"
        logger.warning(warning, event_type="config_warning", setting="GENERATION_LIMIT_*", limits=ladder)
        warnings.append(warning)

    if settings.CHECKIN_BASE_POINTS <= 0:
        issue = "Check-in base points must be positive (CHECKIN_BASE_POINTS)"
        logger.error(issue, event_type="config_error", setting="CHECKIN_BASE_POINTS")
        issues.append(issue)
        valid = False

    return valid, {
        "valid": valid,
        "issues": issues,
        "warnings": warnings
    }
