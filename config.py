"""
Configuration module for the PDSA vet clinic booking service.
Loads environment variables and provides typed configuration.
"""

from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env file
env_path = Path(__file__).parent / ".env"
load_dotenv(dotenv_path=env_path)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Supabase
    supabase_url: str = ""
    supabase_key: str = ""

    # Stripe
    stripe_secret_key: str = ""
    stripe_publishable_key: str = ""
    stripe_webhook_secret: Optional[str] = (
        None  # Required in production for webhook verification
    )
    payment_currency: str = "gbp"

    # Email (SMTP)
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_use_tls: bool = True
    from_email: str = "noreply@pdsa-clinic.example"
    from_name: str = "PDSA Veterinary Clinic"

    # Clinic hours (24h clock, slot length in minutes)
    timezone: str = "Europe/London"
    clinic_open_hour: int = 9
    clinic_close_hour: int = 17
    lunch_start_hour: int = 13
    lunch_end_hour: int = 14
    slot_duration_minutes: int = 30

    # Admin Settings
    admin_user_ids: str = ""  # Comma-separated user IDs (e.g., "1,42")

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    environment: str = "development"  # development, staging, production
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    def admin_ids(self) -> List[int]:
        """Parse the configured admin user IDs."""
        if not self.admin_user_ids:
            return []
        return [
            int(id.strip()) for id in self.admin_user_ids.split(",") if id.strip()
        ]

    def is_admin(self, user_id: Optional[int]) -> bool:
        """
        Check if a user ID belongs to a clinic administrator.

        Args:
            user_id: User ID to check

        Returns:
            True if user is admin, False otherwise
        """
        if user_id is None:
            return False
        return user_id in self.admin_ids()

    def validate_all_required(self) -> None:
        """
        Validate that all required settings are present.

        Raises:
            ValueError: If required fields are missing or invalid
        """
        required_fields = [
            "supabase_url",
            "supabase_key",
            "stripe_secret_key",
            "stripe_publishable_key",
            "smtp_host",
        ]

        missing = []
        for field in required_fields:
            value = getattr(self, field, None)

            if not value:
                missing.append(field)
                continue

            # Check for placeholder values
            if str(value).lower().startswith("your_"):
                missing.append(field)

        if not (
            self.clinic_open_hour
            <= self.lunch_start_hour
            <= self.lunch_end_hour
            <= self.clinic_close_hour
        ):
            raise ValueError(
                "Clinic hours must satisfy open <= lunch start <= lunch end <= close"
            )

        if self.slot_duration_minutes <= 0 or 60 % self.slot_duration_minutes:
            raise ValueError("slot_duration_minutes must evenly divide an hour")

        if missing:
            raise ValueError(
                f"Missing or invalid required configuration: "
                f"{', '.join(missing)}. "
                f"Please check your .env file and ensure all required "
                f"values are set."
            )


# Global settings instance
settings = Settings()
