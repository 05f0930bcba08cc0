"""
Environment configuration for the workshop service
"""
import os
from dataclasses import dataclass, field
from typing import List

from dotenv import load_dotenv

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./atelier.db")

# Telegram alerts for the workshop operators
TELEGRAM_BOT_TOKEN = os.getenv("TELEGRAM_BOT_TOKEN")
TELEGRAM_ADMIN_CHAT_IDS = os.getenv("TELEGRAM_ADMIN_CHAT_IDS", "")


@dataclass(frozen=True)
class WorkshopProfile:
    """Workshop contact details used when composing client messages"""
    name: str = "Taller"
    address: str = ""
    phone: str = ""
    country_code: str = "54"
    hours: str = ""
    # Informational only, delivery estimates do not consult it
    closed_days: List[str] = field(default_factory=list)


def load_workshop_profile() -> WorkshopProfile:
    """Build the workshop profile from environment variables"""
    closed_days = os.getenv("WORKSHOP_CLOSED_DAYS", "")
    return WorkshopProfile(
        name=os.getenv("WORKSHOP_NAME", "Taller"),
        address=os.getenv("WORKSHOP_ADDRESS", ""),
        phone=os.getenv("WORKSHOP_PHONE", ""),
        country_code=os.getenv("WORKSHOP_COUNTRY_CODE", "54"),
        hours=os.getenv("WORKSHOP_HOURS", ""),
        closed_days=[d.strip() for d in closed_days.split(",") if d.strip()],
    )
