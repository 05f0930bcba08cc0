"""
Telegram alerts for the workshop operators
Notifies admin chats about bookings and finished works
"""
import logging
from datetime import date, time
from typing import List, Optional

from telegram import Bot
from telegram.error import TelegramError

from .config import TELEGRAM_ADMIN_CHAT_IDS, TELEGRAM_BOT_TOKEN
from .notifications import format_long_date

logger = logging.getLogger(__name__)


def parse_chat_ids(raw: str) -> List[int]:
    """Comma separated chat ids"""
    if not raw:
        return []
    return [int(chat_id.strip()) for chat_id in raw.split(",") if chat_id.strip()]


class TelegramNotifier:
    """Sends HTML alerts to every configured admin chat"""

    def __init__(self, bot_token: Optional[str] = None, admin_chat_ids: Optional[List[int]] = None):
        self.bot_token = bot_token
        self.admin_chat_ids = admin_chat_ids or []
        self.bot = None

        if self.bot_token:
            try:
                self.bot = Bot(token=self.bot_token)
                logger.info("✅ Telegram bot initialised")
            except Exception as e:
                logger.error(f"❌ Telegram bot initialisation failed: {e}")
        else:
            logger.warning("⚠️ TELEGRAM_BOT_TOKEN is not set, operator alerts disabled")

    @property
    def enabled(self) -> bool:
        return self.bot is not None and bool(self.admin_chat_ids)

    async def _broadcast(self, message: str) -> bool:
        if not self.enabled:
            return False

        success_count = 0
        for chat_id in self.admin_chat_ids:
            try:
                await self.bot.send_message(
                    chat_id=chat_id,
                    text=message,
                    parse_mode="HTML"
                )
                success_count += 1
                logger.info(f"✅ Alert sent to admin {chat_id}")
            except TelegramError as e:
                logger.error(f"❌ Alert to admin {chat_id} failed: {e}")

        return success_count > 0

    async def send_appointment_scheduled_notification(
        self,
        client_name: str,
        appointment_date: date,
        appointment_time: time,
        appointment_id: int,
        work_id: int,
    ) -> bool:
        message = f"""
📅 <b>Nueva cita</b>

<b>Fecha:</b> {format_long_date(appointment_date)}
<b>Hora:</b> {appointment_time.strftime('%H:%M')}

👤 <b>Cliente:</b> {client_name}
🧵 Trabajo #{work_id}

🆔 Cita #{appointment_id}
"""
        return await self._broadcast(message)

    async def send_appointment_cancelled_notification(
        self,
        client_name: str,
        appointment_date: date,
        appointment_time: time,
        appointment_id: int,
    ) -> bool:
        message = f"""
❌ <b>Cita cancelada</b>

<b>Fecha:</b> {format_long_date(appointment_date)}
<b>Hora:</b> {appointment_time.strftime('%H:%M')}

👤 <b>Cliente:</b> {client_name}

🆔 Cita #{appointment_id}
"""
        return await self._broadcast(message)

    async def send_work_completed_notification(
        self,
        client_name: str,
        category_name: str,
        work_id: int,
    ) -> bool:
        message = f"""
✅ <b>Trabajo terminado</b>

🧵 <b>{category_name}</b> #{work_id}
👤 <b>Cliente:</b> {client_name}

Listo para avisar al cliente y entregar.
"""
        return await self._broadcast(message)


# Global instance
telegram_notifier = TelegramNotifier(
    bot_token=TELEGRAM_BOT_TOKEN,
    admin_chat_ids=parse_chat_ids(TELEGRAM_ADMIN_CHAT_IDS),
)
