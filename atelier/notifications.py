"""
Client notifications: status messages and WhatsApp deep links
"""
import logging
import re
from datetime import date
from decimal import Decimal
from typing import Dict, Optional
from urllib.parse import quote

from jinja2 import Environment

from . import models
from .config import WorkshopProfile
from .errors import InvalidParameter
from .lifecycle import is_notification_eligible

logger = logging.getLogger(__name__)

STATUS_LABELS = {
    "pending": "Pendiente",
    "in_progress": "En Progreso",
    "completed": "Completado",
    "delivered": "Entregado",
    "cancelled": "Cancelado",
}

MONTH_NAMES = [
    "enero", "febrero", "marzo", "abril", "mayo", "junio", "julio",
    "agosto", "septiembre", "octubre", "noviembre", "diciembre",
]

STATUS_MESSAGE = """\
Hola {{ client_name }}, hay una actualización sobre tu trabajo.
Trabajo: {{ category_name }}
Estado: {{ status_label }}
{% if status == "completed" %}
¡Tu trabajo está listo para retirar!
{% else %}
Fecha de entrega estimada: {{ delivery_date }}
{% endif %}
Precio: {{ price }}
Seña: {{ deposit }}
{% if notes %}
Notas: {{ notes }}
{% endif %}
{% if workshop.name %}

{{ workshop.name }}
{% endif %}
{% if workshop.address %}
{{ workshop.address }}
{% endif %}
{% if workshop.hours %}
Horario: {{ workshop.hours }}
{% endif %}
{% if workshop.phone %}
Tel: {{ workshop.phone }}
{% endif %}"""

_env = Environment(trim_blocks=True, lstrip_blocks=True, autoescape=False)
_status_template = _env.from_string(STATUS_MESSAGE)


def format_long_date(value: Optional[date]) -> str:
    if value is None:
        return "Sin fecha"
    return f"{value.day} de {MONTH_NAMES[value.month - 1]} de {value.year}"


def format_money(value) -> str:
    amount = Decimal(value or 0)
    return f"${amount:,.2f}"


def compose_status_message(
    work: models.Work,
    client_name: str,
    category_name: Optional[str],
    profile: WorkshopProfile,
) -> str:
    """Render the status update message for a work"""
    return _status_template.render(
        client_name=client_name,
        category_name=category_name or "No especificada",
        status=work.status,
        status_label=STATUS_LABELS.get(work.status, work.status),
        delivery_date=format_long_date(work.tentative_delivery_date),
        price=format_money(work.price),
        deposit=format_money(work.deposit_amount),
        notes=work.notes,
        workshop=profile,
    ).strip()


def clean_phone(phone: str, country_code: str = "54") -> str:
    """Digits-only international number as expected by wa.me"""
    cleaned = re.sub(r"[\s\-\(\)\+]", "", phone or "")
    if not cleaned:
        raise InvalidParameter("El cliente no tiene un número de teléfono registrado")
    if country_code and not cleaned.startswith(country_code):
        cleaned = country_code + cleaned
    return cleaned


def build_whatsapp_link(phone: str, message: str, country_code: str = "54") -> str:
    if not message or not message.strip():
        raise InvalidParameter("No hay mensaje para enviar")
    number = clean_phone(phone, country_code)
    return f"https://wa.me/{number}?text={quote(message, safe='')}"


def notification_for_work(work: models.Work, profile: WorkshopProfile) -> Optional[Dict[str, str]]:
    """Message and WhatsApp link for the work's client, None without a phone"""
    client = work.client
    if client is None or not (client.phone or "").strip():
        return None

    category_name = work.category.name if work.category else None
    message = compose_status_message(work, client.name, category_name, profile)
    link = build_whatsapp_link(client.phone, message, profile.country_code)
    return {
        "phone": clean_phone(client.phone, profile.country_code),
        "message": message,
        "whatsapp_link": link,
    }


def completion_notification(work: models.Work, profile: WorkshopProfile) -> Optional[Dict[str, str]]:
    """Notification offered right after a work is completed

    Never raises: the status change has already been committed when this
    runs, so any problem is logged and the caller simply gets no link.
    """
    if not is_notification_eligible(work):
        return None
    try:
        return notification_for_work(work, profile)
    except Exception as e:
        logger.error(f"❌ Could not compose notification for work #{work.id}: {e}")
        return None
