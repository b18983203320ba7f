# backend/billiard_pos/routes/settings.py
from flask import Blueprint, request

from ..errors import PosError
from ..services.settings_service import get_settings, save_settings, settings_to_dict

settings_bp = Blueprint("settings", __name__, url_prefix="/api/settings")


@settings_bp.get("")
def get_settings_route():
    return settings_to_dict(get_settings())


@settings_bp.put("")
def save_settings_route():
    """
    Body (any subset): {"hourly_rate": number, "half_hour_rate": number, "table_count": int}
    Changing table_count provisions tables in the same commit.
    """
    payload = request.get_json(silent=True) or {}

    try:
        settings = save_settings(
            hourly_rate=payload.get("hourly_rate"),
            half_hour_rate=payload.get("half_hour_rate"),
            table_count=payload.get("table_count"),
        )
    except PosError as e:
        return e.to_dict(), e.status_code

    return settings_to_dict(settings)
