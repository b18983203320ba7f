from __future__ import annotations

from ..extensions import db
from billiard_pos.time_utils import to_utc_z


class Setting(db.Model):
    """
    Process-wide key/value configuration (hourly_rate, half_hour_rate, table_count).

    Values are stored as text; settings_service owns parsing and defaults.
    """
    __tablename__ = "settings"

    key = db.Column(db.String(64), primary_key=True)
    value = db.Column(db.Text, nullable=False)

    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self):
        return {
            "key": self.key,
            "value": self.value,
            "updated_at": to_utc_z(self.updated_at),
        }
