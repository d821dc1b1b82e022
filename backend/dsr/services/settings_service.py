from __future__ import annotations

from ..errors import NotFound, ValidationError
from ..extensions import db
from ..models import SystemSetting
from . import audit_service
from .persistence import commit_or_raise


def list_settings(*, module_name: str | None = None) -> list[SystemSetting]:
    query = db.session.query(SystemSetting)
    if module_name:
        query = query.filter(SystemSetting.module_name == module_name)
    return query.order_by(SystemSetting.module_name.asc(), SystemSetting.setting_key.asc()).all()


def update_setting(context, setting_id: int, data: dict) -> SystemSetting:
    """Replace setting_value. Any JSON value is accepted, including null."""
    if "setting_value" not in data:
        raise ValidationError("setting_value is required")

    setting = db.session.get(SystemSetting, setting_id)
    if not setting:
        raise NotFound("Setting not found")

    before = {"setting_value": setting.setting_value}
    setting.setting_value = data["setting_value"]
    setting.updated_by = context.user_id

    audit_service.record(
        table_name="system_settings",
        action_type="UPDATE",
        record_id=setting.id,
        user_id=context.user_id,
        old_values=before,
        new_values={"setting_value": setting.setting_value},
    )
    commit_or_raise()
    return setting
