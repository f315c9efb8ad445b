"""运行时配置读取（系统设置表覆盖环境配置）。"""

from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from capstone.config import Settings
from capstone.models import SystemSetting

logger = logging.getLogger(__name__)

KEY_MIN_DEADLINE_GAP_DAYS = "min_deadline_gap_days"
KEY_REQUIRED_EVALUATORS = "required_evaluators"
KEY_GROUP_MIN_SIZE = "group_min_size"
KEY_GROUP_MAX_SIZE = "group_max_size"


class SettingsService:
    """只读地提供核心逻辑所需的配置值，表中无值或值非法时使用默认配置。"""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    def _get_int(self, db: Session, key: str, default: int, minimum: int = 0) -> int:
        row = db.get(SystemSetting, key)
        if row is None:
            return default
        try:
            value = int(row.value)
        except (TypeError, ValueError):
            logger.warning("Ignoring non-integer system setting %s=%r", key, row.value)
            return default
        if value < minimum:
            logger.warning("Ignoring out-of-range system setting %s=%r", key, row.value)
            return default
        return value

    def min_deadline_gap_days(self, db: Session) -> int:
        return self._get_int(
            db, KEY_MIN_DEADLINE_GAP_DAYS, self.settings.min_deadline_gap_days
        )

    def required_evaluators(self, db: Session) -> int:
        return self._get_int(
            db, KEY_REQUIRED_EVALUATORS, self.settings.required_evaluators, minimum=1
        )

    def group_size_bounds(self, db: Session) -> tuple[int, int]:
        return (
            self._get_int(db, KEY_GROUP_MIN_SIZE, self.settings.group_min_size, minimum=1),
            self._get_int(db, KEY_GROUP_MAX_SIZE, self.settings.group_max_size, minimum=1),
        )

    @property
    def enforce_sequential_submission(self) -> bool:
        return self.settings.enforce_sequential_submission
