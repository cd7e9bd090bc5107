"""Typed, read-only key lookup over application settings"""

from typing import Dict, Union

from koperasi_ledger.config import Settings, settings as default_settings


class ConfigSettingsProvider:
    """Serves dotted setting keys from the pydantic Settings object"""

    def __init__(self, config: Settings = default_settings):
        self._values: Dict[str, Union[int, float, bool]] = {
            "report.deficitStreakMonths": config.report_deficit_streak_months,
            "report.dormantMemberMonths": config.report_dormant_member_months,
            "report.topConcentrationSize": config.report_top_concentration_size,
            "report.cacheTtlSeconds": config.cache_ttl_report_seconds,
            "snapshot.daysBeforeMonthEnd": config.snapshot_days_before_month_end,
        }

    def get_number(self, key: str) -> float:
        value = self._values[key]
        if isinstance(value, bool):
            raise KeyError(f"{key} is not numeric")
        return value

    def get_bool(self, key: str) -> bool:
        value = self._values[key]
        if not isinstance(value, bool):
            raise KeyError(f"{key} is not boolean")
        return value
