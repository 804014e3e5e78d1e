from .report_store import StudentRow, SettingsRow

__all__ = [
    "StudentRow",
    "SettingsRow",
]
