from .reporting import DailyReport, ReportingService

__all__ = ["DailyReport", "ReportingService"]
