from .damage_report_repository import DamageReportRepository, ReportFilter

__all__ = ["DamageReportRepository", "ReportFilter"]
