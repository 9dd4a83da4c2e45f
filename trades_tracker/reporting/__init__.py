"""Report output."""
from .excel import ExcelReportWriter

__all__ = ["ExcelReportWriter"]
