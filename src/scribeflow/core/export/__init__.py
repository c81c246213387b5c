from .export_service import ExportFormat, ExportPayload, ExportService, format_timestamp

__all__ = ["ExportFormat", "ExportPayload", "ExportService", "format_timestamp"]
