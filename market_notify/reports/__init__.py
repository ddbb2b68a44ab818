from .service import REQUIRED_FIELDS, ReportEmailService, ReportRequestError

__all__ = ["REQUIRED_FIELDS", "ReportEmailService", "ReportRequestError"]
