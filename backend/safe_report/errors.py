class ReportServiceError(Exception):
    """Base class for failures surfaced by the report service."""


class ConfigurationError(ReportServiceError):
    """Required credentials or settings are missing."""


class RenderFailure(ReportServiceError):
    """The browser could not be acquired or a template page failed."""


class MergeFailure(ReportServiceError):
    """An intermediate page PDF could not be read or merged."""


class DeliveryFailure(ReportServiceError):
    """The email provider rejected the message or could not be reached."""


class PersistenceWarning(UserWarning):
    """The lead store was missing or unreadable and has been reset."""
