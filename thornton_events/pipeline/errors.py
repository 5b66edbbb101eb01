class IngestError(Exception):
    """Base class for everything an ingestion run can raise on purpose."""


class ConfigurationError(IngestError):
    pass


class FetchError(IngestError):
    pass


class ExtractionError(IngestError):
    pass


class PersistenceError(IngestError):
    pass
