"""Exception classes for the newr client."""


class RecordSerializationError(Exception):
    """Raised when a batch of records cannot be serialised to JSON.

    This is a programming error in whatever produced the records, not a
    transport failure, so it is never retried: it propagates out of
    DeliverySession.send() and NewrExporter.flush().
    """
