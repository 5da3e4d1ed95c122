# errors.py - Exception types for the tournament reminder service.
#
# Two families matter to the driver:
#   ConfigurationError -> fatal for the whole invocation, needs an operator.
#   RecordError        -> affects one tournament only, the batch continues.


class NotifierError(Exception):
    """Base class for every error raised by the reminder service."""


# =====================================================================
# FATAL (CONFIGURATION) ERRORS
# =====================================================================

class ConfigurationError(NotifierError):
    """Missing or invalid configuration. Not retried automatically."""


class IndexMissingError(ConfigurationError):
    """The window query needs a Firestore composite index that does not exist."""

    def __init__(self, collection, fields, index_url=None):
        self.collection = collection
        self.fields = list(fields)
        self.index_url = index_url
        field_list = ", ".join(f"{name} ({direction})" for name, direction in self.fields)
        message = (
            f"Missing Firestore index. Please create a composite index for "
            f"collection: {collection}, fields: {field_list}"
        )
        if index_url:
            message += f". Create it here: {index_url}"
        super().__init__(message)


# =====================================================================
# PER-RECORD ERRORS
# =====================================================================

class RecordError(NotifierError):
    """A problem with a single tournament. Logged, skipped, retried next poll."""

    def __init__(self, tournament_id, message):
        self.tournament_id = tournament_id
        super().__init__(message)


class HostNotFoundError(RecordError):
    pass


class HostEmailMissingError(RecordError):
    pass


class TemplateRenderError(RecordError):
    pass


class DeliveryError(RecordError):
    """The SMTP transport did not accept the message."""


class TournamentNotFoundError(RecordError):
    pass


class ContentionError(RecordError):
    """A Firestore transaction on the tournament could not commit after its retries."""
