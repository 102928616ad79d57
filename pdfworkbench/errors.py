"""Exception hierarchy shared by the processing pipeline and the HTTP layer."""


class PipelineError(Exception):
    """Base class for every error the pipeline reports to a user.

    ``str(error)`` is the human readable message shown in the UI.
    """

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class DocumentUnreadable(PipelineError):
    """Bytes could not be parsed as a PDF (corrupt, wrong type, locked)."""

    status_code = 422


class NoPagesSelected(PipelineError):
    status_code = 400


class InsufficientDocuments(PipelineError):
    status_code = 400


class InvalidOptions(PipelineError, ValueError):
    status_code = 400


class PackagingFailed(PipelineError):
    pass


class ProcessingFailed(PipelineError):
    pass


class DocumentNotFound(PipelineError):
    status_code = 404
