"""Error types for imager.

Request-level errors carry the HTTP status the handlers answer with.
Collaborator errors (codec, hashing, storage, database) are plain exceptions;
the pipeline translates them into request-level errors.
"""


class ImagerError(Exception):
    """Base class for errors that end a request."""

    status = 500


class ValidationError(ImagerError):
    """Bad resize dimensions or a malformed identifier."""

    status = 400


class BadRequest(ImagerError):
    """Malformed or missing multipart upload."""

    status = 400


class NotFoundError(ImagerError):
    status = 404


class InternalError(ImagerError):
    status = 500


class DecodeError(Exception):
    pass


class EncodeError(Exception):
    pass


class HashError(Exception):
    pass


class UploadError(Exception):
    pass


class DownloadError(Exception):
    pass


class RepositoryError(Exception):
    pass
