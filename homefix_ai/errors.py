"""Error taxonomy shared by the core and the HTTP surface.

Every error carries the HTTP status it maps to and a message that is safe
to show an end user. Internal detail goes in the exception args and the logs.
"""


class HomefixError(Exception):
    """Base class for all errors that cross an entrypoint."""

    status_code = 500
    public_message = "Internal server error"

    def __init__(self, message=None, *, public_message=None):
        super().__init__(message or self.public_message)
        if public_message is not None:
            self.public_message = public_message


class InvalidInput(HomefixError):
    """Caller mistake: missing description, bad metadata shape, empty message."""

    status_code = 400
    public_message = "Invalid request"

    def __init__(self, message):
        # The validation message is user-correctable, so show it as-is.
        super().__init__(message, public_message=message)


class UnsupportedMediaType(HomefixError):
    status_code = 415
    public_message = "Only images are allowed."

    def __init__(self, mime_type):
        self.mime_type = mime_type
        super().__init__(
            f"unsupported media type: {mime_type!r}",
            public_message=f"Invalid file type: {mime_type}. Only images are allowed.",
        )


class PayloadTooLarge(HomefixError):
    status_code = 413

    def __init__(self, size_bytes, limit_bytes):
        self.size_bytes = size_bytes
        self.limit_bytes = limit_bytes
        limit_mb = limit_bytes // (1024 * 1024)
        super().__init__(
            f"image of {size_bytes} bytes exceeds limit of {limit_bytes} bytes",
            public_message=f"File too large. Maximum {limit_mb}MB per image.",
        )


class ImageTooLarge(HomefixError):
    """Decoded pixel count over the decoder's safety ceiling."""

    status_code = 413
    public_message = "Image dimensions too large."


class TooManyFiles(HomefixError):
    status_code = 400

    def __init__(self, count, limit):
        self.count = count
        self.limit = limit
        super().__init__(
            f"{count} images uploaded, limit is {limit}",
            public_message=f"Maximum {limit} images allowed",
        )


class AnalysisFailed(HomefixError):
    """The diagnosis could not be produced. Terminal for this request."""

    status_code = 502
    public_message = "Analysis failed. Please try again."


class MalformedModelOutput(AnalysisFailed):
    """The model's reply held no locatable JSON object."""


class GenerationUnavailable(AnalysisFailed):
    """Transport, auth, quota or timeout failure talking to the model."""

    status_code = 503
