"""Domain exceptions, translated to HTTP status codes by the API layer."""


class NotFoundError(LookupError):
    """A user, book, library entry or favorite does not exist (404)."""


class InvalidArgumentError(ValueError):
    """A caller-supplied value is malformed (400)."""


class ConflictError(ValueError):
    """The requested state already exists (409)."""
