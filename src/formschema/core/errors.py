"""Exception hierarchy for schema loading, resolution and normalization.

Every error carries an optional ``path`` (a JSON Pointer fragment, a ``$ref``
string or a document location) so callers can point schema authors at the
offending node.
"""

from __future__ import annotations


class SchemaError(ValueError):
    def __init__(self, message: str, path: str = "") -> None:
        self.message = message
        self.path = path
        super().__init__(f"{message} (at {path})" if path else message)


class LoadError(SchemaError):
    """A document could not be fetched."""


class DialectError(SchemaError):
    """The payload is not JSON or does not declare the 2020-12 dialect."""


class ResolutionError(SchemaError):
    """A ``$ref`` could not be expanded."""


class RefCycleError(ResolutionError):
    pass


class PathTraversalError(ResolutionError):
    pass


class LimitExceededError(ResolutionError):
    pass


class HTTPRefsDisabledError(ResolutionError):
    pass


class NormalizationError(SchemaError):
    """The resolved tree uses a construct the IR does not support."""


class FormDiscoveryError(SchemaError):
    pass


class OverlayError(SchemaError):
    """Malformed overlay document or an override that cannot be applied."""
