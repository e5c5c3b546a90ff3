# domain/exceptions.py
from __future__ import annotations


class DomainError(Exception):
    pass


class ValidationError(DomainError):
    pass


class BindingError(ValidationError):
    pass


class ParseError(DomainError):
    """The captured request command could not be turned into a template."""


class DataSourceError(DomainError):
    pass


class DataSourceConnectionError(DataSourceError):
    pass


class CursorExpiredError(DataSourceError):
    """The store invalidated the cursor; resuming could skip or repeat records."""


class RunStateError(DomainError):
    pass
