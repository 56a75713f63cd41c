"""Error taxonomy for CityGML schema extraction.

Two failure classes matter to callers:

* :class:`FatalConfigurationError` aborts the operation and propagates. It is
  raised when the root schema cannot be read or an operation is called before
  its precondition holds (e.g. classifying objects without a conceptual model).
  The REST layer maps it to a 500 response and the CLI to exit code 1.
* :class:`PerFileExtractionError` describes a single schema file that could not
  be used. Extractors catch it, log a warning and continue, so the resulting
  model may be incomplete but is never absent.

A heuristic that does not match (a class that is not a city object, an element
that yields no relationship) is not an error and produces no exception.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Union


class CityGMLSchemaError(Exception):
    """Base class for all errors raised by this package."""


class FatalConfigurationError(CityGMLSchemaError):
    """A precondition of the whole operation is not met."""


class PerFileExtractionError(CityGMLSchemaError):
    """One schema file could not be processed.

    Args:
        path: Offending file (when known).
        reason: Human readable cause.
    """

    def __init__(self, path: Optional[Union[str, Path]], reason: str) -> None:
        self.path = Path(path) if path is not None else None
        self.reason = reason
        location = f"{self.path}: " if self.path is not None else ""
        super().__init__(f"{location}{reason}")


class SchemaParseError(PerFileExtractionError):
    """The file is not well-formed XML or has no schema root."""
