"""Fatal generation errors and the soft-degrade diagnostics collector.

Fatal conditions raise a GeneratorError subclass and abort the run before
any output is written. Everything else degrades to a placeholder and is
recorded on a Diagnostics instance that travels with the resolvers.
"""

from __future__ import annotations

import logging
from typing import Any

from .ir import Diagnostic

logger = logging.getLogger(__name__)


class GeneratorError(Exception):
    """Base exception for fatal generation errors."""


class SpecLoadError(GeneratorError):
    """The API document could not be read or parsed."""


class UnresolvedReferenceError(GeneratorError):
    """A schema ``$ref`` points nowhere."""


class StatusCodeError(GeneratorError):
    """A response status token is neither a code, an ``NXX`` class, nor ``default``."""


class OutputError(GeneratorError):
    """The output location could not be created or written."""


class ConfigError(GeneratorError):
    """A configuration file is missing or malformed."""


class Diagnostics:
    """Collects soft-degrade warnings for one generation run."""

    def __init__(self) -> None:
        self._records: list[Diagnostic] = []

    def warn(self, message: str, **context: Any) -> None:
        record = Diagnostic(
            message=message,
            context=tuple((k, str(v)) for k, v in sorted(context.items())),
        )
        self._records.append(record)
        if context:
            details = ", ".join(f"{k}={v}" for k, v in record.context)
            logger.warning("%s (%s)", message, details)
        else:
            logger.warning("%s", message)

    @property
    def records(self) -> tuple[Diagnostic, ...]:
        return tuple(self._records)

    def messages(self) -> list[str]:
        return [r.message for r in self._records]

    def __len__(self) -> int:
        return len(self._records)
