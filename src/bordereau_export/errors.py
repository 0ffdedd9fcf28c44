"""Error kinds raised by the import/export actions.

Every error is recovered at the boundary of the action that triggered it
(see :mod:`bordereau_export.session`) and shown to the user; none of them
ends the session.
"""

from __future__ import annotations


class ExporterError(Exception):
    """Base class for user-facing import/export failures."""

    exit_code = 2


class InvalidFileType(ExporterError):
    """Input extension is not in the allow-list."""


class UnreadableFile(ExporterError):
    """Input file is missing, corrupted or cannot be decoded."""


class HeaderNotFound(ExporterError):
    """No row of the sheet carries the anchor label."""


class EmptyDataset(ExporterError):
    """No non-blank record survived row mapping."""


class InvalidSelection(ExporterError):
    """Selected index falls outside the dataset."""


class EmptySelection(ExporterError):
    """Export attempted with zero rows chosen."""


class TemplateUnavailable(ExporterError):
    """Document template could not be loaded."""


class RenderFailure(ExporterError):
    """Merging data into the document template failed."""


class SaveCanceled(ExporterError):
    """User declined to write the output."""

    exit_code = 3


class InvalidColumnMap(ExporterError):
    """A ``field=Header`` override names an unknown field or header."""
