"""Exceptions raised by the spreadsheet import pipeline."""

from typing import Optional


class CatalogImportError(Exception):
    """Base class for import errors."""

    pass


class SpreadsheetError(CatalogImportError):
    """The uploaded file could not be read as a spreadsheet."""

    pass


class MappingError(CatalogImportError):
    """A header mapping does not fit the uploaded file."""

    pass


class ConfigurationError(CatalogImportError):
    """A run option or configured setting cannot be used."""

    pass


class RowSkipped(CatalogImportError):
    """A row carries too little data to be imported."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class PricingSaveError(CatalogImportError):
    """The first pricing record of a newly created book could not be saved."""

    def __init__(
        self,
        message: str,
        book_id: Optional[str] = None,
        rolled_back: bool = False,
    ):
        super().__init__(message)
        self.book_id = book_id
        self.rolled_back = rolled_back
