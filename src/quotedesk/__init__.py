"""quotedesk - book catalog and quotation backend."""

__version__ = "0.1.0"
