"""Main entry point for the quotedesk package."""

from quotedesk.catalog.cli import app


def main():
    """Run the catalog command-line interface."""
    app()


if __name__ == "__main__":
    main()
