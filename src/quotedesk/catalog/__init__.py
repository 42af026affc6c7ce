"""Catalog import engine: spreadsheet ingestion, identity matching and pricing."""
