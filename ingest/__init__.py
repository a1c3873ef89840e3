"""Ingestion pipeline modules for the Japan grid carbon intensity project."""

from . import carbon, client, load, occto, parse, run, transform, tso, validate

__all__ = ["carbon", "client", "load", "occto", "parse", "run", "transform", "tso", "validate"]
