"""Asynchronous feature flag providers for Flipt, flagd over OFREP, and flagd flag files."""

__version__ = "0.1.0"