"""insider_monitor package.

Contains modules for discovering and ingesting SEC ownership filings
(forms 3, 4 and 5) from the EDGAR daily indexes into MongoDB, parsing the
embedded ownership form XML, and emailing subscribers a digest of new
filings matching their saved criteria.

Architecture:
- Daily index discovery -> rate-limited fetch -> dedup -> extraction -> MongoDB
- Dask threads fetch submissions concurrently under one shared rate limit
- Pydantic models validate filings and subscriptions
"""

__all__ = ["__version__"]
__version__ = "0.1.0"
