"""Ingestion helpers: rate-limited archive access, daily index discovery,
index parsing and deduplication against the store.
"""
