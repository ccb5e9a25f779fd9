"""Subscription matching and digest delivery by email."""
