"""Parsers for submission text files and the ownership form XML they embed."""
