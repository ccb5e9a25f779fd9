"""Shared pytest fixtures built on the fakes in `helpers`."""
from __future__ import annotations

import pytest

from helpers import FORM4_XML, FakeMailer, InMemoryStore


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def mailer() -> FakeMailer:
    return FakeMailer()


@pytest.fixture
def form4_xml() -> str:
    return FORM4_XML
