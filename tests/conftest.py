"""Shared fixtures."""

import pytest

from notion_clipper.config import Settings
from notion_clipper.converter import MarkdownConverter
from notion_clipper.normalizer import MarkdownNormalizer


@pytest.fixture
def settings():
    """Settings with polling delays disabled."""
    return Settings(upload_poll_interval=0)


@pytest.fixture
def normalizer():
    return MarkdownNormalizer()


@pytest.fixture
def converter():
    return MarkdownConverter()
