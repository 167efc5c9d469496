"""Shared test fixtures and configuration."""

import logging
import os
from pathlib import Path

import pytest

from hister.config import Settings
from hister.docpipeline.processor import DocumentProcessor
from hister.indexer import Indexer
from hister.models import Document
from hister.rules import Rules, RulesStore
from hister.search.storage import SqliteIndex


FIXED_NOW = 1_700_000_000


def fixed_clock() -> float:
    return float(FIXED_NOW)


def page_html(title: str, body: str, head: str = "") -> str:
    """Minimal page markup with a title and a paragraph body."""
    return f"<html><head><title>{title}</title>{head}</head><body><p>{body}</p></body></html>"


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Keep HISTER_* variables from the developer's shell out of tests."""
    for key in list(os.environ):
        if key.upper().startswith("HISTER_"):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(data_dir=tmp_path / "data", base_url="http://127.0.0.1:4433")


@pytest.fixture
def processor() -> DocumentProcessor:
    return DocumentProcessor(clock=fixed_clock)


@pytest.fixture
def backend(tmp_path: Path):
    index = SqliteIndex(tmp_path / "index.db")
    index.open()
    yield index
    index.close()


@pytest.fixture
def rules_holder():
    """Mutable holder so tests can swap rules under a live indexer."""
    return {"rules": Rules()}


@pytest.fixture
def indexer(backend, processor, settings, rules_holder) -> Indexer:
    return Indexer(backend, processor, lambda: rules_holder["rules"], settings)


@pytest.fixture
def rules_store(tmp_path: Path) -> RulesStore:
    store = RulesStore(tmp_path / "rules.json")
    store.load()
    return store


@pytest.fixture
def make_document():
    def _make(url: str, title: str, body: str, head: str = "") -> Document:
        return Document(url=url, html=page_html(title, body, head))

    return _make


@pytest.fixture
def now() -> int:
    return FIXED_NOW


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)
    logging.getLogger("hister.search").setLevel(logging.NOTSET)
