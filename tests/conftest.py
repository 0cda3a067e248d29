import pytest

from blog.auth import hash_api_key
from blog.search.analyzer import SimpleNounAnalyzer
from blog.search.keywords import KeywordComposer
from blog.search.tokenizer import Tokenizer
from blog.store.memory import MemoryPostStore


@pytest.fixture
def tokenizer():
    return Tokenizer(SimpleNounAnalyzer(), timeout_s=1.0)


@pytest.fixture
def composer(tokenizer):
    return KeywordComposer(tokenizer)


@pytest.fixture
def store(composer):
    return MemoryPostStore(composer)


@pytest.fixture
def author(store):
    return store.create_author("writer", hash_api_key("writer-key"))
