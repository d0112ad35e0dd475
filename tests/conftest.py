import pytest
from fakes import FakeSession, FakeTranslator
from inline_translate.db import AutoTranslatePrefs, DataStore


@pytest.fixture
def datastore(tmp_path):
    return DataStore(str(tmp_path / "translate.db"), "Translate")


@pytest.fixture
def prefs(datastore):
    return AutoTranslatePrefs(datastore)


@pytest.fixture
def translator():
    return FakeTranslator()


@pytest.fixture
def session():
    return FakeSession()
