import pytest

from databricks.labs.genealogy_connector.sources.genealogy.genealogy_service import (
    GenealogyService,
)
from tests.unit.sources.genealogy.fakes import FakeHistorian, make_settings


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def historian():
    return FakeHistorian()


@pytest.fixture
def service(settings, historian):
    return GenealogyService(settings, historian)
