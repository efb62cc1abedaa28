import pytest

from personnel import Database, PersonnelService, Repository, Settings


@pytest.fixture
def database(tmp_path):
    database = Database(Settings(dsn=f"sqlite:///{tmp_path / 'staff.db'}", pool_size=2))
    database.create_schema()
    yield database
    database.close()


@pytest.fixture
def memory_database():
    database = Database(Settings(dsn="sqlite:///:memory:"))
    database.create_schema()
    yield database
    database.close()


@pytest.fixture
def repository(database):
    return Repository(database)


@pytest.fixture
def service(database):
    return PersonnelService(database)
