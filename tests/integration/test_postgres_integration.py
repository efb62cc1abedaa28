import os

import pytest

from personnel import Contact, Database, Employee, PersonnelService, Project, Settings


@pytest.fixture
def postgres_service():
    pytest.importorskip("psycopg", reason="psycopg driver not installed")
    dsn = os.getenv("PERSONNEL_POSTGRES_DSN")
    if not dsn:
        pytest.skip("PERSONNEL_POSTGRES_DSN not set; skipping Postgres integration test")
    database = Database(Settings(dsn=dsn, pool_size=2))
    try:
        database.drop_schema()
        database.create_schema()
    except Exception as exc:  # pragma: no cover - environment dependent
        database.close()
        pytest.skip(f"Cannot prepare Postgres for integration test: {exc}")
    yield PersonnelService(database)
    database.drop_schema()
    database.close()


def test_postgres_staff_lifecycle(postgres_service):
    service = postgres_service
    joan = service.add_employee("Joan", "Garcia", 35000)
    contact = service.add_contact_to_employee(joan.pk, "EMAIL", "joan@x.cat", "corp")
    web = service.add_project("Web", "desc", "ACTIU")

    service.update_employee_projects(joan.pk, [web.pk])
    assert [e.pk for e in service.find_employees_by_project(web.pk)] == [joan.pk]
    assert [e.pk for e in service.find_employees_by_contact_type("EMAIL")] == [joan.pk]

    assert service.delete(Employee, joan.pk)
    assert service.get_by_id(Contact, contact.pk) is None
    assert len(service.get_by_id(Project, web.pk).employees) == 0
