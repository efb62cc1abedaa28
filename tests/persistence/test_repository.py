import logging

import pytest

from personnel import Contact, Employee, Project, Q
from personnel.adapters import SQLiteAdapter
from personnel.errors import StorageFailure


def make_staff(repository):
    joan = Employee(first_name="Joan", last_name="Garcia", salary=30000)
    joan.add_contact(Contact(contact_type="EMAIL", value="joan@example.cat"))
    marta = Employee(first_name="Marta", last_name="Ferrer", salary=42000)
    marta.add_contact(Contact(contact_type="PHONE", value="666111222"))
    return repository.create(joan), repository.create(marta)


def test_create_returns_detached_entity_with_loaded_collections(repository):
    joan, _ = make_staff(repository)
    assert joan.pk == 1
    assert [contact.pk for contact in joan.contacts] == [1]
    assert joan.projects.loaded


def test_get_by_id_and_missing_id(repository):
    make_staff(repository)
    found = repository.get_by_id(Employee, 2)
    assert found.full_name == "Marta Ferrer"
    assert [contact.value for contact in found.contacts] == ["666111222"]
    assert repository.get_by_id(Employee, 99) is None


def test_update_applies_mutator(repository):
    make_staff(repository)
    updated = repository.update(Employee, 1, lambda employee: setattr(employee, "salary", 31000))
    assert updated.salary == 31000
    assert repository.get_by_id(Employee, 1).salary == 31000


def test_update_missing_id_warns(repository, caplog):
    caplog.set_level(logging.WARNING, logger="personnel")
    assert repository.update(Employee, 5, lambda employee: None) is None
    assert "Employee id=5 not found; nothing updated" in caplog.text


def test_delete_cascades_and_reports_missing(repository):
    make_staff(repository)
    assert repository.delete(Employee, 1) is True
    assert repository.delete(Employee, 1) is False
    assert [contact.value for contact in repository.list_all(Contact)] == ["666111222"]


def test_list_all_with_filter_order_and_window(repository):
    make_staff(repository)
    repository.create(Employee(first_name="Pau", last_name="Soler", salary=25000))

    by_salary = repository.list_all(Employee, order_by=("-salary",))
    assert [employee.first_name for employee in by_salary] == ["Marta", "Joan", "Pau"]

    well_paid = repository.list_all(Employee, where=Q(salary__gte=30000), order_by=("id",))
    assert [employee.pk for employee in well_paid] == [1, 2]

    page = repository.list_all(Employee, order_by=("id",), limit=1, offset=1)
    assert [employee.pk for employee in page] == [2]


def test_find_by_association(repository):
    make_staff(repository)
    web = repository.create(Project(name="Web"))
    with repository.database.unit_of_work() as session:
        session.get(Employee, 1).add_project(session.get(Project, web.pk))

    emails = repository.find_by_association(Employee, "contacts", contact_type="EMAIL")
    assert [employee.pk for employee in emails] == [1]

    on_web = repository.find_by_association(Employee, "projects", order_by=("id",), name="Web")
    assert [employee.pk for employee in on_web] == [1]

    assert repository.find_by_association(Employee, "contacts", contact_type="FAX") == []


def test_raw_query_returns_row_dicts(repository):
    make_staff(repository)
    rows = repository.raw_query("SELECT first_name FROM employees WHERE salary > ? ORDER BY id", [35000])
    assert rows == [{"first_name": "Marta"}]


def test_raw_update_returns_rowcount_and_warns(repository, caplog):
    make_staff(repository)
    caplog.set_level(logging.WARNING, logger="personnel")
    assert repository.raw_update("UPDATE employees SET salary = salary + 1") == 2
    assert "Raw update affected 2 row(s)" in caplog.text


def test_raw_statement_failure_rolls_back(repository):
    make_staff(repository)
    with pytest.raises(StorageFailure):
        repository.raw_update("UPDATE nowhere SET x = 1")
    assert repository.get_by_id(Employee, 1) is not None


def test_create_is_retryable_after_failed_commit(repository, monkeypatch):
    commit = SQLiteAdapter.commit
    failed = []

    def commit_failing_once(adapter):
        if not failed:
            failed.append(adapter)
            raise StorageFailure("disk full")
        commit(adapter)

    monkeypatch.setattr(SQLiteAdapter, "commit", commit_failing_once)
    joan = Employee(first_name="Joan", last_name="Garcia", salary=30000)
    joan.add_contact(Contact(contact_type="EMAIL", value="joan@example.cat"))
    joan.add_project(Project(name="Web"))

    with pytest.raises(StorageFailure):
        repository.create(joan)
    assert joan.pk is None
    assert [project.pk for project in joan.projects.added()] == [None]

    repository.create(joan)
    links = repository.raw_query("SELECT employee_id, project_id FROM employee_project")
    assert links == [{"employee_id": 1, "project_id": 1}]
    assert [contact.pk for contact in joan.contacts] == [1]
