import logging

import pytest

from personnel import Contact, Database, Employee, InvalidReference, PersonnelService, Project, Settings


def test_joan_garcia_lifecycle(service):
    joan = service.add_employee("Joan", "Garcia", 35000)
    assert joan.pk == 1

    email = service.add_contact_to_employee(1, "EMAIL", "joan@x.cat", "corp")
    assert email.pk == 1
    assert email.employee.pk == 1

    web = service.add_project("Web", "desc", "ACTIU")
    assert web.pk == 1

    service.update_employee_projects(1, [1])
    assert [employee.pk for employee in service.find_employees_by_project(1)] == [1]

    assert service.delete(Employee, 1) is True
    assert service.get_by_id(Contact, 1) is None
    project = service.get_by_id(Project, 1)
    assert project is not None
    assert len(project.employees) == 0


def test_round_trip_is_equal_and_field_identical(service):
    created = service.add_employee("Marta", "Ferrer", 42000)
    fetched = service.get_by_id(Employee, created.pk)
    assert fetched == created
    assert fetched.column_values() == created.column_values()

    project = service.add_project("Intranet", None, "PENDENT")
    assert service.get_by_id(Project, project.pk).column_values() == project.column_values()


def test_deleting_employee_cascades_to_contacts(service):
    service.add_employee("Joan", "Garcia", 35000)
    first = service.add_contact_to_employee(1, "EMAIL", "joan@x.cat")
    second = service.add_contact_to_employee(1, "PHONE", "666111222")

    service.delete(Employee, 1)

    assert service.get_by_id(Contact, first.pk) is None
    assert service.get_by_id(Contact, second.pk) is None


def test_deleting_employee_leaves_projects(service):
    service.add_employee("Joan", "Garcia", 35000)
    service.add_project("Web")
    service.update_employee_projects(1, [1])

    service.delete(Employee, 1)

    assert service.get_by_id(Project, 1) is not None
    assert service.find_employees_by_project(1) == []


def test_replace_links_is_idempotent(service):
    service.add_employee("Joan", "Garcia", 35000)
    for name in ("Web", "App"):
        service.add_project(name)

    once = service.update_employee_projects(1, [1, 2])
    twice = service.update_employee_projects(1, [1, 2])

    assert once.projects.ids() == twice.projects.ids() == [1, 2]
    rows = service.query_table("SELECT employee_id, project_id FROM employee_project ORDER BY project_id")
    assert rows == [{"employee_id": 1, "project_id": 1}, {"employee_id": 1, "project_id": 2}]


def test_replace_links_applies_symmetric_difference(service):
    service.add_employee("Joan", "Garcia", 35000)
    for name in ("Web", "App", "Intranet"):
        service.add_project(name)
    service.update_employee_projects(1, [1, 2])

    employee = service.update_employee_projects(1, [2, 3])

    assert employee.projects.ids() == [2, 3]
    assert service.find_employees_by_project(1) == []
    assert [e.pk for e in service.find_employees_by_project(2)] == [1]
    assert [e.pk for e in service.find_employees_by_project(3)] == [1]


def test_removing_contact_deletes_it(service):
    service.add_employee("Joan", "Garcia", 35000)
    contact = service.add_contact_to_employee(1, "EMAIL", "joan@x.cat")

    assert service.remove_contact_from_employee(1, contact.pk) is True
    assert service.get_by_id(Contact, contact.pk) is None
    assert service.get_by_id(Employee, 1) is not None


def test_removing_someone_elses_contact_is_a_no_op(service):
    service.add_employee("Joan", "Garcia", 35000)
    service.add_employee("Marta", "Ferrer", 42000)
    contact = service.add_contact_to_employee(2, "EMAIL", "marta@x.cat")

    assert service.remove_contact_from_employee(1, contact.pk) is False
    assert service.remove_contact_from_employee(1, 99) is False
    assert service.get_by_id(Contact, contact.pk).employee.pk == 2


def test_unknown_project_ids_are_skipped_by_default(service, caplog):
    service.add_employee("Joan", "Garcia", 35000)
    service.add_project("Web")
    caplog.set_level(logging.WARNING, logger="personnel")

    employee = service.update_employee_projects(1, [1, 7])

    assert employee.projects.ids() == [1]
    assert "Skipping unknown project ids [7]" in caplog.text


def test_unknown_project_ids_fail_in_strict_mode(tmp_path):
    settings = Settings(dsn=f"sqlite:///{tmp_path / 'strict.db'}", strict_references=True)
    with Database(settings) as database:
        database.create_schema()
        service = PersonnelService(database)
        service.add_employee("Joan", "Garcia", 35000)
        service.add_project("Web")
        service.update_employee_projects(1, [1])

        with pytest.raises(InvalidReference) as excinfo:
            service.update_employee_projects(1, [7])

        assert excinfo.value.pk == 7
        assert [e.pk for e in service.find_employees_by_project(1)] == [1]


def test_missing_targets_are_reported_not_raised(service, caplog):
    caplog.set_level(logging.WARNING, logger="personnel")
    assert service.update_employee(9, "A", "B", 1) is None
    assert service.update_employee_projects(9, [1]) is None
    assert service.add_contact_to_employee(9, "EMAIL", "x@y.z") is None
    assert service.find_employees_by_project(9) == []
    assert service.get_by_id(Employee, 9) is None
    assert service.delete(Project, 9) is False
    assert "Employee id=9 not found" in caplog.text


def test_updates_change_stored_fields(service):
    service.add_employee("Joan", "Garcia", 35000)
    contact = service.add_contact_to_employee(1, "EMAIL", "joan@x.cat")
    service.add_project("Web")

    service.update_employee(1, "Joan", "Garcia i Puig", 36000)
    service.update_contact(contact.pk, "EMAIL", "jgarcia@x.cat", "personal")
    service.update_project(1, "Web", "public site", "TANCAT")

    employee = service.get_by_id(Employee, 1)
    assert (employee.last_name, employee.salary) == ("Garcia i Puig", 36000)
    assert [c.value for c in employee.contacts] == ["jgarcia@x.cat"]
    assert service.get_by_id(Project, 1).status == "TANCAT"


def test_contact_searches(service):
    service.add_employee("Joan", "Garcia", 35000)
    service.add_employee("Marta", "Ferrer", 42000)
    service.add_contact_to_employee(1, "EMAIL", "joan@x.cat")
    service.add_contact_to_employee(1, "EMAIL", "joan@home.cat")
    service.add_contact_to_employee(2, "PHONE", "666111222")

    assert [e.pk for e in service.find_employees_by_contact_type("EMAIL")] == [1]
    assert [e.pk for e in service.find_employees_by_contact_type("PHONE")] == [2]

    emails = service.find_contacts_by_employee_and_type(1, "EMAIL")
    assert [c.value for c in emails] == ["joan@x.cat", "joan@home.cat"]
    assert service.find_contacts_by_employee_and_type(2, "EMAIL") == []


def test_raw_passthroughs(service):
    service.add_employee("Joan", "Garcia", 35000)
    service.add_employee("Marta", "Ferrer", 42000)

    assert service.query_update("UPDATE employees SET salary = ? WHERE salary < ?", [40000, 40000]) == 1
    rows = service.query_table("SELECT first_name, salary FROM employees ORDER BY id")
    assert rows == [
        {"first_name": "Joan", "salary": 40000},
        {"first_name": "Marta", "salary": 42000},
    ]
    assert [e.first_name for e in service.list_all(Employee, order_by=("first_name",))] == ["Joan", "Marta"]


def test_works_on_in_memory_store(memory_database):
    service = PersonnelService(memory_database)
    service.add_employee("Joan", "Garcia", 35000)
    service.add_contact_to_employee(1, "EMAIL", "joan@x.cat")
    assert memory_database.pool.size == 1
    assert [c.value for c in service.get_by_id(Employee, 1).contacts] == ["joan@x.cat"]
