"""
Utility helpers for running the staff directory example end-to-end.
"""

from __future__ import annotations

from typing import Any, Dict, List

from personnel import Database, Employee, PersonnelService, Project, Settings

EMPLOYEES = [
    ("Joan", "Garcia", 35000),
    ("Marta", "Ferrer", 42000),
    ("Pere", "Soler", 38000),
    ("Laia", "Puig", 45000),
]

CONTACTS = {
    "Joan": [
        ("EMAIL", "joan.garcia@empresa.cat", "Corporate email"),
        ("PHONE", "666111222", "Mobile"),
        ("ADDRESS", "Carrer Major 1, Barcelona", "Home address"),
    ],
    "Marta": [
        ("EMAIL", "marta.ferrer@empresa.cat", "Corporate email"),
        ("EMAIL", "martaf@gmail.com", "Personal email"),
        ("PHONE", "666333444", "Mobile"),
    ],
    "Pere": [
        ("EMAIL", "pere.soler@empresa.cat", "Corporate email"),
        ("PHONE", "666555666", "Office phone"),
    ],
    "Laia": [
        ("EMAIL", "laia.puig@empresa.cat", "Corporate email"),
        ("PHONE", "666777888", "Mobile"),
        ("ADDRESS", "Avinguda Diagonal 100, Barcelona", "Office address"),
    ],
}

PROJECTS = [
    ("Corporate Web", "Responsive web development", "ACTIVE"),
    ("Mobile App", "Android/iOS application", "ACTIVE"),
    ("Intranet", "Internal portal", "PLANNED"),
]

ASSIGNMENTS = {
    "Joan": ["Corporate Web", "Intranet"],
    "Marta": ["Corporate Web", "Mobile App"],
    "Pere": ["Mobile App"],
    "Laia": ["Mobile App", "Intranet"],
}


def bootstrap_database(dsn: str = "sqlite:///:memory:") -> Database:
    """
    Create a database handle and make sure the staff schema exists.
    """

    database = Database(Settings(dsn=dsn))
    database.create_schema()
    return database


def seed_sample_data(service: PersonnelService) -> Dict[str, List[Dict[str, Any]]]:
    """
    Populate employees, their contacts, projects and project assignments.
    """

    employees: Dict[str, Employee] = {}
    for first_name, last_name, salary in EMPLOYEES:
        employees[first_name] = service.add_employee(first_name, last_name, salary)

    for first_name, contacts in CONTACTS.items():
        for contact_type, value, description in contacts:
            service.add_contact_to_employee(employees[first_name].pk, contact_type, value, description)

    projects: Dict[str, Project] = {}
    for name, description, status in PROJECTS:
        projects[name] = service.add_project(name, description, status)

    for first_name, names in ASSIGNMENTS.items():
        service.update_employee_projects(employees[first_name].pk, [projects[n].pk for n in names])

    return {
        "employees": [e.to_dict() for e in service.list_all(Employee, order_by=("id",))],
        "projects": [p.to_dict() for p in service.list_all(Project, order_by=("id",))],
    }


def project_roster(service: PersonnelService) -> List[Dict[str, Any]]:
    """
    One entry per project with the full names of the employees working on it.
    """

    roster: List[Dict[str, Any]] = []
    for project in service.list_all(Project, order_by=("id",)):
        members = service.find_employees_by_project(project.pk)
        roster.append(
            {
                "project": project.name,
                "status": project.status,
                "employees": [member.full_name for member in members],
            }
        )
    return roster


def run_demo(dsn: str = "sqlite:///:memory:") -> Dict[str, Any]:
    """
    Bootstrap the database, seed data and return the views the demo prints.
    """

    database = bootstrap_database(dsn=dsn)
    try:
        service = PersonnelService(database)
        seeded = seed_sample_data(service)
        return {
            "employees": seeded["employees"],
            "roster": project_roster(service),
            "with_phone": [e.full_name for e in service.find_employees_by_contact_type("PHONE")],
        }
    finally:
        database.close()


if __name__ == "__main__":
    import json

    print(json.dumps(run_demo(), indent=2, ensure_ascii=False))
