"""
Staff management operations over employees, contacts and projects.

Every method is one unit of work: it either commits completely or rolls
back and raises a :class:`~personnel.errors.PersonnelError`. Missing ids are
logged at WARNING and reported through ``None``, ``False`` or an empty list.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Sequence, Type

from .core.model import Entity
from .domain import Contact, Employee, Project
from .errors import InvalidReference
from .persistence import Database, Repository, Session
from .query import Q
from .relations import rules
from .utils import get_logger


class PersonnelService:
    def __init__(self, database: Database) -> None:
        self.database = database
        self.repository = Repository(database)
        self.logger = get_logger("service")

    def _run(self, work):
        return self.database.run(work).unwrap()

    # ------------------------------------------------------------------ #
    # Employees
    # ------------------------------------------------------------------ #
    def add_employee(self, first_name: str, last_name: str, salary: int) -> Employee:
        return self.repository.create(Employee(first_name=first_name, last_name=last_name, salary=salary))

    def update_employee(
        self, employee_id: int, first_name: str, last_name: str, salary: int
    ) -> Optional[Employee]:
        def mutate(employee: Employee) -> None:
            employee.first_name = first_name
            employee.last_name = last_name
            employee.salary = salary

        return self.repository.update(Employee, employee_id, mutate)

    def update_employee_projects(
        self, employee_id: int, project_ids: Iterable[int]
    ) -> Optional[Employee]:
        """
        Make ``project_ids`` the exact project set of the employee.

        Ids that do not resolve are skipped with a warning, or fail the whole
        operation with :class:`InvalidReference` when the database runs with
        ``strict_references``.
        """

        requested = list(project_ids)

        def work(session: Session) -> Optional[Employee]:
            employee = session.get(Employee, employee_id)
            if employee is None:
                return None
            projects, missing = session.resolve(Project, requested)
            if missing:
                if session.strict_references:
                    raise InvalidReference("Project", missing[0])
                self.logger.warning("Skipping unknown project ids %s for employee %s", missing, employee_id)
            added, removed = rules.replace_project_links(employee, projects)
            session.flush()
            self.logger.info(
                "Projects of employee %s updated: +%d -%d", employee_id, len(added), len(removed)
            )
            return session.initialize(employee)

        employee = self._run(work)
        if employee is None:
            self.logger.warning("Employee id=%s not found", employee_id)
        return employee

    def find_employees_by_contact_type(self, contact_type: str) -> List[Employee]:
        found = self.repository.find_by_association(
            Employee, "contacts", order_by=("id",), contact_type=contact_type
        )
        self.logger.info("Found %d employee(s) with contact type %s", len(found), contact_type)
        return found

    def find_employees_by_project(self, project_id: int) -> List[Employee]:
        def work(session: Session) -> Optional[List[Employee]]:
            project = session.get(Project, project_id)
            if project is None:
                return None
            return [session.initialize(employee) for employee in sorted(project.employees, key=_by_pk)]

        employees = self._run(work)
        if employees is None:
            self.logger.warning("Project id=%s not found", project_id)
            return []
        self.logger.info("Found %d employee(s) on project %s", len(employees), project_id)
        return employees

    # ------------------------------------------------------------------ #
    # Contacts
    # ------------------------------------------------------------------ #
    def add_contact_to_employee(
        self,
        employee_id: int,
        contact_type: str,
        value: str,
        description: Optional[str] = None,
    ) -> Optional[Contact]:
        def work(session: Session) -> Optional[Contact]:
            employee = session.get(Employee, employee_id)
            if employee is None:
                return None
            contact = Contact(contact_type=contact_type, value=value, description=description)
            rules.link_contact(employee, contact)
            session.flush()
            session.initialize(employee)
            return contact

        contact = self._run(work)
        if contact is None:
            self.logger.warning("Employee id=%s not found; contact not added", employee_id)
        else:
            self.logger.info("Contact %s added to employee %s", contact.pk, employee_id)
        return contact

    def remove_contact_from_employee(self, employee_id: int, contact_id: int) -> bool:
        """
        Detach the contact from its employee; orphan removal deletes it.
        """

        def work(session: Session) -> bool:
            employee = session.get(Employee, employee_id)
            contact = session.get(Contact, contact_id)
            if employee is None or contact is None:
                return False
            return rules.unlink_contact(employee, contact)

        removed = self._run(work)
        if removed:
            self.logger.info("Contact %s removed from employee %s", contact_id, employee_id)
        else:
            self.logger.warning("Employee %s has no contact %s", employee_id, contact_id)
        return removed

    def update_contact(
        self,
        contact_id: int,
        contact_type: str,
        value: str,
        description: Optional[str] = None,
    ) -> Optional[Contact]:
        def mutate(contact: Contact) -> None:
            contact.contact_type = contact_type
            contact.value = value
            contact.description = description

        return self.repository.update(Contact, contact_id, mutate)

    def find_contacts_by_employee_and_type(self, employee_id: int, contact_type: str) -> List[Contact]:
        found = self.repository.list_all(
            Contact,
            where=Q(employee=employee_id, contact_type=contact_type),
            order_by=("id",),
        )
        self.logger.info(
            "Found %d contact(s) of type %s for employee %s", len(found), contact_type, employee_id
        )
        return found

    # ------------------------------------------------------------------ #
    # Projects
    # ------------------------------------------------------------------ #
    def add_project(self, name: str, description: Optional[str] = None, status: Optional[str] = None) -> Project:
        return self.repository.create(Project(name=name, description=description, status=status))

    def update_project(
        self,
        project_id: int,
        name: str,
        description: Optional[str] = None,
        status: Optional[str] = None,
    ) -> Optional[Project]:
        def mutate(project: Project) -> None:
            project.name = name
            project.description = description
            project.status = status

        return self.repository.update(Project, project_id, mutate)

    # ------------------------------------------------------------------ #
    # Generic passthroughs
    # ------------------------------------------------------------------ #
    def get_by_id(self, model: Type[Entity], pk: int) -> Optional[Entity]:
        found = self.repository.get_by_id(model, pk)
        if found is None:
            self.logger.warning("%s id=%s not found", model.__name__, pk)
        return found

    def delete(self, model: Type[Entity], pk: int) -> bool:
        return self.repository.delete(model, pk)

    def list_all(self, model: Type[Entity], where: Q | None = None, order_by: Sequence[str] = ()) -> List[Entity]:
        return self.repository.list_all(model, where=where, order_by=order_by)

    def query_table(self, sql: str, params: Sequence[Any] = ()) -> List[Dict[str, Any]]:
        rows = self.repository.raw_query(sql, params)
        self.logger.info("Raw query returned %d row(s)", len(rows))
        return rows

    def query_update(self, sql: str, params: Sequence[Any] = ()) -> int:
        return self.repository.raw_update(sql, params)


def _by_pk(entity: Entity) -> Any:
    return entity.pk
