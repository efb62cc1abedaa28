"""
Employees, their contacts and the projects they work on.
"""

from __future__ import annotations

from .core import Cascade, Entity, IntegerField, ManyToMany, ManyToOne, OneToMany, StringField
from .relations import rules


class Employee(Entity):
    first_name = StringField(max_length=100, nullable=False)
    last_name = StringField(max_length=100, nullable=False)
    salary = IntegerField(nullable=False, default=0)

    contacts = OneToMany(
        "Contact",
        mapped_by="employee",
        cascade=Cascade.ALL,
        orphan_removal=True,
    )
    projects = ManyToMany(
        "Project",
        link_table="employee_project",
        join_column="employee_id",
        inverse_join_column="project_id",
        cascade=Cascade.PERSIST | Cascade.MERGE,
    )

    class Meta:
        table = "employees"
        business_key = ("first_name", "last_name")

    def add_contact(self, contact: "Contact") -> None:
        rules.link_contact(self, contact)

    def remove_contact(self, contact: "Contact") -> None:
        rules.unlink_contact(self, contact)

    def add_project(self, project: "Project") -> None:
        rules.link_project(self, project)

    def remove_project(self, project: "Project") -> None:
        rules.unlink_project(self, project)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class Contact(Entity):
    contact_type = StringField(max_length=50, nullable=False)
    value = StringField(max_length=255, nullable=False)
    description = StringField(max_length=255, nullable=True)
    employee = ManyToOne(Employee, inverse="contacts", db_column="employee_id")

    class Meta:
        table = "contacts"
        business_key = ("contact_type", "value", "employee")


class Project(Entity):
    name = StringField(max_length=200, nullable=False)
    description = StringField(max_length=1000, nullable=True)
    status = StringField(max_length=50, nullable=True)

    # Inverse side: edges are written from Employee.projects only.
    employees = ManyToMany(Employee, mapped_by="projects")

    class Meta:
        table = "projects"
        business_key = ("name",)


MODELS = (Employee, Contact, Project)
