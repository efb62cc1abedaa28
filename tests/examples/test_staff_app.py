from examples.staff_app.demo import bootstrap_database, project_roster, run_demo, seed_sample_data
from personnel import PersonnelService


def test_run_demo_builds_roster():
    result = run_demo()

    assert [employee["first_name"] for employee in result["employees"]] == ["Joan", "Marta", "Pere", "Laia"]
    assert result["employees"][0]["contacts"] == [1, 2, 3]
    assert result["employees"][0]["projects"] == [1, 3]
    assert result["roster"] == [
        {"project": "Corporate Web", "status": "ACTIVE", "employees": ["Joan Garcia", "Marta Ferrer"]},
        {"project": "Mobile App", "status": "ACTIVE", "employees": ["Marta Ferrer", "Pere Soler", "Laia Puig"]},
        {"project": "Intranet", "status": "PLANNED", "employees": ["Joan Garcia", "Laia Puig"]},
    ]
    assert result["with_phone"] == ["Joan Garcia", "Marta Ferrer", "Pere Soler", "Laia Puig"]


def test_seeded_file_database_supports_follow_up_changes(tmp_path):
    database = bootstrap_database(f"sqlite:///{tmp_path / 'staff.db'}")
    try:
        service = PersonnelService(database)
        seeded = seed_sample_data(service)
        assert len(seeded["projects"]) == 3

        service.update_employee_projects(1, [2])
        roster = {entry["project"]: entry["employees"] for entry in project_roster(service)}
        assert "Joan Garcia" in roster["Mobile App"]
        assert "Joan Garcia" not in roster["Corporate Web"]
    finally:
        database.close()
