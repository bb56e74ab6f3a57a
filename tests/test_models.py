from dentalcare.models import (
    DENTAL_TEMPLATES,
    LOWER_TEETH,
    UPPER_TEETH,
    Patient,
    PatientUpdate,
    ToothUpdate,
    find_template,
    new_id,
)


def test_update_reports_only_set_fields():
    assert PatientUpdate().changes() == {}
    assert PatientUpdate(first_name="Anna", middle_name=None).changes() == {
        "first_name": "Anna",
        "middle_name": None,
    }
    assert ToothUpdate(files=[]).changes() == {"files": []}


def test_from_dict_is_tolerant():
    patient = Patient.from_dict({
        "id": "p1",
        "first_name": "Anna",
        "last_name": "K",
        "legacy_field": True,
        "dental_chart": [{"tooth_number": 3, "files": [{"id": "f", "name": "a", "mime_type": "t", "data": ""}]}],
    })
    assert patient.visits == []
    assert patient.dental_chart[0].files[0].id == "f"
    assert patient.full_name == "Anna K"


def test_catalogs():
    assert sorted(UPPER_TEETH + LOWER_TEETH) == list(range(1, 33))
    assert len(DENTAL_TEMPLATES) == 12
    assert find_template("crown").label == "Crown"
    assert find_template("nope") is None


def test_new_id_prefix_and_uniqueness():
    ids = {new_id("patient") for _ in range(100)}
    assert len(ids) == 100
    assert all(value.startswith("patient-") for value in ids)
