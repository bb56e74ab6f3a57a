import pytest

from dentalcare.application import ClinicApplication
from dentalcare.config import ConfigManager
from dentalcare.models import ToothUpdate


@pytest.fixture
def config(tmp_path):
    config = ConfigManager(tmp_path / "settings.json")
    config.update_clinic(name="Smile Studio")
    config.save()
    return config


@pytest.fixture
def app(config, clock):
    application = ClinicApplication(config, clock=clock)
    yield application
    application.close()


def test_builds_stores_on_configured_path(app, config):
    assert app.store.path == str(config.resolve_store_path())
    assert app.clinic.clinic_name == "Smile Studio"
    assert app.auth.login("admin", "admin123").success


def test_state_survives_restart(config, clock):
    with ClinicApplication(config, clock=clock) as first:
        patient = first.clinic.add_patient("Anna", "Kovalenko", "0501234567", "doctor-1")
        first.clinic.update_tooth_record(patient.id, 14, ToothUpdate(description="Crown needed"))
        first.clinic.set_selected_patient_id(patient.id)
        first.auth.login("verkhovskyi", "doctor123")

    with ClinicApplication(config, clock=clock) as second:
        assert second.clinic.get_patient(patient.id).dental_chart[0].description == "Crown needed"
        assert second.clinic.selected_patient_id == patient.id
        assert second.auth.current_user.username == "verkhovskyi"


def test_start_runs_backup_on_loop(app, loop):
    app.start(loop)
    assert app.backups.backups() == ["backup_2026-01-05"]
    assert app.backups.running

    app.close()
    assert loop.pending == {}


def test_backup_policy_comes_from_settings(tmp_path, clock):
    config = ConfigManager(tmp_path / "settings.json")
    config.update_storage(backup_interval_minutes=15, backup_keep=2)
    with ClinicApplication(config, clock=clock) as app:
        assert app.backups.interval_ms == 15 * 60 * 1000
        assert app.backups.keep == 2


def test_export_patient_chart(app, config):
    path = app.export_patient_chart("patient-1")
    assert path.parent == config.resolve_output_dir()
    assert path.name.startswith("chart_Williams_John_")
    assert path.read_bytes().startswith(b"%PDF")


def test_export_unknown_patient(app):
    assert app.export_patient_chart("nobody") is None


def test_remote_tables_disabled_by_default(app):
    assert app.remote_tables() is None
