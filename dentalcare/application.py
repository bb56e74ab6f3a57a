"""Wire the stores together for one application run."""
from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Optional

from .auth import AuthStore
from .backup import BackupScheduler
from .clinic import ClinicStore
from .config import ConfigManager
from .models import utc_now
from .remote import RemoteClinicTables
from .report import PatientChartPDFGenerator
from .storage import KeyValueStore

logger = logging.getLogger(__name__)


class ClinicApplication:
    """Owns the key-value store and every store built on top of it.

    Presentation code receives this object (or its ``auth`` and ``clinic``
    attributes) explicitly. Call :meth:`close` at shutdown, or use the
    instance as a context manager.
    """

    def __init__(
        self,
        config: ConfigManager,
        *,
        store: Optional[KeyValueStore] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.config = config
        settings = config.settings
        self.store = store if store is not None else KeyValueStore(config.resolve_store_path())
        self.auth = AuthStore(self.store, clock=clock)
        self.clinic = ClinicStore(self.store, default_clinic_name=settings.clinic.name, clock=clock)
        self.backups = BackupScheduler(
            self.store,
            self.clinic.snapshot,
            interval_minutes=settings.storage.backup_interval_minutes,
            max_age_days=settings.storage.backup_max_age_days,
            keep=settings.storage.backup_keep,
            clock=clock,
        )
        logger.info("Opened clinic store at %s", self.store.path)

    def __enter__(self) -> "ClinicApplication":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def start(self, loop: Any) -> None:
        """Begin backup checks on the UI event loop."""
        self.backups.start(loop)

    def close(self) -> None:
        self.backups.stop()
        self.store.close()

    def export_patient_chart(self, patient_id: str) -> Optional[Path]:
        patient = self.clinic.get_patient(patient_id)
        if patient is None:
            return None
        generator = PatientChartPDFGenerator(self.config.resolve_output_dir())
        clinic_info = self.config.settings.clinic
        if self.clinic.clinic_name and self.clinic.clinic_name != clinic_info.name:
            clinic_info = replace(clinic_info, name=self.clinic.clinic_name)
        path = generator.generate(clinic_info, patient, self.clinic.get_doctor(patient.doctor_id))
        logger.info("Exported chart for %s to %s", patient_id, path)
        return path

    def remote_tables(self) -> Optional[RemoteClinicTables]:
        if not self.config.settings.remote.enabled:
            return None
        return RemoteClinicTables(**self.config.mysql_settings(), cache=self.store)
