"""Configuration helpers for the clinic desk application."""
from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict

logger = logging.getLogger(__name__)


@dataclass
class ClinicInfo:
    name: str = "DentalCare Clinic"
    address: str = ""
    phone: str = ""
    email: str = ""


@dataclass
class StorageInfo:
    store_path: str = "data/clinic_store.sqlite"
    backup_interval_minutes: int = 60
    backup_max_age_days: int = 7
    backup_keep: int = 4


@dataclass
class RemoteDatabaseInfo:
    enabled: bool = False
    mysql_host: str = "localhost"
    mysql_port: int = 3306
    mysql_user: str = ""
    mysql_password: str = ""
    mysql_database: str = "dentalcare"


@dataclass
class ExportOptions:
    output_directory: str = "exports"


@dataclass
class AppSettings:
    clinic: ClinicInfo = field(default_factory=ClinicInfo)
    storage: StorageInfo = field(default_factory=StorageInfo)
    remote: RemoteDatabaseInfo = field(default_factory=RemoteDatabaseInfo)
    export: ExportOptions = field(default_factory=ExportOptions)


def _merge(defaults: Any, data: Dict[str, Any]) -> Dict[str, Any]:
    known = asdict(defaults)
    known.update({key: value for key, value in (data or {}).items() if key in known})
    return known


class ConfigManager:
    """Load and persist application configuration."""

    def __init__(self, config_path: Path) -> None:
        self.config_path = Path(config_path)
        self.settings = AppSettings()
        self.load()

    def load(self) -> None:
        if not self.config_path.exists():
            logger.info("No settings file at %s, using defaults", self.config_path)
            return
        data = json.loads(self.config_path.read_text(encoding="utf-8"))
        self.settings = self._from_dict(data)
        self._normalise_paths()

    def save(self) -> None:
        self.config_path.parent.mkdir(parents=True, exist_ok=True)
        self._normalise_paths()
        payload = self._to_dict()
        self.config_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")

    def _to_dict(self) -> Dict[str, Any]:
        return {
            "clinic": asdict(self.settings.clinic),
            "storage": asdict(self.settings.storage),
            "remote": asdict(self.settings.remote),
            "export": asdict(self.settings.export),
        }

    def _from_dict(self, data: Dict[str, Any]) -> AppSettings:
        return AppSettings(
            clinic=ClinicInfo(**_merge(ClinicInfo(), data.get("clinic", {}))),
            storage=StorageInfo(**_merge(StorageInfo(), data.get("storage", {}))),
            remote=RemoteDatabaseInfo(**_merge(RemoteDatabaseInfo(), data.get("remote", {}))),
            export=ExportOptions(**_merge(ExportOptions(), data.get("export", {}))),
        )

    def _normalise_paths(self) -> None:
        self.settings.export.output_directory = self._normalise_output_directory(
            self.settings.export.output_directory
        )

    def _normalise_output_directory(self, value: str) -> str:
        """Keep the export folder relative to the settings file."""
        candidate = Path((value or "").strip())
        if candidate.is_absolute():
            try:
                candidate = candidate.resolve(strict=False).relative_to(self.config_path.parent.resolve())
            except ValueError:
                candidate = Path(candidate.name)
        parts = [part for part in candidate.parts if part not in (".", "..")]
        return Path(*parts).as_posix() if parts else "exports"

    def update_clinic(self, **kwargs: Any) -> None:
        for key, value in kwargs.items():
            if hasattr(self.settings.clinic, key):
                setattr(self.settings.clinic, key, value)

    def update_storage(self, **kwargs: Any) -> None:
        for key, value in kwargs.items():
            if hasattr(self.settings.storage, key):
                setattr(self.settings.storage, key, value)

    def update_remote(self, **kwargs: Any) -> None:
        for key, value in kwargs.items():
            if hasattr(self.settings.remote, key):
                setattr(self.settings.remote, key, value)

    def update_export(self, **kwargs: Any) -> None:
        for key, value in kwargs.items():
            if hasattr(self.settings.export, key):
                if key == "output_directory":
                    value = self._normalise_output_directory(str(value))
                setattr(self.settings.export, key, value)

    def resolve_store_path(self) -> Path:
        store_path = Path(self.settings.storage.store_path)
        if not store_path.is_absolute():
            store_path = self.config_path.parent / store_path
        return store_path

    def resolve_output_dir(self) -> Path:
        output_value = self._normalise_output_directory(self.settings.export.output_directory)
        if output_value != self.settings.export.output_directory:
            self.settings.export.output_directory = output_value
        out_dir = (self.config_path.parent / Path(output_value)).resolve()
        out_dir.mkdir(parents=True, exist_ok=True)
        return out_dir

    def mysql_settings(self) -> Dict[str, Any]:
        db = self.settings.remote
        return {
            "host": db.mysql_host,
            "port": db.mysql_port,
            "user": db.mysql_user,
            "password": db.mysql_password,
            "database": db.mysql_database,
        }
