"""Data access for the clinic's remote MySQL tables.

This layer mirrors patients, appointments and tooth treatments kept in a
shared MySQL database. It is not used by the local stores; the application
only builds it on request when the remote database is enabled in settings.
"""
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Sequence

import pymysql
from pymysql import err as pymysql_errors
from pymysql.cursors import DictCursor

from .storage import KeyValueStore

logger = logging.getLogger(__name__)

PATIENTS_CACHE_KEY = "patients_cache"


class RemoteTableError(Exception):
    """Raised when the remote database cannot be reached or rejects a query."""


@dataclass(frozen=True)
class RemotePatient:
    id: str
    full_name: str
    phone: str
    birth_date: Optional[str]
    leading_doctor: Optional[str]


@dataclass(frozen=True)
class Appointment:
    id: str
    patient_id: str
    visit_date: str
    notes: Optional[str]


@dataclass(frozen=True)
class ToothTreatment:
    id: str
    patient_id: str
    tooth: str
    reason: str
    treatment_date: str


def _to_text(value) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


class RemoteClinicTables:
    """Wrapper around the remote MySQL tables with CRUD helpers."""

    def __init__(
        self,
        *,
        host: str = "localhost",
        port: int = 3306,
        user: str,
        password: str,
        database: str,
        charset: str = "utf8mb4",
        cache: Optional[KeyValueStore] = None,
    ) -> None:
        self._connection_kwargs = {
            "host": host,
            "port": int(port),
            "user": user,
            "password": password,
            "database": database,
        }
        self.cache = cache
        self._conn = self._connect_with_charset(charset)

    def close(self) -> None:
        if getattr(self, "_conn", None):
            try:
                self._conn.close()
            finally:
                self._conn = None

    def _connect_with_charset(self, charset: str):
        try:
            return pymysql.connect(
                charset=charset,
                cursorclass=DictCursor,
                **self._connection_kwargs,
            )
        except pymysql_errors.OperationalError as exc:
            error_code = exc.args[0] if exc.args else None
            message = str(exc)
            if charset == "utf8mb4" and (error_code == 1115 or "Unknown character set" in message):
                try:
                    return pymysql.connect(
                        charset="utf8",
                        cursorclass=DictCursor,
                        **self._connection_kwargs,
                    )
                except pymysql_errors.MySQLError as fallback_exc:
                    raise RemoteTableError(
                        "Unable to connect to MySQL using utf8mb4; fallback to utf8 failed"
                    ) from fallback_exc
            raise RemoteTableError(f"Unable to connect to MySQL: {exc}") from exc
        except pymysql_errors.MySQLError as exc:
            raise RemoteTableError(f"Unable to connect to MySQL: {exc}") from exc

    def _ensure_connection(self) -> None:
        if not getattr(self, "_conn", None):
            raise RemoteTableError("Database connection not available")
        try:
            self._conn.ping(reconnect=True)
        except pymysql_errors.MySQLError as exc:
            raise RemoteTableError(f"Lost MySQL connection: {exc}") from exc

    def _fetch(self, sql: str, params: Sequence[Any] = ()) -> List[Dict[str, Any]]:
        self._ensure_connection()
        try:
            with self._conn.cursor() as cursor:
                cursor.execute(sql, tuple(params))
                return list(cursor.fetchall())
        except pymysql_errors.MySQLError as exc:
            raise RemoteTableError(str(exc)) from exc

    def _execute(self, sql: str, params: Sequence[Any] = ()) -> int:
        self._ensure_connection()
        cursor = self._conn.cursor()
        try:
            self._conn.begin()
            affected = cursor.execute(sql, tuple(params))
            self._conn.commit()
            return affected
        except pymysql_errors.MySQLError as exc:
            self._conn.rollback()
            raise RemoteTableError(str(exc)) from exc
        finally:
            cursor.close()

    # ------------------------------------------------------------------
    # Patients

    def patients(self) -> List[RemotePatient]:
        rows = self._fetch(
            "SELECT id, full_name, phone, birth_date, leading_doctor "
            "FROM patients ORDER BY created_at DESC"
        )
        patients = [
            RemotePatient(
                id=str(row["id"]),
                full_name=row.get("full_name") or "",
                phone=row.get("phone") or "",
                birth_date=_to_text(row.get("birth_date")),
                leading_doctor=_to_text(row.get("leading_doctor")),
            )
            for row in rows
        ]
        if self.cache is not None:
            self.cache.write(PATIENTS_CACHE_KEY, [asdict(patient) for patient in patients])
        return patients

    def cached_patients(self) -> List[RemotePatient]:
        """Last patient list fetched, served from the local cache."""
        if self.cache is None:
            return []
        rows = self.cache.read(PATIENTS_CACHE_KEY, [])
        try:
            return [RemotePatient(**row) for row in rows]
        except TypeError as exc:
            logger.error("Discarding unreadable patient cache: %s", exc)
            return []

    def add_patient(
        self,
        full_name: str,
        phone: str,
        birth_date: Optional[str] = None,
        leading_doctor: Optional[str] = None,
    ) -> None:
        self._execute(
            "INSERT INTO patients (full_name, phone, birth_date, leading_doctor) VALUES (%s, %s, %s, %s)",
            (full_name, phone, birth_date, leading_doctor),
        )

    def update_patient(self, patient_id: str, **fields: Any) -> None:
        allowed = ("full_name", "phone", "birth_date", "leading_doctor")
        columns = [name for name in allowed if name in fields]
        if not columns:
            return
        assignments = ", ".join(f"{name} = %s" for name in columns)
        params = [fields[name] for name in columns] + [patient_id]
        self._execute(f"UPDATE patients SET {assignments} WHERE id = %s", params)

    def delete_patient(self, patient_id: str) -> None:
        self._execute("DELETE FROM patients WHERE id = %s", (patient_id,))

    # ------------------------------------------------------------------
    # Appointments

    def appointments(self, patient_id: Optional[str] = None) -> List[Appointment]:
        sql = "SELECT id, patient_id, visit_date, notes FROM appointments"
        params: List[Any] = []
        if patient_id:
            sql += " WHERE patient_id = %s"
            params.append(patient_id)
        sql += " ORDER BY visit_date DESC"
        return [
            Appointment(
                id=str(row["id"]),
                patient_id=str(row["patient_id"]),
                visit_date=_to_text(row.get("visit_date")) or "",
                notes=row.get("notes"),
            )
            for row in self._fetch(sql, params)
        ]

    def add_appointment(self, patient_id: str, visit_date: str, notes: Optional[str] = None) -> None:
        self._execute(
            "INSERT INTO appointments (patient_id, visit_date, notes) VALUES (%s, %s, %s)",
            (patient_id, visit_date, notes),
        )

    def delete_appointment(self, appointment_id: str) -> None:
        self._execute("DELETE FROM appointments WHERE id = %s", (appointment_id,))

    # ------------------------------------------------------------------
    # Tooth treatments

    def treatments(self, patient_id: Optional[str] = None) -> List[ToothTreatment]:
        sql = "SELECT id, patient_id, tooth, reason, treatment_date FROM tooth_treatments"
        params: List[Any] = []
        if patient_id:
            sql += " WHERE patient_id = %s"
            params.append(patient_id)
        sql += " ORDER BY treatment_date DESC"
        return [
            ToothTreatment(
                id=str(row["id"]),
                patient_id=str(row["patient_id"]),
                tooth=str(row.get("tooth") or ""),
                reason=row.get("reason") or "",
                treatment_date=_to_text(row.get("treatment_date")) or "",
            )
            for row in self._fetch(sql, params)
        ]

    def add_treatment(self, patient_id: str, tooth: str, reason: str, treatment_date: str) -> None:
        self._execute(
            "INSERT INTO tooth_treatments (patient_id, tooth, reason, treatment_date) VALUES (%s, %s, %s, %s)",
            (patient_id, tooth, reason, treatment_date),
        )

    def delete_treatment(self, treatment_id: str) -> None:
        self._execute("DELETE FROM tooth_treatments WHERE id = %s", (treatment_id,))
