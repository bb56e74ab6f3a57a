from datetime import date

import pytest
from pymysql import err as pymysql_errors

from dentalcare import remote
from dentalcare.remote import RemoteClinicTables, RemotePatient, RemoteTableError


class FakeCursor:
    def __init__(self, conn):
        self.conn = conn

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def execute(self, sql, params=()):
        self.conn.executed.append((sql, params))
        if self.conn.fail_with is not None:
            raise self.conn.fail_with
        return 1

    def fetchall(self):
        return self.conn.rows

    def close(self):
        pass


class FakeConnection:
    def __init__(self, **kwargs):
        self.kwargs = kwargs
        self.rows = []
        self.executed = []
        self.fail_with = None
        self.committed = 0
        self.rolled_back = 0
        self.closed = False

    def cursor(self):
        return FakeCursor(self)

    def ping(self, reconnect=False):
        pass

    def begin(self):
        pass

    def commit(self):
        self.committed += 1

    def rollback(self):
        self.rolled_back += 1

    def close(self):
        self.closed = True


@pytest.fixture
def connections(monkeypatch):
    made = []

    def connect(**kwargs):
        conn = FakeConnection(**kwargs)
        made.append(conn)
        return conn

    monkeypatch.setattr(remote.pymysql, "connect", connect)
    return made


@pytest.fixture
def tables(connections, kv):
    return RemoteClinicTables(user="clinic", password="pw", database="dentalcare", cache=kv)


def test_connects_with_utf8mb4(tables, connections):
    assert connections[0].kwargs["charset"] == "utf8mb4"
    assert connections[0].kwargs["database"] == "dentalcare"


def test_falls_back_to_utf8(monkeypatch):
    calls = []

    def connect(**kwargs):
        calls.append(kwargs["charset"])
        if kwargs["charset"] == "utf8mb4":
            raise pymysql_errors.OperationalError(1115, "Unknown character set: 'utf8mb4'")
        return FakeConnection(**kwargs)

    monkeypatch.setattr(remote.pymysql, "connect", connect)
    RemoteClinicTables(user="u", password="p", database="d")
    assert calls == ["utf8mb4", "utf8"]


def test_connection_failure_is_wrapped(monkeypatch):
    def connect(**kwargs):
        raise pymysql_errors.OperationalError(2003, "Can't connect")

    monkeypatch.setattr(remote.pymysql, "connect", connect)
    with pytest.raises(RemoteTableError):
        RemoteClinicTables(user="u", password="p", database="d")


def test_patients_are_mapped_and_cached(tables, connections, kv):
    connections[0].rows = [
        {"id": 7, "full_name": "Anna Kovalenko", "phone": "+380501234567",
         "birth_date": date(1992, 4, 1), "leading_doctor": None},
    ]

    patients = tables.patients()

    assert patients == [RemotePatient("7", "Anna Kovalenko", "+380501234567", "1992-04-01", None)]
    assert "ORDER BY created_at DESC" in connections[0].executed[0][0]
    assert tables.cached_patients() == patients
    assert kv.read("patients_cache")[0]["full_name"] == "Anna Kovalenko"


def test_cached_patients_without_cache(connections):
    tables = RemoteClinicTables(user="u", password="p", database="d")
    assert tables.cached_patients() == []


def test_update_patient_only_sets_known_columns(tables, connections):
    tables.update_patient("7", phone="+380671112233", colour="red")
    sql, params = connections[0].executed[-1]
    assert sql == "UPDATE patients SET phone = %s WHERE id = %s"
    assert params == ("+380671112233", "7")
    assert connections[0].committed == 1


def test_update_patient_without_fields_does_nothing(tables, connections):
    tables.update_patient("7")
    assert connections[0].executed == []


def test_appointments_filtered_by_patient(tables, connections):
    connections[0].rows = [{"id": 1, "patient_id": 7, "visit_date": date(2026, 3, 1), "notes": None}]
    appointments = tables.appointments("7")

    sql, params = connections[0].executed[-1]
    assert "WHERE patient_id = %s" in sql
    assert params == ("7",)
    assert appointments[0].visit_date == "2026-03-01"


def test_treatments_unfiltered(tables, connections):
    connections[0].rows = [
        {"id": 3, "patient_id": 7, "tooth": 14, "reason": "Crown", "treatment_date": "2026-02-01"},
    ]
    treatments = tables.treatments()
    assert "WHERE" not in connections[0].executed[-1][0]
    assert treatments[0].tooth == "14"


def test_failed_write_rolls_back(tables, connections):
    connections[0].fail_with = pymysql_errors.IntegrityError(1452, "foreign key")
    with pytest.raises(RemoteTableError):
        tables.add_treatment("7", "14", "Crown", "2026-02-01")
    assert connections[0].rolled_back == 1
    assert connections[0].committed == 0


def test_close(tables, connections):
    tables.close()
    assert connections[0].closed is True
    with pytest.raises(RemoteTableError):
        tables.delete_appointment("1")
