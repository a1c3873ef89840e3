"""Tests for the database helper utilities."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from ingest import load
from ingest.carbon import compute_intensity, load_carbon_tables
from ingest.transform import build_area_file
from ingest.validate import AreaRow


def test_get_engine_uses_db_url(monkeypatch):
    """`get_engine` should build an engine using the configured DB_URL."""

    fake_engine = object()

    def fake_create_engine(url, pool_pre_ping):
        assert url == "postgresql://example"
        assert pool_pre_ping is True
        return fake_engine

    monkeypatch.setenv("DB_URL", "postgresql://example")
    monkeypatch.setattr(load, "create_engine", fake_create_engine)

    engine = load.get_engine()

    assert engine is fake_engine


def test_get_engine_missing_env(monkeypatch, capsys):
    """Missing DB_URL should result in a user-facing error and exit."""

    monkeypatch.delenv("DB_URL", raising=False)

    with pytest.raises(SystemExit) as exc:
        load.get_engine()

    assert exc.value.code == 2
    assert "ERROR: DB_URL is not set" in capsys.readouterr().err


class DummyContext:
    def __init__(self, log, result=None):
        self.log = log
        self.result = result

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False

    def execute(self, stmt, params=None):
        self.log.append((stmt, params))
        if self.result is not None:
            return self.result


class DummyScalars:
    def __init__(self, values):
        self.values = values

    def all(self):
        return list(self.values)


class DummyResult:
    def __init__(self, value):
        self.value = value

    def scalar(self):
        return self.value

    def scalars(self):
        return DummyScalars(self.value)

    def mappings(self):
        return DummyScalars(self.value)


class DummyEngine:
    def __init__(self, result=None):
        self.log = []
        self._result = result

    def begin(self):
        return DummyContext(self.log, self._result)


def flat_sql(stmt):
    return " ".join(stmt.text.split())


def test_init_db_executes_sql(monkeypatch):
    """Initialising the DB should emit the DDL to the engine."""

    engine = DummyEngine()

    load.init_db(engine)

    assert engine.log, "DDL should be executed"
    stmt, params = engine.log[0]
    assert params is None
    assert "CREATE TABLE" in stmt.text


def test_upsert_area_rows_noop():
    """`upsert_area_rows` should short-circuit on an empty payload."""

    engine = DummyEngine()

    assert load.upsert_area_rows(engine, []) == 0
    assert engine.log == []


def test_upsert_area_rows_executes_statement():
    """Rows should be written via an INSERT/UPSERT keyed on data_id."""

    engine = DummyEngine()
    rows = [{"data_id": "tepco_2024-06-03_00:00", "tso": "tepco"}]

    count = load.upsert_area_rows(engine, rows)

    assert count == 1
    stmt, params = engine.log[0]
    sql = flat_sql(stmt)
    assert "INSERT INTO area_data_processed" in sql
    assert "ON CONFLICT (data_id) DO UPDATE SET" in sql
    assert "last_updated=now()" in sql
    assert "data_id=EXCLUDED.data_id" not in sql
    assert params == rows


def test_upsert_area_rows_batches_and_dedupes():
    """Duplicate keys collapse to the last occurrence; writes go in batches of 900."""

    engine = DummyEngine()
    rows = [{"data_id": f"k{i}", "v": i} for i in range(1000)]
    rows.append({"data_id": "k0", "v": "latest"})

    count = load.upsert_area_rows(engine, rows)

    assert count == 1000
    assert [len(params) for _, params in engine.log] == [900, 100]
    assert engine.log[0][1][0] == {"data_id": "k0", "v": "latest"}


def test_upsert_interconnector_rows_targets_its_table():
    engine = DummyEngine()

    load.upsert_interconnector_rows(engine, [{"data_id": "hokkaido_honshu_2024-06-03_00:00"}])

    assert "INSERT INTO interconnector_data_processed" in flat_sql(engine.log[0][0])


def test_save_area_data_file_writes_rows_then_file_record(area_record):
    engine = DummyEngine()
    f = build_area_file("tepco", "https://example.jp/a.csv", [AreaRow(**area_record)])

    saved = load.save_area_data_file(engine, f)

    assert saved == {
        "file_key": "tepco_2024-06-03",
        "new_rows": 1,
        "latest_datetime_saved": datetime(2024, 6, 2, 15, tzinfo=timezone.utc),
    }
    (rows_stmt, _), (file_stmt, record) = engine.log
    assert "area_data_processed" in flat_sql(rows_stmt)
    assert "INSERT INTO area_data_files" in flat_sql(file_stmt)
    assert record["data_rows"] == 1
    assert record["url"] == "https://example.jp/a.csv"


def test_get_recorded_urls_returns_set():
    engine = DummyEngine(result=DummyResult(["a.csv", "b.csv", "a.csv"]))

    urls = load.get_recorded_urls(engine, "kepco")

    assert urls == {"a.csv", "b.csv"}
    assert engine.log[0][1] == {"tso": "kepco"}


def test_get_max_dt_returns_value():
    """`get_max_dt` should return the scalar datetime value from the DB."""

    value = datetime(2024, 1, 2, tzinfo=timezone.utc)
    engine = DummyEngine(result=DummyResult(value))

    result = load.get_max_dt(engine, "tepco")

    assert result == value


def test_attach_forecasts_averages_and_appends():
    t0 = datetime(2024, 6, 2, 15, tzinfo=timezone.utc)
    t1 = t0 + timedelta(minutes=30)
    half_hour = timedelta(minutes=30)
    rows = [{"datetime_from": t0, "carbon_intensity": 500.0}]
    forecasts = [
        {"tso": "tepco", "datetime_from": t0, "datetime_to": t1,
         "predicted_carbon_intensity": 490, "created_at": t0},
        {"tso": "tepco", "datetime_from": t0, "datetime_to": t1,
         "predicted_carbon_intensity": 495, "created_at": t1},
        {"tso": "tepco", "datetime_from": t1, "datetime_to": t1 + half_hour,
         "predicted_carbon_intensity": 480, "created_at": t0},
        {"tso": "tepco", "datetime_from": t1, "datetime_to": t1 + half_hour,
         "predicted_carbon_intensity": 470, "created_at": t1},
    ]

    out = load.attach_forecasts(rows, forecasts)

    assert out[0]["average_predicted_carbon_intensity"] == 492.5
    assert len(out) == 2
    assert out[1]["predicted_carbon_intensity"] == 470.0
    assert out[1]["time_from_jst"] == "00:30"


def test_get_area_data_adds_carbon_intensity(area_record):
    row = {"data_id": "tepco_2024-06-03_00:00", "tso": "tepco", **area_record}
    engine = DummyEngine(result=DummyResult([row]))

    rows = load.get_area_data(
        engine, "tepco", area_record["datetime_from"], area_record["datetime_to"]
    )

    assert len(rows) == 1
    expected = compute_intensity(row, load_carbon_tables())
    assert rows[0]["carbon_intensity"] == expected
    assert 500 < expected < 540
    assert engine.log[0][1]["tso"] == "tepco"


def test_main_init_db(monkeypatch, capsys):
    """CLI `--init-db` flag should trigger database initialisation."""

    calls = []

    monkeypatch.setattr(load, "get_engine", lambda: "engine")

    def fake_init(engine):
        calls.append(engine)

    monkeypatch.setattr(load, "init_db", fake_init)

    code = load.main(["--init-db"])

    assert code == 0
    assert calls == ["engine"]
    assert "DB initialised." in capsys.readouterr().out


def test_main_show_empty(monkeypatch, capsys):
    monkeypatch.setattr(load, "get_engine", lambda: "engine")
    monkeypatch.setattr(load, "get_max_dt", lambda engine, tso: None)

    code = load.main(["--show", "okinawa"])

    assert code == 0
    assert "No data stored for okinawa." in capsys.readouterr().out


def test_main_no_args(monkeypatch, capsys):
    """Without CLI flags the command should report that nothing was done."""

    monkeypatch.setattr(load, "get_engine", lambda: "engine")
    monkeypatch.setattr(load, "init_db", lambda engine: None)

    code = load.main([])

    assert code == 0
    assert "Nothing to do" in capsys.readouterr().out
