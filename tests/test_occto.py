"""Tests for the OCCTO interconnector job."""

from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from ingest import occto
from ingest.const import INTERCONNECTOR_DETAILS, JST, Interconnector
from ingest.errors import MissingInterconnectorMappingError, UpstreamDataIntegrityError

HOKKAIDO_HONSHU = INTERCONNECTOR_DETAILS[Interconnector.HEPCO_TOHOKU]["occto_name"]
DAY = datetime(2024, 6, 3, tzinfo=JST)
FIVE_MINUTES = timedelta(minutes=5)


def csv_row(name, stamp, flow):
    return ",".join([name, stamp.strftime("%Y/%m/%d"), stamp.strftime("%H:%M"), *[""] * 10, flow])


def flows_csv(start, count, flow=lambda t: "100", name=HOKKAIDO_HONSHU):
    """OCCTO-style CSV with `count` readings stamped at the end of each slot."""

    lines = ["連系線潮流実績", "連系線,対象日付,対象時刻"]
    for i in range(1, count + 1):
        stamp = start + FIVE_MINUTES * i
        lines.append(csv_row(name, stamp, flow(stamp)))
    return "\r\n".join(lines)


@pytest.mark.parametrize(
    "scope, now, expected_start",
    [
        ("all", datetime(2024, 6, 3, 9, tzinfo=JST), datetime(2023, 4, 1, tzinfo=JST)),
        ("all", datetime(2024, 2, 10, tzinfo=JST), datetime(2022, 4, 1, tzinfo=JST)),
        ("new", datetime(2024, 6, 3, 9, tzinfo=JST), datetime(2024, 5, 1, tzinfo=JST)),
        ("new", datetime(2024, 1, 15, tzinfo=JST), datetime(2023, 12, 1, tzinfo=JST)),
        ("latest", datetime(2024, 6, 3, 9, tzinfo=JST), datetime(2024, 6, 2, tzinfo=JST)),
    ],
)
def test_scrape_window(scope, now, expected_start):
    start, end = occto.scrape_window(scope, now)

    assert start == expected_start
    assert end == now.replace(hour=0, minute=0, second=0, microsecond=0) + timedelta(days=1)


def test_scrape_window_works_in_jst():
    """22:00 UTC on the 2nd is already the 3rd in Japan."""

    _, end = occto.scrape_window("latest", datetime(2024, 6, 2, 22, tzinfo=timezone.utc))

    assert end == datetime(2024, 6, 4, tzinfo=JST)


def test_build_form_dates_and_links():
    form = occto.build_form(DAY, DAY + timedelta(days=45))

    assert form["rklNngpFrom"] == "2024/06/03"
    assert form["rklNngpTo"] == "2024/07/17"
    assert form["rkl1"] == "01"
    assert len([k for k in form if k.startswith("rkl") and k[3:].isdigit()]) == len(Interconnector)


def test_parse_flows_csv():
    text = flows_csv(DAY, 2, flow=lambda t: "-12.5" if t.minute == 5 else "")

    readings = occto.parse_flows_csv(text)

    assert [r.interconnector for r in readings] == [Interconnector.HEPCO_TOHOKU] * 2
    assert readings[0].timestamp == DAY + FIVE_MINUTES
    assert readings[0].flow_mw == -12.5
    assert math.isnan(readings[1].flow_mw)


def test_parse_flows_csv_unknown_link():
    with pytest.raises(MissingInterconnectorMappingError):
        occto.parse_flows_csv(flows_csv(DAY, 1, name="新しい連系線"))


def test_parse_flows_csv_without_header():
    with pytest.raises(UpstreamDataIntegrityError):
        occto.parse_flows_csv("foo,bar\r\n1,2")


def test_consolidate_averages_into_kwh():
    """Six 5-minute readings averaging 100 MW are 50,000 kWh over 30 minutes."""

    flows = iter(["90", "110", "95", "105", "100", "100"] + ["200"] * 6)
    readings = occto.parse_flows_csv(flows_csv(DAY, 12, flow=lambda t: next(flows)))

    blocks = occto.consolidate(readings, DAY, DAY + timedelta(hours=1), now=DAY + timedelta(days=1))

    assert [b["flow_kwh"] for b in blocks] == [50_000.0, 100_000.0]
    assert blocks[0]["datetime_from"] == DAY
    assert blocks[1]["datetime_to"] == DAY + timedelta(hours=1)


def test_consolidate_skips_future_and_sparse_blocks():
    def flow(t):
        # Only two readings in the second block are usable.
        if t > DAY + timedelta(minutes=30) and t.minute not in (35, 40):
            return ""
        return "10"

    readings = occto.parse_flows_csv(flows_csv(DAY, 18, flow=flow))
    end = DAY + timedelta(minutes=90)

    blocks = occto.consolidate(readings, DAY, end, now=DAY + timedelta(minutes=65))

    assert [b["datetime_from"] for b in blocks] == [DAY]


def test_consolidate_requires_six_readings():
    readings = occto.parse_flows_csv(flows_csv(DAY, 5))

    with pytest.raises(UpstreamDataIntegrityError):
        occto.consolidate(readings, DAY, DAY + timedelta(minutes=30), now=DAY + timedelta(days=1))


def test_consolidate_rejects_reading_outside_window():
    readings = occto.parse_flows_csv(flows_csv(DAY, 7))

    with pytest.raises(UpstreamDataIntegrityError):
        occto.consolidate(readings, DAY, DAY + timedelta(minutes=30), now=DAY + timedelta(days=1))


def test_to_row():
    row = occto.to_row(
        {
            "interconnector": Interconnector.HEPCO_TOHOKU,
            "datetime_from": DAY,
            "datetime_to": DAY + timedelta(minutes=30),
            "flow_kwh": 50_000.0,
        }
    )

    assert row["data_id"] == "hepco_tohoku_2024-06-03_00:00"
    assert row["time_to_jst"] == "00:30"
    assert row["flow_kwh"] == Decimal("50000.000")


def test_run_latest(monkeypatch):
    """A latest scrape stores every finished block of yesterday."""

    now = DAY + timedelta(minutes=20)
    yesterday = DAY - timedelta(days=1)
    written = []

    def fake_download(session, start, end):
        assert (start, end) == (yesterday, DAY + timedelta(days=1))
        return flows_csv(start, 2 * 288, flow=lambda t: "100" if t <= now else "")

    def fake_upsert(engine, rows):
        written.extend(rows)
        return len(rows)

    monkeypatch.setattr(occto, "download_flows_csv", fake_download)
    monkeypatch.setattr(occto, "upsert_interconnector_rows", fake_upsert)

    stats = occto.run("engine", "latest", now=now)

    assert stats["new_rows"] == 48
    assert stats["latest_datetime_saved"] == DAY - timedelta(minutes=30)
    assert written[0]["data_id"] == "hepco_tohoku_2024-06-02_00:00"


def test_main_reports_failure(monkeypatch):
    def failing_run(engine, scope):
        raise UpstreamDataIntegrityError("gap")

    monkeypatch.setattr(occto, "get_engine", lambda: "engine")
    monkeypatch.setattr(occto, "run", failing_run)

    assert occto.main(["--scrape", "latest"]) == 1


def test_main_prints_stats(monkeypatch, capsys):
    monkeypatch.setattr(occto, "get_engine", lambda: "engine")
    monkeypatch.setattr(
        occto, "run", lambda engine, scope: {"new_rows": 3, "latest_datetime_saved": DAY}
    )

    assert occto.main(["--scrape", "new"]) == 0
    assert "new_rows=3" in capsys.readouterr().out


@pytest.mark.parametrize(
    "offset, expected",
    [(0, 0), (5, 0), (30, 0), (35, 1), (60, 1), (-5, None), (65, None)],
)
def test_block_index_boundaries(offset, expected):
    """Readings on a boundary close the earlier block."""

    blocks = [(DAY, DAY + timedelta(minutes=30)), (DAY + timedelta(minutes=30), DAY + timedelta(hours=1))]

    assert occto._block_index(DAY + timedelta(minutes=offset), blocks) == expected


def test_consolidate_full_chunk():
    """A whole 45-day chunk consolidates into one block per half hour."""

    end = DAY + occto.CHUNK
    readings = occto.parse_flows_csv(flows_csv(DAY, 45 * 288))

    blocks = occto.consolidate(readings, DAY, end, now=end)

    assert len(blocks) == 45 * 48
    assert blocks[-1]["datetime_to"] == end
    assert {b["flow_kwh"] for b in blocks} == {50_000.0}
