"""Tests covering the scrape orchestrator."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from ingest import client, run
from ingest.const import JST, TsoName
from ingest.errors import FetchError, MalformedRowError, UnsupportedScrapeScopeError
from ingest.transform import AreaDataFile
from ingest.tso import SourceFile, SourceFormat, TsoConfig
from ingest.tso import kepco, tepco, yonden

NOW = datetime(2024, 6, 3, 9, tzinfo=JST)

OLD = SourceFile("https://example.jp/old.csv", SourceFormat.OLD)
NEW = SourceFile("https://example.jp/new.csv", SourceFormat.NEW)
BROKEN = SourceFile("https://example.jp/broken.csv", SourceFormat.NEW)


def make_config(sources, sequential=True):
    return TsoConfig(
        tso=TsoName.TEPCO,
        discover=lambda scope, now: list(sources),
        legacy_layout=tepco.LEGACY_LAYOUT,
        sequential=sequential,
    )


def make_file(url, start):
    return AreaDataFile(
        tso=TsoName.TEPCO,
        url=url,
        from_datetime=start,
        to_datetime=start + timedelta(hours=1),
        rows=[{"data_id": url}],
    )


@pytest.fixture
def fake_pipeline(monkeypatch):
    """Wire `scrape_tso` to fakes and record what gets saved."""

    saved = []
    starts = {
        OLD.url: datetime(2024, 3, 31, 14, tzinfo=timezone.utc),
        NEW.url: datetime(2024, 6, 2, 15, tzinfo=timezone.utc),
    }

    def fake_fetch(config, source):
        if source.url == BROKEN.url:
            raise MalformedRowError("bad row", raw_row=["x"])
        return make_file(source.url, starts[source.url])

    def fake_save(engine, f):
        saved.append(f.url)
        return {"file_key": f.file_key, "new_rows": 48, "latest_datetime_saved": f.from_datetime}

    monkeypatch.setattr(run, "fetch_and_parse", fake_fetch)
    monkeypatch.setattr(run, "save_area_data_file", fake_save)
    monkeypatch.setattr(run, "get_recorded_urls", lambda engine, tso: {OLD.url})
    return saved


def test_scrape_tso_is_best_effort(monkeypatch, fake_pipeline):
    """A file that fails to parse is recorded; the others are still saved."""

    monkeypatch.setattr(run, "get_tso", lambda tso: make_config([OLD, BROKEN, NEW]))

    stats = run.scrape_tso("engine", "tepco", "all", now=NOW)

    assert fake_pipeline == [OLD.url, NEW.url]
    assert stats["sources"] == 3
    assert stats["saved_files"] == 2
    assert stats["new_rows"] == 96
    assert stats["failed_files"] == [{"url": BROKEN.url, "error": "bad row"}]
    assert stats["latest_datetime_saved"] == datetime(2024, 6, 2, 15, tzinfo=timezone.utc)


def test_scrape_tso_thread_pool_keeps_order(monkeypatch, fake_pipeline):
    monkeypatch.setattr(
        run, "get_tso", lambda tso: make_config([OLD, NEW], sequential=False)
    )

    run.scrape_tso("engine", "tepco", "all", now=NOW)

    assert fake_pipeline == [OLD.url, NEW.url]


def test_scrape_tso_skip_known_only_skips_legacy(monkeypatch, fake_pipeline):
    """Recorded legacy files are skipped; new-format files are always refetched."""

    monkeypatch.setattr(run, "get_recorded_urls", lambda engine, tso: {OLD.url, NEW.url})
    monkeypatch.setattr(run, "get_tso", lambda tso: make_config([OLD, NEW]))

    stats = run.scrape_tso("engine", "tepco", "all", now=NOW, skip_known=True)

    assert stats["skipped"] == 1
    assert fake_pipeline == [NEW.url]


def test_scrape_tso_discovery_failure(monkeypatch, fake_pipeline):
    def failing_discover(scope, now):
        raise FetchError("https://example.jp/list.html", "HTTP 503")

    config = TsoConfig(
        tso=TsoName.TEPCO, discover=failing_discover, legacy_layout=tepco.LEGACY_LAYOUT
    )
    monkeypatch.setattr(run, "get_tso", lambda tso: config)

    stats = run.scrape_tso("engine", "tepco", "latest", now=NOW)

    assert stats["saved_files"] == 0
    assert stats["failed_files"][0]["url"] == "https://example.jp/list.html"
    assert fake_pipeline == []


def test_scrape_tso_rejects_unknown_scope(fake_pipeline):
    with pytest.raises(UnsupportedScrapeScopeError):
        run.scrape_tso("engine", "tepco", "yesterday", now=NOW)


def test_fetch_and_parse_skips_file_past_cutover(monkeypatch):
    """A legacy file with every row past the cutover yields no file."""

    grid = [["DATE_TIME", "需要"], ["2024/4/1 0:00", *["1"] * 12]]
    monkeypatch.setattr(run, "download_grid", lambda url, encoding: grid)
    config = TsoConfig(
        tso=TsoName.KEPCO,
        discover=kepco.discover_sources,
        legacy_layout=kepco.LEGACY_LAYOUT,
        cutover=datetime(2024, 4, 1, tzinfo=JST),
    )

    assert run.fetch_and_parse(config, OLD) is None


def test_run_all_scrapes_every_tso(monkeypatch):
    calls = []
    monkeypatch.setattr(run, "get_engine", lambda: "engine")
    monkeypatch.setattr(
        run,
        "scrape_tso",
        lambda engine, name, scope, skip_known=False: calls.append((name, scope.value)) or {},
    )

    stats = run.run(tso="all", scope="new")

    assert len(stats) == 10
    assert calls[0] == ("hepco", "new")
    assert calls[-1] == ("okinawa", "new")


def test_main_invokes_run(monkeypatch, capsys):
    """The CLI wrapper should invoke `run` and surface summary stats."""

    captured = {}

    def fake_run(**kwargs):
        captured.update(kwargs)
        return [{"tso": "kyuden", "new_rows": 1}]

    monkeypatch.setattr(run, "run", fake_run)

    code = run.main(["--tso", "kyuden", "--scrape", "latest"])

    assert code == 0
    assert captured == {"tso": "kyuden", "scope": "latest", "skip_known": False}
    assert "Done. Stats" in capsys.readouterr().out


def test_main_fatal_error(monkeypatch):
    def failing_run(**kwargs):
        raise UnsupportedScrapeScopeError("nope")

    monkeypatch.setattr(run, "run", failing_run)

    assert run.main(["--scrape", "all"]) == 1


def test_collect_files_contains_corrupt_zip(monkeypatch):
    """An HTML page served as a ZIP is one failure; the good file still loads."""

    good = SourceFile("https://example.jp/eria_jukyu_202405_08.csv", SourceFormat.NEW)
    corrupt = SourceFile("https://example.jp/eria_jukyu_202406_08.zip", SourceFormat.NEW)
    csv_text = "\r\n".join(
        [
            "DATE,TIME,エリア需要,原子力",
            ",," + ",".join(["MW"] * 18),
            "2024/5/1,0:00," + ",".join(["100"] * 18),
        ]
    )
    bodies = {good.url: csv_text.encode("cp932"), corrupt.url: b"<html>not a zip</html>"}
    monkeypatch.setattr(client, "fetch_bytes", lambda url: bodies[url])

    files, failures = run.collect_files(yonden.CONFIG, [corrupt, good])

    assert [f.url for f in files] == [good.url]
    assert len(files[0].rows) == 1
    assert [f["url"] for f in failures] == [corrupt.url]
