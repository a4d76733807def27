"""End-to-end tests for shift_report against CSV exports in a temp dir."""

import json

import pytest

import shift_report
from shift_errors import ConfigError, DeliveryError, Failure, Ok
from shift_paths import ShiftPaths
from shift_reconcile import MATCHED, MISSING
from shift_report import dispatch, form_from_dict, main, process_shift_report, send_desktop_alert


EXTERNAL_CSV = (
    "Date,Time,League,Home,Away,Score\n"
    "02/02/2026,20:00,Premier League,Team A,Team B,1-0\n"
    "02/02/2026,20:00,Premier League,Team A,Team B,1-0\n"
    "02/02/2026,22:30,EFL Championship,Team C,Team D,\n"
    "03/02/2026,07:00,Thai League 1,Next Day,Other,\n"
)

INTERNAL_CSV = (
    "Date,Time,League,Home,Away,Start Image,Stop Image,Channel\n"
    "02/02/2026,20:00,Premier League,Team B,Team A,http://img/s,http://img/e,CH1\n"
)

TICKETS_CSV = (
    "Ticket ID,Date,Created Date,Status,Resolved Date,Detail\n"
    "T1,03/02/2026,,Open,,New alarm\n"
    "T2,01/02/2026,,Resolved,03/02/2026 09:00,Fixed\n"
    "T3,30/01/2026,,Pending,,Waiting vendor\n"
)


@pytest.fixture
def workspace(tmp_path):
    (tmp_path / "data").mkdir()
    (tmp_path / "data" / "external.csv").write_text(EXTERNAL_CSV, encoding="utf-8")
    (tmp_path / "data" / "internal.csv").write_text(INTERNAL_CSV, encoding="utf-8")
    (tmp_path / "data" / "tickets.csv").write_text(TICKETS_CSV, encoding="utf-8")
    config = {
        "window": {"split_hour": 6, "timezone": "Asia/Bangkok"},
        "sources": {
            "external_csv": "data/external.csv",
            "internal_csv": "data/internal.csv",
            "tickets_csv": "data/tickets.csv",
            "fetch_limit": 1000,
        },
        "chat": {"webhooks": {"GROUP_ALL": "https://chat.example/hook"}, "max_posts_per_hour": 6},
        "notifications": {"enabled": True, "app_name": "Shift Report", "duration_seconds": 5},
    }
    (tmp_path / "shift_config.json").write_text(json.dumps(config), encoding="utf-8")
    return tmp_path, config, ShiftPaths(base_dir=tmp_path)


@pytest.fixture
def chat_posts(monkeypatch):
    posts = []
    monkeypatch.setattr(shift_report, "post_chat_card", lambda **kw: posts.append(kw))
    return posts


FORM = {
    "date": "2026-02-03",
    "shift": "Night",
    "reporter": "Somchai",
    "transferReport": "Check encoder 2",
    "channelStatuses": {"Mono": "OK"},
    "chatTarget": "GROUP_ALL",
}


class TestDispatch:
    def test_verification_report(self, workspace):
        _, config, paths = workspace
        outcome = dispatch("getVerificationReport", "2026-02-03", config=config, paths=paths)
        assert isinstance(outcome, Ok)
        result = outcome.value
        assert [e.status for e in result] == [MATCHED, MISSING]
        assert result.entries[0].internal.details["channel"] == "CH1"
        assert result.league_summary() == {"Premier League": 1, "EFL": 1}

    def test_ticket_details(self, workspace):
        _, config, paths = workspace
        stats = dispatch("getTicketDetails", "2026-02-03", config=config, paths=paths).value
        assert (stats.new_count, stats.resolved_count, stats.backlog_count) == (1, 1, 2)
        assert [t.id for t in stats.backlog_list] == ["T3"]

    def test_unknown_function(self, workspace):
        _, config, paths = workspace
        outcome = dispatch("deleteEverything", None, config=config, paths=paths)
        assert isinstance(outcome, Failure)
        assert outcome.stage == "config"
        assert "Function not found" in outcome.message

    def test_missing_window_is_config_failure(self, workspace):
        _, config, paths = workspace
        outcome = dispatch("getVerificationReport", "2026-02-03", config={"sources": config["sources"]}, paths=paths)
        assert not outcome.ok
        assert outcome.stage == "config"

    def test_missing_source_file_is_source_failure(self, workspace):
        tmp_path, config, paths = workspace
        (tmp_path / "data" / "internal.csv").unlink()
        outcome = dispatch("getVerificationReport", "2026-02-03", config=config, paths=paths)
        assert outcome.stage == "source"

    def test_history_after_report(self, workspace, chat_posts):
        _, config, paths = workspace
        dispatch("processShiftReport", FORM, config=config, paths=paths, now=1_770_000_000)
        rows = dispatch("getShiftHistory", 10, config=config, paths=paths).value
        assert len(rows) == 1
        assert rows[0]["transfer_report"] == "Check encoder 2"

    @pytest.mark.parametrize("limit", ["lots", 0, -3, True, 2.5])
    def test_bad_history_limit_is_config_failure(self, workspace, limit):
        _, config, paths = workspace
        outcome = dispatch("getShiftHistory", limit, config=config, paths=paths)
        assert isinstance(outcome, Failure)
        assert outcome.stage == "config"

    def test_history_limit_defaults(self, workspace):
        _, config, paths = workspace
        assert dispatch("getShiftHistory", None, config=config, paths=paths).value == []


class TestProcessShiftReport:
    def test_draft_writes_preview_only(self, workspace, chat_posts):
        _, config, paths = workspace
        out = dispatch("processShiftReport", {**FORM, "isDraft": True}, config=config, paths=paths).value
        assert out["preview"] is True
        assert "Shift handover report (Preview)" in out["text"]
        assert paths.outbox.joinpath("preview_2026-02-03_Night.txt").exists()
        assert chat_posts == []
        assert not paths.reports_db.exists()

    def test_final_stores_and_posts_once(self, workspace, chat_posts):
        _, config, paths = workspace
        form = form_from_dict(FORM)
        first = process_shift_report(config, form, paths=paths, now=1_770_000_000)
        assert first["posted"] is True
        assert len(chat_posts) == 1
        assert chat_posts[0]["card"]["cardsV2"][0]["cardId"] == "shift-report-2026-02-03-Night"

        second = process_shift_report(config, form, paths=paths, now=1_770_000_100)
        assert second == {"preview": False, "report_id": first["report_id"] + 1, "posted": False, "reason": "already posted"}
        assert len(chat_posts) == 1

        forced = process_shift_report(config, form, paths=paths, force_post=True, now=1_770_000_200)
        assert forced["posted"] is True
        assert len(chat_posts) == 2

    def test_rate_limited(self, workspace, chat_posts):
        _, config, paths = workspace
        config = {**config, "chat": {**config["chat"], "max_posts_per_hour": 1}}
        process_shift_report(config, form_from_dict(FORM), paths=paths, now=1_770_000_000)
        other = form_from_dict({**FORM, "shift": "Morning"})
        out = process_shift_report(config, other, paths=paths, now=1_770_000_060)
        assert out["reason"] == "rate limited"

    def test_unknown_target_fails_before_storing(self, workspace, chat_posts):
        _, config, paths = workspace
        with pytest.raises(ConfigError):
            process_shift_report(config, form_from_dict({**FORM, "chatTarget": "NOPE"}), paths=paths)
        assert not paths.reports_db.exists()

    def test_delivery_failure_keeps_report(self, workspace, monkeypatch):
        _, config, paths = workspace

        def boom(**kw):
            raise DeliveryError("Chat webhook failed (500)")

        monkeypatch.setattr(shift_report, "post_chat_card", boom)
        out = process_shift_report(config, form_from_dict(FORM), paths=paths)
        assert out["posted"] is False
        assert "500" in out["reason"]
        assert paths.reports_db.exists()

    def test_no_target_is_stored_only(self, workspace, chat_posts):
        _, config, paths = workspace
        out = process_shift_report(config, form_from_dict({**FORM, "chatTarget": ""}), paths=paths)
        assert out["reason"] == "no chat target"
        assert chat_posts == []

    def test_bad_rate_limit_fails_before_storing(self, workspace, chat_posts):
        _, config, paths = workspace
        config = {**config, "chat": {**config["chat"], "max_posts_per_hour": "many"}}
        with pytest.raises(ConfigError, match="max_posts_per_hour"):
            process_shift_report(config, form_from_dict(FORM), paths=paths)
        assert not paths.reports_db.exists()
        assert chat_posts == []


class TestFormFromDict:
    def test_requires_reporter(self):
        with pytest.raises(ConfigError):
            form_from_dict({"date": "2026-02-03"})

    def test_requires_date(self):
        with pytest.raises(ConfigError):
            form_from_dict({"reporter": "x"})

    def test_snake_case_keys(self):
        form = form_from_dict({"report_date": "2026-02-03", "reporter": "x", "channel_statuses": {"AIS": None}})
        assert form.channel_statuses == {"AIS": ""}


class TestDailyProofImages:
    def test_in_window_http_links_only(self, workspace):
        tmp_path, config, paths = workspace
        (tmp_path / "data" / "internal.csv").write_text(
            "Date,Time,League,Home,Away,Start Image,Stop Image,Channel\n"
            "02/02/2026,20:00,Premier League,Team B,Team A,http://img/s,http://img/e,CH1\n"
            "02/02/2026,2130,EFL,Team C,,http://img/c,-,CH2\n"
            "01/02/2026,20:00,Premier League,Old,Game,http://img/old,http://img/old2,CH1\n"
            "03/02/2026,06:00,Premier League,Late,Game,http://img/late,,CH1\n"
            "02/02/2026,21:00,EFL,No,Links,see chat,,CH3\n",
            encoding="utf-8",
        )
        outcome = dispatch("getDailyProofImages", "2026-02-03", config=config, paths=paths)
        assert isinstance(outcome, Ok)
        assert outcome.value == {
            "start": [
                {"url": "http://img/s", "label": "Team B vs Team A"},
                {"url": "http://img/c", "label": "Team C vs ?"},
            ],
            "stop": [{"url": "http://img/e", "label": "Team B vs Team A"}],
        }

    def test_missing_window_is_config_failure(self, workspace):
        _, config, paths = workspace
        outcome = dispatch("getDailyProofImages", "2026-02-03", config={"sources": config["sources"]}, paths=paths)
        assert outcome.stage == "config"


class FakeNotifier:
    def __init__(self):
        self.shown = []

    def notify(self, **kw):
        self.shown.append(kw)


@pytest.fixture
def notifier(monkeypatch):
    fake = FakeNotifier()
    monkeypatch.setattr(shift_report, "notification", fake)
    return fake


class TestDesktopAlert:
    def test_alert_when_missing(self, workspace, notifier):
        _, config, paths = workspace
        shown = notifier.shown
        result = dispatch("getVerificationReport", "2026-02-03", config=config, paths=paths).value
        assert send_desktop_alert(config, result) is True
        assert shown[0]["title"] == "[ALERT] 1 match(es) missing from ops log"
        assert "Team C vs Team D" in shown[0]["message"]
        assert shown[0]["timeout"] == 5

    def test_disabled(self, workspace, notifier):
        _, config, paths = workspace
        result = dispatch("getVerificationReport", "2026-02-03", config=config, paths=paths).value
        assert send_desktop_alert({**config, "notifications": {"enabled": False}}, result) is False
        assert notifier.shown == []


class TestCli:
    def test_verify_json(self, workspace, notifier, capsys):
        tmp_path, _, _ = workspace
        rc = main(["--base-dir", str(tmp_path), "verify", "--date", "2026-02-03", "--json"])
        out = capsys.readouterr().out
        assert rc == 0
        payload = json.loads(out[: out.rindex("}") + 1])
        assert payload["stats"] == {"totalMatches": 2, "missing": 1, "dateRange": {"from": "2026-02-02", "to": "2026-02-03"}}
        assert payload["list"][0]["internal"]["channel"] == "CH1"
        assert "[ALERT] 1 missing match(es)" in out

    def test_tickets_text(self, workspace, capsys):
        tmp_path, _, _ = workspace
        assert main(["--base-dir", str(tmp_path), "tickets", "--date", "2026-02-03"]) == 0
        assert "[NEW] [Open] T1 - New alarm" in capsys.readouterr().out

    def test_report_draft_and_history(self, workspace, capsys, chat_posts):
        tmp_path, _, _ = workspace
        base = ["--base-dir", str(tmp_path)]
        rc = main(base + ["report", "--date", "2026-02-03", "--shift", "Night", "--reporter", "Somchai", "--channel", "Mono=OK", "--draft"])
        assert rc == 0
        assert "[INFO] Preview written to" in capsys.readouterr().out

        rc = main(base + ["report", "--date", "2026-02-03", "--shift", "Night", "--reporter", "Somchai", "--target", "GROUP_ALL"])
        out = capsys.readouterr().out
        assert rc == 0
        assert "[OK] Stored report #1" in out
        assert "[OK] Posted to chat" in out

        assert main(base + ["history", "--csv"]) == 0
        assert "report_date" in capsys.readouterr().out

    def test_missing_config_exit_code(self, tmp_path, capsys):
        assert main(["--base-dir", str(tmp_path), "verify", "--date", "2026-02-03"]) == 2
        assert "[ERROR] [config] Missing config" in capsys.readouterr().out

    def test_bad_date_exit_code(self, workspace, capsys):
        tmp_path, _, _ = workspace
        assert main(["--base-dir", str(tmp_path), "tickets", "--date", "yesterday"]) == 2
        assert "[ERROR] [config]" in capsys.readouterr().out

    def test_proofs_json(self, workspace, capsys):
        tmp_path, _, _ = workspace
        assert main(["--base-dir", str(tmp_path), "proofs", "--date", "2026-02-03", "--json"]) == 0
        payload = json.loads(capsys.readouterr().out)
        assert payload["start"] == [{"url": "http://img/s", "label": "Team B vs Team A"}]
        assert payload["stop"] == [{"url": "http://img/e", "label": "Team B vs Team A"}]
