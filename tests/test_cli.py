import pytest

from thornton_events import cli
from thornton_events.utils.config import Settings


class TestParser:
    def test_ingest(self):
        args = cli.build_parser().parse_args(["ingest", "westminster", "--force", "--report-json"])
        assert (args.command, args.source, args.force, args.report_json) == ("ingest", "westminster", True, True)

    def test_ingest_all(self):
        args = cli.build_parser().parse_args(["ingest-all", "--isolated", "--only", "anythink", "ticketmaster"])
        assert args.isolated
        assert args.only == ["anythink", "ticketmaster"]

    def test_unknown_source_rejected(self):
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args(["ingest", "denver-post"])

    def test_search_deals_defaults(self):
        args = cli.build_parser().parse_args(["search-deals"])
        assert (args.location, args.query, args.do_import) == ("Thornton, CO", "deals", False)


class TestMain:
    def test_missing_database_url(self, monkeypatch):
        monkeypatch.setattr(Settings, "from_env", classmethod(lambda cls: Settings(openai_api_key="k")))
        assert cli.main(["ingest", "city-thornton"]) == 1
        assert cli.main(["ingest-all"]) == 1

    def test_nothing_enabled(self, monkeypatch):
        monkeypatch.setattr(Settings, "from_env", classmethod(lambda cls: Settings(database_url="sqlite+aiosqlite://")))
        assert cli.main(["ingest-all", "--only", "ticketmaster"]) == 1

    def test_init_db_and_check_events(self, monkeypatch, tmp_path, capsys):
        url = f"sqlite+aiosqlite:///{tmp_path / 'events.db'}"
        monkeypatch.setattr(Settings, "from_env", classmethod(lambda cls: Settings(database_url=url)))
        assert cli.main(["init-db"]) == 0
        assert cli.main(["check-events"]) == 0
        assert "Future events: 0" in capsys.readouterr().out
