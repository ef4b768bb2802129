from __future__ import annotations

import pytest

from staffsync.cli import build_parser, main
from staffsync.config import Settings
from tests.conftest import BASE_URL

pytestmark = pytest.mark.unit


@pytest.fixture
def settings():
    return Settings(
        provider_base_url=BASE_URL,
        provider_username="api_user",
        provider_password="secret",
        provider_org_code="ORG1",
        redis_url=None,
        migration_page_pause_seconds=0,
        retry_max_retries=0,
        log_level="ERROR",
        log_format="text",
    )


def _page(*ids: str) -> list[dict]:
    return [{"id": job_id, "title": "icu rn", "city": "Reno", "state": "NV"} for job_id in ids]


def test_parser_defaults():
    args = build_parser().parse_args([])

    assert args.batch_size == 100
    assert args.start_page == 1
    assert args.end_page is None
    assert args.dry_run is False
    assert args.verbose is False


def test_parser_short_flags():
    args = build_parser().parse_args(["-b", "25", "-s", "3", "-e", "10", "-d", "-v"])

    assert (args.batch_size, args.start_page, args.end_page) == (25, 3, 10)
    assert args.dry_run is True
    assert args.verbose is True


def test_migration_prints_summary(settings, provider, capsys):
    provider.job_pages = [_page("1", "2"), _page("3") + [{"title": "missing id"}]]

    exit_code = main(["--batch-size", "2"], settings=settings, transport=provider.transport)

    out = capsys.readouterr().out
    assert exit_code == 0
    assert "- Batch Size: 2" in out
    assert "- End Page: (all available pages)" in out
    assert "- Total Jobs: 4" in out
    assert "- Successfully Processed: 3" in out
    assert "- Failed: 1" in out
    assert "dry run" not in out
    assert [r.url.params["limit"] for r in provider.api_requests()] == ["2", "2"]


def test_dry_run_notice(settings, provider, capsys):
    provider.job_pages = [_page("1")]

    exit_code = main(["--dry-run", "-e", "1"], settings=settings, transport=provider.transport)

    out = capsys.readouterr().out
    assert exit_code == 0
    assert "- Dry Run: Yes" in out
    assert "- End Page: 1" in out
    assert "NOTE: This was a dry run. No data was saved." in out


def test_start_page_is_forwarded(settings, provider, capsys):
    provider.job_pages = [_page("1"), _page("2"), _page("3")]

    main(["-s", "2"], settings=settings, transport=provider.transport)

    assert [r.url.params["page"] for r in provider.api_requests()] == ["2", "3"]
    assert "- Total Jobs: 2" in capsys.readouterr().out


def test_authentication_failure_exits_nonzero(settings, provider, capsys):
    provider.token_status = 401
    provider.job_pages = [_page("1")]

    exit_code = main([], settings=settings, transport=provider.transport)

    out = capsys.readouterr().out
    assert exit_code == 1
    assert "Migration failed:" in out
    assert "AuthenticationError" in out
    assert provider.api_requests() == []


def test_page_failure_exits_nonzero(settings, provider, capsys):
    provider.job_pages = [_page("1")]
    provider.fail_statuses = [503]

    exit_code = main([], settings=settings, transport=provider.transport)

    assert exit_code == 1
    assert "TransportError" in capsys.readouterr().out
