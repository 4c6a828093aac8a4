from __future__ import annotations

import asyncio

import pytest

from contact_crawler.verification import smtp_greets, verify_email, verify_emails


class FakeReader:
    def __init__(self, greeting: bytes) -> None:
        self.greeting = greeting

    async def readline(self) -> bytes:
        return self.greeting


class FakeWriter:
    def __init__(self, close_error: Exception | None = None) -> None:
        self.close_error = close_error
        self.closed = False
        self.waited = False

    def close(self) -> None:
        self.closed = True

    async def wait_closed(self) -> None:
        self.waited = True
        if self.close_error is not None:
            raise self.close_error


@pytest.fixture
def smtp_server(monkeypatch):
    def serve(greeting: bytes, close_error: Exception | None = None) -> FakeWriter:
        writer = FakeWriter(close_error)

        async def open_connection(host, port):
            assert port == 25
            return FakeReader(greeting), writer

        monkeypatch.setattr(asyncio, "open_connection", open_connection)
        return writer

    return serve


class TestSmtpGreets:
    @pytest.mark.asyncio
    async def test_greeting_and_connection_closed(self, smtp_server):
        writer = smtp_server(b"220 mx.acme.com ESMTP ready\r\n")

        assert await smtp_greets("mx.acme.com") is True
        assert writer.closed and writer.waited

    @pytest.mark.asyncio
    async def test_other_greeting(self, smtp_server):
        writer = smtp_server(b"554 no service\r\n")

        assert await smtp_greets("mx.acme.com") is False
        assert writer.waited

    @pytest.mark.asyncio
    async def test_close_failure_keeps_result(self, smtp_server):
        smtp_server(b"220 ready\r\n", close_error=ConnectionResetError("reset by peer"))

        assert await smtp_greets("mx.acme.com") is True


def resolver_for(table: dict[str, list[str]]):
    async def resolve(domain: str) -> list[str]:
        return table.get(domain, [])

    return resolve


def probe_for(reachable: set[str]):
    async def probe(host: str) -> bool:
        return host in reachable

    return probe


RESOLVER = resolver_for(
    {
        "acme.com": ["mx1.acme.com", "mx2.acme.com"],
        "quiet.com": ["mx.quiet.com"],
        "mailinator.com": ["mail.mailinator.com"],
    }
)
PROBE = probe_for({"mx1.acme.com", "mail.mailinator.com"})


class TestVerifyEmail:
    @pytest.mark.asyncio
    async def test_deliverable(self):
        result = await verify_email("sales@acme.com", RESOLVER, PROBE)
        assert result["status"] == "deliverable"
        assert result["score"] == 7
        assert result["smtpConnectable"] is True
        assert result["notes"] == ["SMTP reachable at mx1.acme.com"]

    @pytest.mark.asyncio
    async def test_mx_without_smtp_still_deliverable(self):
        result = await verify_email("ops@quiet.com", RESOLVER, PROBE)
        assert (result["score"], result["status"]) == (5, "deliverable")

    @pytest.mark.asyncio
    async def test_disposable_domain_is_risky(self):
        result = await verify_email("temp@mailinator.com", RESOLVER, PROBE)
        assert result["isDisposable"] is True
        assert (result["score"], result["status"]) == (4, "risky")

    @pytest.mark.asyncio
    async def test_no_mx_records(self):
        result = await verify_email("who@nowhere.org", RESOLVER, PROBE)
        assert result["hasMxRecords"] is False
        assert result["status"] == "undeliverable"
        assert "No MX records" in result["notes"]

    @pytest.mark.asyncio
    async def test_bad_syntax_skips_lookups(self):
        async def exploding_resolver(domain):
            raise AssertionError("resolver should not be called")

        result = await verify_email("not-an-email", exploding_resolver, PROBE)
        assert result["status"] == "invalid"
        assert result["isValidSyntax"] is False


class TestVerifyEmails:
    @pytest.mark.asyncio
    async def test_deduplicates_and_keeps_order(self):
        results = await verify_emails(
            [" sales@acme.com", "ops@quiet.com", "sales@acme.com", ""], RESOLVER, PROBE, pause_s=0
        )
        assert [r["email"] for r in results] == ["sales@acme.com", "ops@quiet.com"]

    @pytest.mark.asyncio
    async def test_failures_become_error_entries(self):
        async def broken_resolver(domain):
            raise RuntimeError("resolver offline")

        results = await verify_emails(["a@acme.com"], broken_resolver, PROBE, pause_s=0)
        assert results == [{"email": "a@acme.com", "status": "error", "error": "resolver offline"}]
