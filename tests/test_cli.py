from __future__ import annotations

import json

import pytest

from contact_crawler import cli


@pytest.fixture
def run_cli(monkeypatch, tmp_path, page, fake_fetcher, factory_probe):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("LOG_DIR", str(tmp_path / "logs"))
    fetcher = fake_fetcher(
        {
            "https://acme.com": page("https://acme.com", "<p>hello@acme.com</p>"),
            "https://beta.io": page("https://beta.io", "<p>team@beta.io</p>"),
        }
    )
    engines: list[str] = []

    def fake_factory(engine, policy=None):
        engines.append(engine)
        return factory_probe(fetcher)

    monkeypatch.setattr(cli, "make_fetcher_factory", fake_factory)

    def run(*argv):
        return cli.main(["--delay", "0", "--output-dir", str(tmp_path / "out"), *argv])

    run.fetcher = fetcher
    run.engines = engines
    return run


def test_crawls_urls_and_exports(run_cli, tmp_path, capsys):
    code = run_cli("acme.com", "--engine", "http")

    assert code == 0
    out = capsys.readouterr().out
    assert "[1/1] acme.com -> 1 emails, 0 social links" in out
    assert "Scraping completed successfully" in out
    assert run_cli.engines == ["http"]
    written = sorted(p.name for p in (tmp_path / "out").iterdir())
    assert len(written) == 2
    payload = json.loads((tmp_path / "out" / written[1]).read_text(encoding="utf-8"))
    assert payload["results"][0]["emails"] == ["hello@acme.com"]


def test_reads_seed_csv(run_cli, tmp_path):
    seeds = tmp_path / "seeds.csv"
    seeds.write_text("company,website\nBeta,beta.io\n", encoding="utf-8")

    assert run_cli("--input", str(seeds), "acme.com") == 0
    assert run_cli.fetcher.calls == ["https://beta.io", "https://acme.com"]


def test_requires_urls(run_cli):
    with pytest.raises(SystemExit):
        run_cli()
