from __future__ import annotations

import json
from pathlib import Path

import pytest

import pubmed_retrieve_main
from fixtures import esearch_xml

BASE_URL = "https://eutils.example.org/entrez/eutils"
ESEARCH_URL = f"{BASE_URL}/esearch.fcgi"
EFETCH_URL = f"{BASE_URL}/efetch.fcgi"


@pytest.fixture
def config_path(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.delenv("NCBI_API_KEY", raising=False)
    path = tmp_path / "config.yaml"
    path.write_text(
        "pubmed_retrieval:\n"
        "  eutils:\n"
        f"    base_url: {BASE_URL}\n"
        "  network:\n"
        "    max_retries: 1\n"
        "  rate_limit:\n"
        "    rps: 1000\n"
        "  retrieval:\n"
        "    page_size: 2\n"
        "    max_workers: 2\n",
        encoding="utf-8",
    )
    return path


def _mock_eutils(requests_mock, efetch_xml_factory, total: int) -> None:
    def _esearch(request, context):
        offset = int(request.qs["retstart"][0])
        return esearch_xml(total, web_env=f"env{offset}")

    def _efetch(request, context):
        offset = int(request.qs["retstart"][0])
        size = int(request.qs["retmax"][0])
        return efetch_xml_factory(list(range(offset + 1, offset + size + 1)))

    requests_mock.get(ESEARCH_URL, text=_esearch)
    requests_mock.get(EFETCH_URL, content=_efetch)


def test_main_writes_records_to_file(
    tmp_path, config_path, requests_mock, efetch_xml_factory
) -> None:
    _mock_eutils(requests_mock, efetch_xml_factory, total=3)
    output_path = tmp_path / "out" / "records.json"

    exit_code = pubmed_retrieve_main.main(
        [
            "--query",
            "asthma",
            "--config",
            str(config_path),
            "--output",
            str(output_path),
            "--no-progress",
            "--log-level",
            "ERROR",
        ]
    )

    assert exit_code == 0
    data = json.loads(output_path.read_text(encoding="utf-8"))
    assert [record["medline_citation"]["pmid"] for record in data] == [1, 2, 3]
    article = data[0]["medline_citation"]["article"]
    assert article["title"] == "Title 1"
    assert article["journal"]["issns"] == [{"issn_type": "Print", "issn": "0000-0000"}]


def test_main_prints_records_to_stdout(
    capsys, config_path, requests_mock, efetch_xml_factory
) -> None:
    _mock_eutils(requests_mock, efetch_xml_factory, total=1)

    exit_code = pubmed_retrieve_main.main(
        ["--query", "asthma", "--config", str(config_path), "--no-progress"]
    )

    assert exit_code == 0
    data = json.loads(capsys.readouterr().out)
    assert len(data) == 1


def test_count_only_prints_total(capsys, config_path, requests_mock) -> None:
    requests_mock.get(ESEARCH_URL, text=esearch_xml(1234))

    exit_code = pubmed_retrieve_main.main(
        ["--query", "asthma", "--config", str(config_path), "--count-only"]
    )

    assert exit_code == 0
    assert capsys.readouterr().out.strip() == "1234"
    assert requests_mock.call_count == 1
    assert requests_mock.last_request.qs["retmax"] == ["1"]


def test_too_many_matches_exit_with_admission_status(
    config_path, requests_mock
) -> None:
    requests_mock.get(ESEARCH_URL, text=esearch_xml(2001))

    exit_code = pubmed_retrieve_main.main(
        ["--query", "cancer", "--config", str(config_path), "--no-progress"]
    )

    assert exit_code == pubmed_retrieve_main.EXIT_ADMISSION_DENIED
    assert not any(r.url.startswith(EFETCH_URL) for r in requests_mock.request_history)


def test_failed_page_exits_with_failure(
    tmp_path, config_path, requests_mock, efetch_xml_factory
) -> None:
    _mock_eutils(requests_mock, efetch_xml_factory, total=4)
    requests_mock.get(EFETCH_URL, status_code=404, text="gone")
    output_path = tmp_path / "records.json"

    exit_code = pubmed_retrieve_main.main(
        [
            "--query",
            "asthma",
            "--config",
            str(config_path),
            "--output",
            str(output_path),
            "--no-progress",
        ]
    )

    assert exit_code == pubmed_retrieve_main.EXIT_FAILURE
    assert not output_path.exists()


def test_invalid_configuration_exits_with_failure(tmp_path) -> None:
    exit_code = pubmed_retrieve_main.main(
        ["--query", "asthma", "--config", str(tmp_path / "missing.yaml")]
    )

    assert exit_code == pubmed_retrieve_main.EXIT_FAILURE


def test_cli_overrides_are_validated(config_path) -> None:
    exit_code = pubmed_retrieve_main.main(
        ["--query", "asthma", "--config", str(config_path), "--page-size", "5000"]
    )

    assert exit_code == pubmed_retrieve_main.EXIT_FAILURE


def test_cli_overrides_replace_retrieval_settings(config_path) -> None:
    parser = pubmed_retrieve_main._build_parser()
    args = parser.parse_args(
        ["--query", "x", "--page-size", "50", "--max-workers", "1", "--timeout", "9"]
    )
    config = pubmed_retrieve_main.load_config(config_path)

    updated = pubmed_retrieve_main._apply_cli_overrides(config, args)

    assert updated.retrieval.page_size == 50
    assert updated.retrieval.max_workers == 1
    assert updated.retrieval.timeout_sec == 9.0
    assert config.retrieval.page_size == 2
