from datetime import datetime, timezone

import pytest
import requests

from threat_stream.config import FetchSettings
from threat_stream.models import EntryKind, SeverityTier
from threat_stream.vulnerabilities import (
    NO_DESCRIPTION,
    UNKNOWN_SOFTWARE,
    extract_severity,
    extract_software,
    fetch_vulnerabilities,
    format_query_timestamp,
    load_vulnerabilities,
    normalize_vulnerability,
)

from conftest import FakeResponse, FakeSession

SETTINGS = FetchSettings()
START = datetime(2024, 5, 9, 12, 0, tzinfo=timezone.utc)
END = datetime(2024, 5, 10, 12, 0, tzinfo=timezone.utc)


def _cve(cve_id="CVE-2024-0001", published="2024-05-10T08:15:00.000", **extra):
    record = {
        "id": cve_id,
        "published": published,
        "descriptions": [{"lang": "en", "value": "Buffer overflow in widget."}],
    }
    record.update(extra)
    return record


def _metric(score):
    return [{"cvssData": {"baseScore": score}}]


@pytest.mark.parametrize(
    "score, tier",
    [
        (9.8, SeverityTier.CRITICAL),
        (9.0, SeverityTier.CRITICAL),
        (7.2, SeverityTier.HIGH),
        (7.0, SeverityTier.HIGH),
        (4.0, SeverityTier.MEDIUM),
    ],
)
def test_severity_tier_from_v31_metric(score, tier):
    entry = normalize_vulnerability(_cve(metrics={"cvssMetricV31": _metric(score)}))

    assert entry.severity == score
    assert entry.tier is tier


def test_missing_metrics_scores_zero_medium():
    entry = normalize_vulnerability(_cve())

    assert entry.severity == 0
    assert entry.tier is SeverityTier.MEDIUM


def test_metric_preference_order():
    metrics = {
        "cvssMetricV2": _metric(5.0),
        "cvssMetricV30": _metric(8.1),
        "cvssMetricV31": _metric(9.1),
    }
    assert extract_severity({"metrics": metrics}) == 9.1

    del metrics["cvssMetricV31"]
    assert extract_severity({"metrics": metrics}) == 8.1

    del metrics["cvssMetricV30"]
    assert extract_severity({"metrics": metrics}) == 5.0

    assert extract_severity({"metrics": {"cvssMetricV31": []}}) == 0


def test_software_label_from_cpe_criteria():
    configurations = [
        {
            "nodes": [
                {"cpeMatch": [{"vulnerable": True}]},
                {
                    "cpeMatch": [
                        {"criteria": "cpe:2.3"},
                        {"criteria": "cpe:2.3:a:microsoft:windows_10:1809:*:*:*:*:*:*:*"},
                        {"criteria": "cpe:2.3:a:apple:macos:*:*:*:*:*:*:*:*"},
                    ]
                },
            ]
        },
        {"nodes": [{"cpeMatch": [{"criteria": "cpe:2.3:o:linux:kernel:*"}]}]},
    ]

    assert extract_software({"configurations": configurations}) == "MICROSOFT WINDOWS 10"


def test_software_label_unknown_without_configurations():
    assert extract_software({}) == UNKNOWN_SOFTWARE
    assert (
        extract_software({"configurations": [{"nodes": [{"cpeMatch": [{"criteria": "a:b"}]}]}]})
        == UNKNOWN_SOFTWARE
    )


def test_normalize_passes_identity_and_timestamp_through():
    entry = normalize_vulnerability(_cve(descriptions=[]))

    assert entry.identity == "CVE-2024-0001"
    assert entry.kind is EntryKind.VULNERABILITY
    assert entry.timestamp == datetime(2024, 5, 10, 8, 15, tzinfo=timezone.utc)
    assert entry.body == NO_DESCRIPTION
    assert entry.display_source == "NVD ALERT"
    assert entry.link == "https://nvd.nist.gov/vuln/detail/CVE-2024-0001"


def test_normalize_skips_records_without_id():
    assert normalize_vulnerability({"published": "2024-05-10T08:15:00.000"}) is None


def test_format_query_timestamp_has_no_zone_suffix():
    value = datetime(2024, 5, 10, 14, 0, 5, 123456, tzinfo=timezone.utc)

    assert format_query_timestamp(value) == "2024-05-10T14:00:05.123"


def test_load_vulnerabilities_builds_date_ranged_query():
    payload = {"vulnerabilities": [{"cve": _cve()}, {"cve": _cve("CVE-2024-0002")}, {}]}
    session = FakeSession(FakeResponse(payload))

    entries = load_vulnerabilities(START, END, SETTINGS, session=session)

    assert [entry.identity for entry in entries] == ["CVE-2024-0001", "CVE-2024-0002"]
    call = session.calls[0]
    assert call["url"] == (
        "https://services.nvd.nist.gov/rest/json/cves/2.0"
        "?pubStartDate=2024-05-09T12:00:00.000&pubEndDate=2024-05-10T12:00:00.000"
    )
    assert 14.0 < call["timeout"] <= 15.0


def test_missing_vulnerabilities_key_is_empty():
    assert load_vulnerabilities(START, END, SETTINGS, session=FakeSession(FakeResponse({}))) == []


@pytest.mark.parametrize(
    "result",
    [
        requests.exceptions.ReadTimeout("slow"),
        requests.exceptions.ConnectionError("down"),
        FakeResponse(content=b"<html>busy</html>"),
        FakeResponse({"vulnerabilities": []}, status_code=503),
        FakeResponse({"vulnerabilities": "nope"}),
        FakeResponse([1, 2]),
    ],
)
def test_fetch_vulnerabilities_absorbs_failures(result):
    assert fetch_vulnerabilities(START, END, SETTINGS, session=FakeSession(result)) == []


@pytest.mark.parametrize(
    "oddity",
    [
        {"metrics": {"cvssMetricV31": {"cvssData": {"baseScore": 9.8}}}},
        {"metrics": {"cvssMetricV31": ["not a dict"]}},
        {"metrics": {"cvssMetricV31": [{"cvssData": "9.8"}]}},
        {"metrics": []},
        {"configurations": {"nodes": []}},
        {"configurations": [{"nodes": {"cpeMatch": []}}]},
        {"configurations": [{"nodes": [{"cpeMatch": ["cpe:2.3:a:x:y"]}]}]},
        {"configurations": [{"nodes": [{"cpeMatch": [{"criteria": 42}]}]}]},
        {"descriptions": "text"},
        {"descriptions": [{"value": None}, "junk"]},
    ],
)
def test_oddly_shaped_record_does_not_drop_the_batch(oddity):
    payload = {
        "vulnerabilities": [
            {"cve": _cve("CVE-2024-0001", metrics={"cvssMetricV31": _metric(7.5)})},
            {"cve": _cve("CVE-2024-0002", **oddity)},
        ]
    }

    entries = fetch_vulnerabilities(
        START, END, SETTINGS, session=FakeSession(FakeResponse(payload))
    )

    by_id = {entry.identity: entry for entry in entries}
    assert by_id["CVE-2024-0001"].severity == 7.5
    odd = by_id["CVE-2024-0002"]
    assert odd.severity == 0
    assert odd.software == UNKNOWN_SOFTWARE
    assert odd.body


def test_record_with_non_string_id_is_skipped():
    payload = {"vulnerabilities": [{"cve": _cve(cve_id=["CVE-1"])}, {"cve": _cve()}]}

    entries = load_vulnerabilities(
        START, END, SETTINGS, session=FakeSession(FakeResponse(payload))
    )

    assert [entry.identity for entry in entries] == ["CVE-2024-0001"]
