"""
Test suite for the stats service HTTP endpoints.

The fact source is replaced through FastAPI dependency overrides, so no
database is touched.
"""
import pytest
from fastapi.testclient import TestClient

from aggregator.errors import FetchError
from aggregator.schemas import GroupDefinition
from aggregator.service import app, get_repository, report_cache
from aggregator.strategies import get_strategy

from conftest import CHAR1, CHAR2, CHAR3


client = TestClient(app)

KILL_RECORDS = [
    {
        "killmail_id": 1,
        "kill_time": "2024-03-04T12:00:00Z",
        "character_id": CHAR1,
        "attackers": [{"character_id": CHAR1}],
        "total_value": 150_000_000,
    },
    {
        "killmail_id": 2,
        "kill_time": "2024-03-05T08:00:00Z",
        "character_id": CHAR2,
        "attackers": [{"character_id": CHAR2}, {"character_id": CHAR3}],
        "total_value": 2_000,
    },
]

LOSS_RECORDS = [
    {"killmail_id": 10, "kill_time": "2024-03-06T00:00:00Z", "character_id": CHAR1, "total_value": 900},
]


class FakeRepository:
    """In-memory stand-in for the database repository."""

    def __init__(self, fail_with=None):
        self.fail_with = fail_with
        self.fact_calls = 0
        self.groups = [
            GroupDefinition(
                id="A", display_name="Alpha", member_character_ids={CHAR1},
                main_character_id=CHAR1, character_names={CHAR1: "Pilot One"},
            ),
            GroupDefinition(id="B", display_name="Bravo", member_character_ids={CHAR2, CHAR3}),
        ]

    async def fetch_groups(self, ids=None):
        if ids:
            return [g for g in self.groups if g.id in ids]
        return list(self.groups)

    async def fetch_facts(self, character_ids, start_time, end_time, report_type="kills"):
        self.fact_calls += 1
        if self.fail_with is not None:
            raise self.fail_with
        records = LOSS_RECORDS if report_type == "losses" else KILL_RECORDS
        extractor = get_strategy("losses" if report_type == "losses" else "kills")
        facts, warnings = extractor.extract_all(records)
        facts = [f for f in facts if f.primary_character_id in character_ids]
        return facts, warnings


@pytest.fixture
def fake_repository():
    """Install a fake repository and clear cached reports around each test."""
    repository = FakeRepository()
    app.dependency_overrides[get_repository] = lambda: repository
    report_cache.clear()
    yield repository
    app.dependency_overrides.clear()
    report_cache.clear()


class TestHealthEndpoint:
    """Test health check."""

    def test_health(self):
        """Test the service reports healthy."""
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


class TestAggregateEndpoint:
    """Test aggregation of caller-supplied snapshots."""

    def _payload(self, **overrides):
        payload = {
            "facts": [
                {"key": "f1", "timestamp": "2024-03-04T12:00:00Z", "primary_character_id": CHAR1,
                 "participant_character_ids": [CHAR1], "value": 1500},
                {"key": "f2", "timestamp": "2024-03-05T12:00:00Z", "primary_character_id": CHAR2,
                 "participant_character_ids": [CHAR2, CHAR3], "value": 2_500_000_000},
            ],
            "groups": [
                {"id": "A", "display_name": "Alpha", "member_character_ids": [CHAR1]},
                {"id": "B", "display_name": "Bravo", "member_character_ids": [CHAR2, CHAR3]},
            ],
            "start_time": "2024-03-04T00:00:00Z",
            "end_time": "2024-03-07T00:00:00Z",
        }
        payload.update(overrides)
        return payload

    def test_aggregate_success(self):
        """Test a snapshot is aggregated per group."""
        response = client.post("/aggregate", json=self._payload())

        assert response.status_code == 200
        data = response.json()
        assert data["report_type"] == "activity"
        assert data["granularity"] == "day"
        assert [r["group_id"] for r in data["results"]] == ["A", "B"]
        assert data["results"][0]["formatted_total_value"] == "1.5K"
        assert data["results"][1]["formatted_total_value"] == "2.50B"
        assert data["results"][1]["group_solo_count"] == 1
        assert data["summary"]["top_performer_group_id"] == "B"

    def test_aggregate_with_strategy(self):
        """Test the report type selects the summary wording."""
        response = client.post("/aggregate?report_type=kills", json=self._payload())
        assert response.status_code == 200
        assert response.json()["results"][0]["summary_text"].startswith("Total kills: 1")

    def test_aggregate_invalid_range(self):
        """Test an inverted range is a 400 with issues."""
        payload = self._payload(start_time="2024-03-07T00:00:00Z", end_time="2024-03-04T00:00:00Z")
        response = client.post("/aggregate", json=payload)

        assert response.status_code == 400
        assert response.json()["detail"]["issues"][0]["field"] == "dateRange"

    def test_aggregate_unknown_report(self):
        """Test an unknown report type is a 404."""
        response = client.post("/aggregate?report_type=bogus", json=self._payload())
        assert response.status_code == 404

    def test_aggregate_malformed_body(self):
        """Test schema violations are rejected."""
        payload = self._payload()
        payload["facts"][0]["value"] = -5
        response = client.post("/aggregate", json=payload)
        assert response.status_code == 422


class TestReportEndpoints:
    """Test repository-backed reports."""

    def test_kills_report(self, fake_repository):
        """Test a kills report for all stored groups."""
        response = client.get("/reports/kills", params={
            "start": "2024-03-04T00:00:00Z", "end": "2024-03-07T00:00:00Z",
        })

        assert response.status_code == 200
        data = response.json()
        assert data["results"][0]["display_name"] == "Pilot One"
        assert data["results"][0]["high_value_count"] == 1
        assert data["results"][1]["summary_text"] == "Total kills: 1\nSolo kills: 1 (100%)"

    def test_group_filter(self, fake_repository):
        """Test group ids limit the report."""
        response = client.get("/reports/kills", params={
            "start": "2024-03-04T00:00:00Z", "end": "2024-03-07T00:00:00Z", "group_ids": ["B"],
        })
        assert response.status_code == 200
        assert [r["group_id"] for r in response.json()["results"]] == ["B"]

    def test_report_cached(self, fake_repository):
        """Test a repeated request is served from the cache."""
        params = {"start": "2024-03-04T00:00:00Z", "end": "2024-03-07T00:00:00Z"}
        first = client.get("/reports/kills", params=params)
        second = client.get("/reports/kills", params=params)

        assert first.json() == second.json()
        assert fake_repository.fact_calls == 1

    def test_unknown_report(self, fake_repository):
        """Test an unknown report type is a 404."""
        response = client.get("/reports/bogus", params={
            "start": "2024-03-04T00:00:00Z", "end": "2024-03-07T00:00:00Z",
        })
        assert response.status_code == 404
        assert "Unknown report type" in response.json()["detail"]

    def test_bad_timestamp(self, fake_repository):
        """Test unparseable times are a 400."""
        response = client.get("/reports/kills", params={"start": "yesterday", "end": "2024-03-07T00:00:00Z"})
        assert response.status_code == 400

    def test_inverted_range(self, fake_repository):
        """Test an inverted range is a 400."""
        response = client.get("/reports/kills", params={
            "start": "2024-03-07T00:00:00Z", "end": "2024-03-04T00:00:00Z",
        })
        assert response.status_code == 400

    def test_heatmap_report(self, fake_repository):
        """Test the heatmap report carries hour counts and the peak hour."""
        response = client.get("/reports/heatmap", params={
            "start": "2024-03-04T00:00:00Z", "end": "2024-03-07T00:00:00Z", "group_ids": ["A"],
        })

        assert response.status_code == 200
        result = response.json()["results"][0]
        assert result["hour_of_day_counts"][12] == 1
        assert sum(result["hour_of_day_counts"]) == 1
        assert result["summary_text"] == "Peak activity: 12:00 UTC (1 kills)\nActive hours: 1/24"

    def test_distribution_report(self, fake_repository):
        """Test the distribution report bands kills by attacker count."""
        response = client.get("/reports/distribution", params={
            "start": "2024-03-04T00:00:00Z", "end": "2024-03-07T00:00:00Z", "group_ids": ["B"],
        })

        assert response.status_code == 200
        result = response.json()["results"][0]
        assert result["group_size_distribution"] == {
            "solo": 0, "small": 1, "medium": 0, "large": 0, "blob": 0,
        }
        assert result["summary_text"].startswith("Solo: 0 (0%)\nSmall: 1 (100%)")

    def test_permanent_fetch_failure(self, fake_repository):
        """Test a non-retryable upstream failure is a 503."""
        fake_repository.fail_with = FetchError("upstream down", retryable=False)
        response = client.get("/reports/kills", params={
            "start": "2024-03-04T00:00:00Z", "end": "2024-03-07T00:00:00Z",
        })
        assert response.status_code == 503
        assert fake_repository.fact_calls == 1

    def test_ratio_report(self, fake_repository):
        """Test the kill/loss ratio report."""
        response = client.get("/reports/ratio", params={
            "start": "2024-03-04T00:00:00Z", "end": "2024-03-07T00:00:00Z",
        })

        assert response.status_code == 200
        data = response.json()
        ratios = {r["group_id"]: r for r in data["results"]}
        assert ratios["A"]["kills"] == 1
        assert ratios["A"]["losses"] == 1
        assert ratios["A"]["efficiency"] == 50.0
        assert ratios["B"]["ratio"] == 1.0
        assert data["best_group_id"] == "A"
