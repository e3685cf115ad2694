import pytest
from httpx import AsyncClient

from project_console.api.endpoints.reports import run_report
from project_console.core.config import Settings, settings
from project_console.core.engine import pipeline

from fakes import PO_IDS, QS_IDS, fake_field, populate_org

QUAL_STEP_URL = "/reports/active-contributors-by-qual-step"
PROJECT_URL = "/reports/active-contributors-by-project"


@pytest.mark.asyncio
async def test_reports_require_authentication(client: AsyncClient):
    response = await client.get(QUAL_STEP_URL)
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_qual_step_report_success_shape(client: AsyncClient, store, auth_headers_viewer):
    populate_org(store)

    response = await client.get(QUAL_STEP_URL, headers=auth_headers_viewer)

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["total"] == 2
    assert body["hasMore"] is False
    assert body["partial"] is False
    assert body["timedOut"] is False
    assert isinstance(body["executionTimeMs"], int)
    assert "lastRefreshed" in body
    assert [row["qualStepName"] for row in body["data"]] == ["Alpha Step", "Beta Step"]


@pytest.mark.asyncio
async def test_qual_step_report_paging_params(client: AsyncClient, store, auth_headers_viewer):
    populate_org(store)

    response = await client.get(
        QUAL_STEP_URL, params={"offset": 1, "limit": 1}, headers=auth_headers_viewer
    )

    body = response.json()
    assert body["offset"] == 1
    assert body["limit"] == 1
    assert [row["qualStepName"] for row in body["data"]] == ["Beta Step"]


@pytest.mark.asyncio
async def test_invalid_limit_rejected(client: AsyncClient, auth_headers_viewer):
    response = await client.get(QUAL_STEP_URL, params={"limit": 0}, headers=auth_headers_viewer)
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_injection_search_returns_400_error_shape(client: AsyncClient, store, auth_headers_viewer):
    populate_org(store)

    response = await client.get(
        QUAL_STEP_URL, params={"search": "' OR 1=1 --"}, headers=auth_headers_viewer
    )

    assert response.status_code == 400
    body = response.json()
    assert set(body) == {"success", "error", "executionTimeMs"}
    assert body["success"] is False
    assert store.calls == []


@pytest.mark.asyncio
async def test_missing_object_returns_404(client: AsyncClient, auth_headers_viewer):
    response = await client.get(PROJECT_URL, headers=auth_headers_viewer)

    assert response.status_code == 404
    body = response.json()
    assert body["success"] is False
    assert "Project__c" in body["error"]


@pytest.mark.asyncio
async def test_upstream_failure_returns_502(client: AsyncClient, store, auth_headers_viewer):
    populate_org(store)
    store.fail_when(lambda q: "FROM Project__c" in q)

    response = await client.get(PROJECT_URL, headers=auth_headers_viewer)

    assert response.status_code == 502
    assert response.json()["success"] is False


@pytest.mark.asyncio
async def test_project_report(client: AsyncClient, store, auth_headers_viewer):
    populate_org(store)

    response = await client.get(PROJECT_URL, params={"search": "apo"}, headers=auth_headers_viewer)

    assert response.status_code == 200
    data = response.json()["data"]
    assert [(row["projectName"], row["activeContributorCount"]) for row in data] == [("Apollo", 5)]


@pytest.mark.asyncio
async def test_qual_step_drilldown(client: AsyncClient, store, auth_headers_viewer):
    populate_org(store)

    response = await client.get(f"{QUAL_STEP_URL}/{QS_IDS[1]}/contributors", headers=auth_headers_viewer)

    assert response.status_code == 200
    names = [row["contributorName"] for row in response.json()["data"]]
    assert names == ["Ana", "Dev", "Eli"]


@pytest.mark.asyncio
async def test_drilldown_rejects_malformed_id(client: AsyncClient, store, auth_headers_viewer):
    response = await client.get(f"{QUAL_STEP_URL}/not-an-id/contributors", headers=auth_headers_viewer)

    assert response.status_code == 400
    assert response.json()["success"] is False
    assert store.calls == []


# ============================================================================
# TIMEOUTS
# ============================================================================


@pytest.mark.asyncio
async def test_slow_store_returns_flagged_data_not_504(client: AsyncClient, store, auth_headers_viewer, monkeypatch):
    populate_org(store)
    store.latency = 0.1
    monkeypatch.setattr(settings, "AGGREGATE_TIMEOUT_SECONDS", 0.05)
    monkeypatch.setattr(settings, "REQUEST_TIMEOUT_SECONDS", 5.0)

    response = await client.get(QUAL_STEP_URL, headers=auth_headers_viewer)

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["timedOut"] is True


@pytest.mark.asyncio
async def test_inbound_timeout_still_answers_504(store):
    populate_org(store)
    store.latency = 0.2

    response = await run_report(
        pipeline.active_contributors_by_qual_step, 10.0, 0.05, store=store
    )

    assert response.status_code == 504


@pytest.mark.asyncio
async def test_run_report_rejects_timeout_not_above_deadline(store):
    with pytest.raises(ValueError):
        await run_report(pipeline.active_contributors_by_qual_step, 5.0, 5.0, store=store)
    assert store.calls == []


def test_settings_reject_inbound_timeout_below_deadline():
    with pytest.raises(ValueError):
        Settings(AGGREGATE_TIMEOUT_SECONDS=300.0, REQUEST_TIMEOUT_SECONDS=240.0)


# ============================================================================
# PO PRODUCTIVITY TARGETS
# ============================================================================


@pytest.mark.asyncio
async def test_po_productivity_targets_route(client: AsyncClient, store, auth_headers_viewer):
    store.add_object(
        "Project_Objective__c",
        [fake_field("Name"), fake_field("Status__c"), fake_field("Target_Contributors__c", "double")],
        rows=[
            {"Id": PO_IDS[0], "Name": "Objective A", "Status__c": "Open", "Target_Contributors__c": 4},
            {"Id": PO_IDS[1], "Name": "Objective B", "Status__c": "Closed", "Target_Contributors__c": 9},
        ],
    )

    response = await client.get("/reports/po-productivity-targets", headers=auth_headers_viewer)

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["data"] == [{"id": PO_IDS[0], "name": "Objective A", "status": "Open", "targetContributors": 4}]
    assert [f["name"] for f in body["availableFields"]] == ["Target_Contributors__c"]


@pytest.mark.asyncio
async def test_po_productivity_targets_requires_authentication(client: AsyncClient):
    response = await client.get("/reports/po-productivity-targets")
    assert response.status_code == 401
