"""Workflow API tests over ASGI against the SQLite test database."""

import json

import pytest

from app.application.use_cases.executions.execution_operations import sign_webhook_body
from app.core.config import get_settings
from tests.api.payloads import create_active, workflow_payload
from tests.conftest import OTHER_TENANT_ID

pytestmark = pytest.mark.requires_db

BASE = "/api/v1/workflows"


async def test_create_returns_disabled_draft(client, tenant_headers) -> None:
    payload = workflow_payload()
    payload["settings"]["enabled"] = True

    response = await client.post(BASE, json=payload, headers=tenant_headers)

    assert response.status_code == 201
    data = response.json()
    assert data["status"] == "draft"
    assert data["version"] == 1
    assert data["settings"]["enabled"] is False
    assert data["execution_count"] == 0
    assert [n["id"] for n in data["nodes"]] == ["start", "set", "end"]


async def test_create_rejects_invalid_payload(client, tenant_headers) -> None:
    response = await client.post(BASE, json={"name": ""}, headers=tenant_headers)
    assert response.status_code == 422
    response = await client.post(
        BASE, json=workflow_payload(settings={"on_error": "explode"}), headers=tenant_headers
    )
    assert response.status_code == 422


async def test_workflows_are_tenant_scoped(client, tenant_headers) -> None:
    created = (await client.post(BASE, json=workflow_payload(), headers=tenant_headers)).json()

    response = await client.get(f"{BASE}/{created['id']}", headers={"X-Tenant-ID": OTHER_TENANT_ID})

    assert response.status_code == 404
    assert response.json()["error"] == "RESOURCE_NOT_FOUND"
    listing = await client.get(BASE, headers={"X-Tenant-ID": OTHER_TENANT_ID})
    assert listing.json()["total"] == 0


async def test_list_filters_by_status(client, tenant_headers) -> None:
    await create_active(client, tenant_headers, workflow_payload(name="Active one"))
    await client.post(BASE, json=workflow_payload(name="Draft one"), headers=tenant_headers)

    response = await client.get(BASE, params={"status": "active"}, headers=tenant_headers)

    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 1
    assert data["items"][0]["name"] == "Active one"

    searched = await client.get(BASE, params={"search": "draft"}, headers=tenant_headers)
    assert [w["name"] for w in searched.json()["items"]] == ["Draft one"]


async def test_patch_structure_bumps_version(client, tenant_headers) -> None:
    created = (await client.post(BASE, json=workflow_payload(), headers=tenant_headers)).json()
    nodes = created["nodes"] + [{"id": "log", "type": "action", "config": {"module": "workflow", "action": "log"}}]

    renamed = await client.patch(f"{BASE}/{created['id']}", json={"name": "Renamed"}, headers=tenant_headers)
    edited = await client.patch(f"{BASE}/{created['id']}", json={"nodes": nodes}, headers=tenant_headers)

    assert renamed.json()["version"] == 1
    assert edited.status_code == 200
    assert edited.json()["version"] == 2


async def test_enabling_workflow_without_trigger_reports_errors(client, tenant_headers) -> None:
    payload = workflow_payload()
    payload["nodes"] = payload["nodes"][1:]
    payload["edges"] = payload["edges"][1:]
    created = (await client.post(BASE, json=payload, headers=tenant_headers)).json()

    response = await client.post(f"{BASE}/{created['id']}/toggle", json={"enabled": True}, headers=tenant_headers)

    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "ACTIVATION_ERROR"
    assert "Workflow must have a trigger node" in [e["message"] for e in body["details"]["errors"]]
    current = (await client.get(f"{BASE}/{created['id']}", headers=tenant_headers)).json()
    assert current["status"] == "draft"
    assert current["settings"]["enabled"] is False


async def test_validate_endpoint_does_not_change_workflow(client, tenant_headers) -> None:
    created = (await client.post(BASE, json=workflow_payload(), headers=tenant_headers)).json()

    response = await client.post(f"{BASE}/{created['id']}/validate", headers=tenant_headers)

    assert response.status_code == 200
    assert response.json() == {"valid": True, "errors": [], "warnings": []}
    current = (await client.get(f"{BASE}/{created['id']}", headers=tenant_headers)).json()
    assert current["status"] == "draft"


async def test_execute_runs_synchronously_and_updates_metrics(client, tenant_headers) -> None:
    workflow = await create_active(client, tenant_headers, workflow_payload())

    response = await client.post(
        f"{BASE}/{workflow['id']}/execute",
        json={"trigger_data": {"amount": 5}},
        headers={**tenant_headers, "X-User-ID": "u1"},
    )

    assert response.status_code == 202
    run = response.json()
    assert run["status"] == "completed"
    assert run["output"] == {"total": 5}
    assert run["triggered_by_user"] == "u1"
    assert [r["status"] for r in run["node_executions"]] == ["completed"] * 3

    current = (await client.get(f"{BASE}/{workflow['id']}", headers=tenant_headers)).json()
    assert current["execution_count"] == 1
    assert current["metrics"]["success_rate_percent"] == pytest.approx(100.0)

    history = await client.get(f"{BASE}/{workflow['id']}/executions", headers=tenant_headers)
    assert history.json()["total"] == 1


async def test_execute_async_workflow_returns_pending_run(client, tenant_headers) -> None:
    workflow = await create_active(client, tenant_headers, workflow_payload(run_async=True))

    response = await client.post(f"{BASE}/{workflow['id']}/execute", headers=tenant_headers)

    assert response.status_code == 202
    assert response.json()["status"] == "pending"


async def test_execute_disabled_workflow_conflicts(client, tenant_headers) -> None:
    created = (await client.post(BASE, json=workflow_payload(), headers=tenant_headers)).json()

    response = await client.post(f"{BASE}/{created['id']}/execute", headers=tenant_headers)

    assert response.status_code == 409
    assert response.json()["error"] == "WORKFLOW_NOT_ENABLED"


async def test_clone_archive_and_delete(client, tenant_headers) -> None:
    workflow = await create_active(client, tenant_headers, workflow_payload())

    clone = await client.post(f"{BASE}/{workflow['id']}/clone", json={"name": "Copy"}, headers=tenant_headers)
    assert clone.status_code == 201
    assert clone.json()["name"] == "Copy"
    assert clone.json()["status"] == "draft"

    archived = await client.post(f"{BASE}/{workflow['id']}/archive", headers=tenant_headers)
    assert archived.json()["status"] == "archived"

    assert (await client.delete(f"{BASE}/{workflow['id']}", headers=tenant_headers)).status_code == 204
    assert (await client.get(f"{BASE}/{workflow['id']}", headers=tenant_headers)).status_code == 404


async def test_event_dispatch_starts_listening_workflows(client, tenant_headers) -> None:
    trigger = {
        "type": "event",
        "module": "ticket",
        "event": "created",
        "conditions": [{"field": "priority", "operator": "equals", "value": "high"}],
    }
    await create_active(client, tenant_headers, workflow_payload(trigger=trigger))

    low = await client.post(
        f"{BASE}/events",
        json={"module": "ticket", "event": "created", "data": {"priority": "low", "amount": 1}},
        headers=tenant_headers,
    )
    high = await client.post(
        f"{BASE}/events",
        json={"module": "ticket", "event": "created", "data": {"priority": "high", "amount": 2}},
        headers=tenant_headers,
    )

    assert low.status_code == 202
    assert low.json()["executions"] == []
    runs = high.json()["executions"]
    assert len(runs) == 1
    assert runs[0]["triggered_by"] == "event"
    assert runs[0]["status"] == "completed"


async def test_webhook_requires_valid_signature(client, tenant_headers) -> None:
    trigger = {"type": "webhook", "webhook": {"url": "/hooks/orders", "secret": "hook-secret"}}
    workflow = await create_active(client, tenant_headers, workflow_payload(trigger=trigger))
    body = json.dumps({"amount": 9}).encode()
    header = get_settings().webhook_signature_header

    bad = await client.post(
        f"{BASE}/{workflow['id']}/webhook",
        content=body,
        headers={**tenant_headers, header: "sha256=00", "Content-Type": "application/json"},
    )
    good = await client.post(
        f"{BASE}/{workflow['id']}/webhook",
        content=body,
        headers={
            **tenant_headers,
            header: sign_webhook_body("hook-secret", body),
            "Content-Type": "application/json",
        },
    )

    assert bad.status_code == 401
    assert good.status_code == 202
    assert good.json()["triggered_by"] == "webhook"
    assert good.json()["output"] == {"total": 9}


async def test_stats(client, tenant_headers) -> None:
    workflow = await create_active(client, tenant_headers, workflow_payload())
    await client.post(BASE, json=workflow_payload(name="Draft"), headers=tenant_headers)
    await client.post(f"{BASE}/{workflow['id']}/execute", json={"trigger_data": {"amount": 1}}, headers=tenant_headers)

    response = await client.get(f"{BASE}/stats", headers=tenant_headers)

    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 2
    assert data["by_status"]["active"] == 1
    assert data["by_status"]["draft"] == 1
    assert data["executions_today"] == 1
