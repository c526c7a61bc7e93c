import pytest

ADMIN = {"X-User-Id": "mod", "X-User-Roles": "admin"}


async def _report(api_client, reporter, content_id="p1", reason="spam"):
	return await api_client.post(
		"/api/v1/reports",
		json={"content_id": content_id, "author_id": "author", "reason": reason},
		headers={"X-User-Id": reporter},
	)


@pytest.mark.asyncio
async def test_reports_hide_content_at_threshold(api_client, store, make_user):
	await make_user("author", trustScore=50)
	responses = [await _report(api_client, reporter) for reporter in ("a", "b", "c")]
	assert [r.status_code for r in responses] == [201, 201, 201]
	assert [r.json()["hidden_now"] for r in responses] == [False, False, True]
	record = responses[-1].json()["record"]
	assert record["status"] == "hidden"
	assert record["report_count"] == 3
	assert (await store.get("users", "author"))["trustScore"] == 45


@pytest.mark.asyncio
async def test_pending_queue_is_admin_only(api_client):
	await _report(api_client, "a", content_id="low", reason="spam")
	await _report(api_client, "a", content_id="high", reason="violence")

	response = await api_client.get("/api/v1/moderation/pending", headers=ADMIN)
	assert response.status_code == 200
	assert [item["content_id"] for item in response.json()["items"]] == ["high", "low"]

	response = await api_client.get("/api/v1/moderation/pending", headers={"X-User-Id": "a"})
	assert response.status_code == 403


@pytest.mark.asyncio
async def test_resolve_and_audit_log(api_client, store, make_user):
	for user_id in ("author", "a"):
		await make_user(user_id, trustScore=50)
	await _report(api_client, "a")

	response = await api_client.post("/api/v1/moderation/p1/resolve", json={"action": "uphold", "reason": "spam"}, headers=ADMIN)
	assert response.status_code == 200
	assert response.json()["applied"] is True
	assert response.json()["record"]["status"] == "removed"
	assert (await store.get("users", "a"))["trustScore"] == 53

	again = await api_client.post("/api/v1/moderation/p1/resolve", json={"action": "dismiss"}, headers=ADMIN)
	assert again.json()["applied"] is False

	audit = await api_client.get("/api/v1/moderation/p1/audit", headers=ADMIN)
	assert [entry["action"] for entry in audit.json()] == ["post_reported", "report_upheld"]


@pytest.mark.asyncio
async def test_resolve_validation(api_client):
	await _report(api_client, "a")
	response = await api_client.post("/api/v1/moderation/p1/resolve", json={"action": "approve"}, headers=ADMIN)
	assert response.status_code == 422
	response = await api_client.post("/api/v1/moderation/nope/resolve", json={"action": "remove"}, headers=ADMIN)
	assert response.status_code == 404


@pytest.mark.asyncio
async def test_reset_report_count(api_client):
	for reporter in ("a", "b", "c"):
		await _report(api_client, reporter)
	response = await api_client.post("/api/v1/moderation/p1/reset", json={"reason": "brigade"}, headers=ADMIN)
	assert response.status_code == 200
	payload = response.json()
	assert payload["report_count"] == 0
	assert payload["status"] == "active"
	assert payload["hidden_at"] is not None


@pytest.mark.asyncio
async def test_self_report_is_rejected(api_client, store):
	response = await _report(api_client, "author")
	assert response.status_code == 400
	assert response.json()["detail"] == "invalid_argument"
	assert store.dump("moderation_queue") == {}
