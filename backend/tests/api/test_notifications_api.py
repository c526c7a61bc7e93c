import pytest

USER = {"X-User-Id": "u1"}


@pytest.mark.asyncio
async def test_register_and_unregister_push_token(api_client, store, make_user):
	await make_user("u1")
	response = await api_client.post("/api/v1/notifications/tokens", json={"token": "device-1"}, headers=USER)
	assert response.status_code == 200
	assert response.json() == {"success": True, "token_count": 1}
	await api_client.post("/api/v1/notifications/tokens", json={"token": "device-2"}, headers=USER)
	assert (await store.get("users", "u1"))["fcmTokens"] == ["device-1", "device-2"]

	response = await api_client.request("DELETE", "/api/v1/notifications/tokens", json={"token": "device-1"}, headers=USER)
	assert response.status_code == 200
	assert (await store.get("users", "u1"))["fcmTokens"] == ["device-2"]


@pytest.mark.asyncio
async def test_register_token_for_unknown_user(api_client):
	response = await api_client.post("/api/v1/notifications/tokens", json={"token": "device-1"}, headers={"X-User-Id": "ghost"})
	assert response.status_code == 404


@pytest.mark.asyncio
async def test_inbox_lists_own_notifications(api_client, make_user, moderation_container):
	await make_user("u1")
	service = moderation_container.get_notification_service()
	await service.notify_user("u1", title="Hello", body="world", kind="comment")
	await service.notify_user("u2", title="Other", body="user", kind="comment")

	response = await api_client.get("/api/v1/notifications", headers=USER)
	assert response.status_code == 200
	assert [item["title"] for item in response.json()] == ["Hello"]
