from nonebug import App
import pytest

STATUS = (
    '{"version":{"name":"1.19.2","protocol":760},'
    '"players":{"max":100,"online":5,"sample":[{"name":"Steve","id":"u-1"}]},'
    '"description":"Caf\\\\u00e9"}'
)


async def test_missing_address(app: App):
    async with app.test_server() as ctx:
        client = ctx.get_client()
        response = await client.get("/api/server-status")
        assert response.status_code == 400
        assert response.json() == {"error": "服务器地址不能为空"}

        response = await client.get("/api/server-status?address=")
        assert response.status_code == 400


async def test_query_success(app: App, fake_server, make_response):
    server = fake_server(make_response(STATUS))

    async with app.test_server() as ctx:
        client = ctx.get_client()
        response = await client.get(
            f"/api/server-status?address=127.0.0.1:{server.port}"
        )

    assert response.status_code == 200
    assert response.json() == {
        "version": {"name": "1.19.2", "protocol": 760},
        "players": {
            "max": 100,
            "online": 5,
            "sample": [{"name": "Steve", "id": "u-1"}],
        },
        "description": {"text": "Café", "extra": []},
    }


async def test_query_failure(app: App, monkeypatch: pytest.MonkeyPatch):
    import nonebot_plugin_mcstatus.api as api
    from nonebot_plugin_mcstatus.exception import Phase, ServerConnectionError

    async def refuse(address: str):
        raise ServerConnectionError("connection refused", Phase.CONNECT)

    monkeypatch.setattr(api, "query_status", refuse)

    async with app.test_server() as ctx:
        client = ctx.get_client()
        response = await client.get("/api/server-status?address=example.com")

    assert response.status_code == 500
    assert response.json() == {"error": "connect: connection refused"}
