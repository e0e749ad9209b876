import httpx
import pytest

from wfengine.runtime.capabilities import Capabilities
from wfengine.runtime.executor import WorkflowEngine
from wfengine.runtime.http import HttpxRequester
from wfengine.runtime.tools import ToolDefinition, ToolNotFoundError, ToolRegistry


async def test_registry_invokes_sync_and_async_handlers():
    async def shout(arguments):
        return arguments["text"].upper()

    registry = ToolRegistry([ToolDefinition(server="text", name="shout", handler=shout)])
    registry.add("text", "length", lambda arguments: len(arguments["text"]), description="Count characters")

    assert await registry.invoke("text", "shout", {"text": "hi"}) == "HI"
    assert await registry.invoke("text", "length", {"text": "four"}) == 4
    assert [tool.name for tool in registry.list_tools("text")] == ["length", "shout"]


async def test_registry_distinguishes_unknown_server_and_tool():
    registry = ToolRegistry()
    registry.add("text", "shout", lambda arguments: None)

    with pytest.raises(ToolNotFoundError, match="server 'maps'"):
        await registry.invoke("maps", "route", {})
    with pytest.raises(ToolNotFoundError, match="Tool 'route'"):
        await registry.invoke("text", "route", {})


async def test_httpx_requester_sends_json_and_decodes_response():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["method"] = request.method
        seen["url"] = str(request.url)
        seen["body"] = request.content
        seen["header"] = request.headers.get("x-trace")
        return httpx.Response(201, json={"created": True})

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    requester = HttpxRequester(client=client)

    response = await requester.request(
        "POST", "https://api.example.com/items", {"X-Trace": "abc"}, {"name": "widget"}
    )
    await client.aclose()

    assert response.status == 201
    assert response.ok
    assert response.body == {"created": True}
    assert seen["method"] == "POST"
    assert seen["url"] == "https://api.example.com/items"
    assert seen["header"] == "abc"
    assert b'"name"' in seen["body"]


async def test_httpx_requester_returns_text_for_non_json():
    client = httpx.AsyncClient(
        transport=httpx.MockTransport(lambda request: httpx.Response(500, text="upstream broke"))
    )
    requester = HttpxRequester(client=client)

    response = await requester.request("GET", "https://api.example.com/health", {}, None)
    await requester.aclose()
    await client.aclose()

    assert response.status == 500
    assert not response.ok
    assert response.body == "upstream broke"


async def test_engine_aclose_closes_owned_http_client():
    requester = HttpxRequester(timeout_seconds=2.0)
    client = await requester._get_client()
    engine = WorkflowEngine(capabilities=Capabilities(http=requester))

    await engine.aclose()

    assert client.is_closed
    assert requester._client is None


async def test_engine_aclose_leaves_injected_client_open():
    client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(204)))
    engine = WorkflowEngine(capabilities=Capabilities(http=HttpxRequester(client=client)))

    await engine.aclose()

    assert not client.is_closed
    await client.aclose()
