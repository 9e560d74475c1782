import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from packsync.exceptions import APIError
from packsync.services import CFWidgetClient, manual_download_link


@pytest_asyncio.fixture
async def widget():
    seen = []

    async def handle(request: web.Request) -> web.Response:
        project = request.match_info["project"]
        seen.append((project, dict(request.query), request.headers.get("Cache-Control")))
        if project == "403":
            return web.Response(status=403)
        if project == "202":
            return web.Response(status=202, text="processing")
        if project == "garbage":
            return web.Response(text="<html>nope</html>")
        if project == "list":
            return web.json_response([1, 2, 3])
        return web.json_response({"title": "Some Mod", "download": {"id": 1, "name": "a.jar"}})

    app = web.Application()
    app.router.add_get("/{project}", handle)
    server = TestServer(app)
    await server.start_server()
    yield server, seen
    await server.close()


@pytest.mark.asyncio
async def test_query_with_file_id(widget, session):
    server, seen = widget
    client = CFWidgetClient(session=session, base_url=str(server.make_url("")))
    response = await client.get_project(238222, 3456789)

    assert response.ok
    assert response.payload["title"] == "Some Mod"
    assert seen == [("238222", {"version": "3456789"}, None)]


@pytest.mark.asyncio
async def test_query_without_file_id_disables_cache(widget, session):
    server, seen = widget
    client = CFWidgetClient(session=session, base_url=str(server.make_url("")))
    await client.get_project(238222)
    assert seen == [("238222", {}, "no-store")]


@pytest.mark.asyncio
async def test_non_200_status_is_returned(widget, session):
    server, _ = widget
    client = CFWidgetClient(session=session, base_url=str(server.make_url("")))

    denied = await client.get_project("403", 1)
    assert denied.status == 403
    assert denied.payload is None
    assert not denied.ok

    processing = await client.get_project("202", 1)
    assert processing.status == 202


@pytest.mark.asyncio
@pytest.mark.parametrize("project", ["garbage", "list"])
async def test_bad_payload_raises(widget, session, project):
    server, _ = widget
    client = CFWidgetClient(session=session, base_url=str(server.make_url("")))
    with pytest.raises(APIError) as exc_info:
        await client.get_project(project, 1)
    assert exc_info.value.status_code == 200


@pytest.mark.asyncio
async def test_owned_session_is_closed(widget):
    server, _ = widget
    async with CFWidgetClient(base_url=str(server.make_url(""))) as client:
        assert (await client.get_project(1, 2)).ok
        session = client.session
    assert session.closed


def test_manual_download_link():
    assert manual_download_link(5) == "https://cfwidget.com/5"
    assert manual_download_link(5, 6) == "https://cfwidget.com/5?&version=6"
