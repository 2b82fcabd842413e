"""Tests for the connector facade and the HTTP fetch connector."""

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp import test_utils

from step_router.connectors import ConnectorFacade, FetchConnector
from step_router.core.task import Task, TaskStatus
from step_router.errors import ConnectorError
from step_router.workflow.executor import TaskRouter
from step_router.workflow.steps import StepRegistry


class FakeCRM:
    """Connector with one sync, one async and one failing operation."""

    def __init__(self):
        self.lookups = []

    def find_contact(self, email):
        self.lookups.append(email)
        return {"id": 7, "email": email}

    async def update_contact(self, contact_id, fields):
        return {"id": contact_id, **fields}

    def export(self):
        raise RuntimeError("503 upstream unavailable")

    def _token(self):
        return "secret"


@pytest.fixture
def facade():
    return ConnectorFacade({"crm": FakeCRM()})


class TestConnectorFacade:
    @pytest.mark.asyncio
    async def test_invoke_sync_operation(self, facade):
        result = await facade.invoke("crm", "find_contact", {"email": "ada@example.com"})
        assert result == {"id": 7, "email": "ada@example.com"}

    @pytest.mark.asyncio
    async def test_invoke_async_operation(self, facade):
        result = await facade.invoke("crm", "update_contact", {"contact_id": 7, "fields": {"stage": "lead"}})
        assert result == {"id": 7, "stage": "lead"}

    @pytest.mark.asyncio
    async def test_unknown_connector(self, facade):
        with pytest.raises(ConnectorError) as exc_info:
            await facade.invoke("mailer", "send")
        assert exc_info.value.connector_id == "mailer"

    @pytest.mark.asyncio
    async def test_unknown_operation(self, facade):
        with pytest.raises(ConnectorError, match="unknown operation"):
            await facade.invoke("crm", "delete_everything")

    @pytest.mark.asyncio
    async def test_private_operation_not_callable(self, facade):
        with pytest.raises(ConnectorError, match="private"):
            await facade.invoke("crm", "_token")

    @pytest.mark.asyncio
    async def test_failure_is_wrapped(self, facade):
        with pytest.raises(ConnectorError) as exc_info:
            await facade.invoke("crm", "export")

        error = exc_info.value
        assert error.operation == "export"
        assert "RuntimeError: 503 upstream unavailable" in str(error)
        assert isinstance(error.__cause__, RuntimeError)

    @pytest.mark.asyncio
    async def test_bad_arguments_are_wrapped(self, facade):
        with pytest.raises(ConnectorError, match="TypeError"):
            await facade.invoke("crm", "find_contact", {"phone": "555"})

    def test_register_rejects_bad_ids(self):
        facade = ConnectorFacade()
        with pytest.raises(ValueError):
            facade.register("", object())
        with pytest.raises(ValueError):
            facade.register("_hidden", object())

    def test_connector_ids(self, facade):
        facade.register("fetch", FetchConnector())
        assert facade.connector_ids == ["crm", "fetch"]


class TestBoundConnectors:
    @pytest.mark.asyncio
    async def test_invoke_into_path(self, facade):
        document = {"lead": {"email": "ada@example.com"}}
        bound = facade.bind(document)

        await bound.invoke("crm", "find_contact", {"email": "ada@example.com"}, into="lead.contact")

        assert document["lead"]["contact"]["id"] == 7

    @pytest.mark.asyncio
    async def test_attribute_style_call(self, facade):
        document = {}
        bound = facade.bind(document)

        result = await bound.crm.find_contact(email="bob@example.com", into="crm.contact")

        assert result["email"] == "bob@example.com"
        assert document == {"crm": {"contact": {"id": 7, "email": "bob@example.com"}}}

    def test_private_attributes_not_proxied(self, facade):
        bound = facade.bind({})
        with pytest.raises(AttributeError):
            bound._secret


class TestConnectorsInSteps:
    @pytest.mark.asyncio
    async def test_step_handles_connector_error_and_recovery_step_runs(self, facade):
        registry = StepRegistry()

        @registry.step({"export": {"requested": True}})
        async def run_export(ctx):
            try:
                await ctx.connectors.crm.export(into="export.rows")
            except ConnectorError as e:
                ctx.data["export"]["error"] = str(e)

        @registry.step({"export": {"error": str}})
        def give_up(ctx):
            ctx.task.ignore()

        task = Task(document={"export": {"requested": True}})
        await TaskRouter(registry, connectors=facade).run(task)

        assert task.status == TaskStatus.IGNORED
        assert "rows" not in task.document["export"]

    @pytest.mark.asyncio
    async def test_unhandled_connector_error_fails_task(self, facade):
        registry = StepRegistry()

        @registry.step({})
        async def run_export(ctx):
            await ctx.connectors.invoke("crm", "export")

        task = Task(document={})
        await TaskRouter(registry, connectors=facade).run(task)

        assert task.status == TaskStatus.FAILED
        assert task.failure.error_type == "ConnectorError"


async def _json_handler(request):
    return web.json_response({"path": request.path, "q": request.query.get("q")})


async def _echo_handler(request):
    body = await request.json()
    return web.json_response({"received": body}, status=201)


async def _text_handler(request):
    return web.Response(text="plain body")


async def _missing_handler(request):
    return web.Response(status=404, text="not here")


@pytest_asyncio.fixture
async def http_server():
    app = web.Application()
    app.router.add_get("/json", _json_handler)
    app.router.add_post("/echo", _echo_handler)
    app.router.add_get("/text", _text_handler)
    app.router.add_get("/missing", _missing_handler)
    server = test_utils.TestServer(app)
    await server.start_server()
    yield server
    await server.close()


class TestFetchConnector:
    @pytest.mark.asyncio
    async def test_get_json(self, http_server):
        fetch = FetchConnector()
        try:
            result = await fetch.request(str(http_server.make_url("/json")), params={"q": "rust"})
        finally:
            await fetch.close()
        assert result == {"path": "/json", "q": "rust"}

    @pytest.mark.asyncio
    async def test_post_json_body(self, http_server):
        fetch = FetchConnector()
        try:
            result = await fetch.request(str(http_server.make_url("/echo")), method="post", body={"a": 1})
        finally:
            await fetch.close()
        assert result == {"received": {"a": 1}}

    @pytest.mark.asyncio
    async def test_text_response(self, http_server):
        fetch = FetchConnector()
        try:
            result = await fetch.request(str(http_server.make_url("/text")))
        finally:
            await fetch.close()
        assert result == "plain body"

    @pytest.mark.asyncio
    async def test_http_error_status(self, http_server):
        fetch = FetchConnector()
        try:
            with pytest.raises(ConnectorError) as exc_info:
                await fetch.request(str(http_server.make_url("/missing")))
        finally:
            await fetch.close()
        assert exc_info.value.status == 404
        assert "not here" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_through_facade(self, http_server):
        fetch = FetchConnector()
        facade = ConnectorFacade({"fetch": fetch})
        document = {}
        try:
            await facade.bind(document).fetch.request(url=str(http_server.make_url("/json")), into="page")
        finally:
            await fetch.close()
        assert document["page"]["path"] == "/json"
