"""Tests for the route table built from controller routers."""

import pytest
from fastapi import APIRouter, FastAPI
from fastapi.testclient import TestClient

from fintrack.errors import ConfigurationError
from fintrack.routing import RouteTable, normalize_path_pattern
from tests.helpers import health_router, items_router


class TestNormalizePathPattern:
    @pytest.mark.parametrize(
        "path,expected",
        [
            ("/health", "/health"),
            ("/items/{item_id}", "/items/{}"),
            ("/items/{id:int}/tags/{tag}", "/items/{}/tags/{}"),
        ],
    )
    def test_parameter_names_erased(self, path: str, expected: str):
        assert normalize_path_pattern(path) == expected


class TestRouteTable:
    """Tests for RouteTable.from_routers."""

    def test_entries_for_each_method(self):
        table = RouteTable.from_routers([health_router(), items_router()])

        assert ("GET", "/health") in table
        assert ("GET", "/items/{item_id}") in table
        assert ("DELETE", "/items/{item_id}") in table
        assert len(table) == 3

    def test_lookup_ignores_parameter_names(self):
        table = RouteTable.from_routers([items_router()])

        entry = table.get("get", "/items/{other}")
        assert entry is not None
        assert entry.name == "get_item"

    def test_unknown_route_not_in_table(self):
        table = RouteTable.from_routers([health_router()])

        assert table.get("POST", "/health") is None
        assert ("GET", "/unknown") not in table
        assert "GET /health" not in table

    def test_paths(self):
        table = RouteTable.from_routers([health_router(), items_router()])

        assert table.paths() == {"/health", "/items/{item_id}"}

    def test_router_dispatches_all_routes(self):
        table = RouteTable.from_routers([health_router(), items_router()])
        app = FastAPI()
        app.include_router(table.router)
        client = TestClient(app)

        assert client.get("/health").text == "ok"
        assert client.get("/items/7").json() == {"item_id": 7, "q": None}

    def test_nested_router_entries_carry_prefixes(self):
        accounts = APIRouter()

        @accounts.get("/{account_id}")
        async def get_account(account_id: str) -> dict:
            return {}

        controller = APIRouter(prefix="/v1")
        controller.include_router(accounts, prefix="/accounts")

        table = RouteTable.from_routers([controller])

        assert len(table) == 1
        assert table.get("GET", "/v1/accounts/{id}").name == "get_account"
        assert table.paths() == {"/v1/accounts/{account_id}"}

    def test_nested_duplicate_rejected(self):
        outer = APIRouter()
        outer.include_router(health_router())

        with pytest.raises(ConfigurationError, match="Conflicting route GET /health"):
            RouteTable.from_routers([outer, health_router()])

    def test_hidden_route_recorded(self):
        router = APIRouter()

        @router.get("/internal", include_in_schema=False)
        async def internal() -> dict:
            return {}

        table = RouteTable.from_routers([router])

        assert table.get("GET", "/internal").include_in_schema is False

    def test_empty_table(self):
        table = RouteTable.from_routers([])

        assert len(table) == 0
        assert list(table) == []

    def test_duplicate_route_rejected(self):
        with pytest.raises(ConfigurationError, match="Conflicting route GET /health"):
            RouteTable.from_routers([health_router(), health_router()])

    def test_same_pattern_different_parameter_names_rejected(self):
        first = APIRouter()
        second = APIRouter()

        @first.get("/accounts/{account_id}")
        async def get_account(account_id: str) -> dict:
            return {}

        @second.get("/accounts/{id}")
        async def get_account_again(id: str) -> dict:
            return {}

        with pytest.raises(ConfigurationError, match="get_account"):
            RouteTable.from_routers([first, second])

    def test_same_path_different_methods_allowed(self):
        router = APIRouter()

        @router.get("/accounts")
        async def list_accounts() -> list:
            return []

        @router.post("/accounts")
        async def create_account() -> dict:
            return {}

        table = RouteTable.from_routers([router])
        assert table.get("GET", "/accounts").name == "list_accounts"
        assert table.get("POST", "/accounts").name == "create_account"

    def test_table_is_read_only(self):
        table = RouteTable.from_routers([health_router()])

        with pytest.raises(TypeError):
            table._index[("GET", "/x")] = None  # type: ignore[index]
