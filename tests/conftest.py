"""Test configuration and fixtures."""

import httpx
import pytest

from toolbox_core import ToolboxClient
from toolbox_server import create_app

# ---------------------------------------------------------------------------
# Constants (shared with tests)
# ---------------------------------------------------------------------------
BASE_URL = "https://toolbox.example.com"
AUTH_SERVICE = "my-test-auth"

TOOLS = {
    "get-n-rows": {
        "description": "Fetch the first N rows.",
        "parameters": [
            {"name": "num_rows", "type": "string", "description": "Number of rows to return"},
        ],
    },
    "search-rows": {
        "description": "Search rows by email and id.",
        "parameters": [
            {"name": "email", "type": "string", "description": "Email to match"},
            {"name": "id", "type": "integer", "description": "Row id"},
            {"name": "data", "type": "string", "description": "Optional payload", "required": False},
        ],
    },
    "get-row-by-id-auth": {
        "description": "Fetch a row on behalf of the signed-in user.",
        "parameters": [
            {"name": "id", "type": "integer", "description": "Row id"},
            {
                "name": "user_email",
                "type": "string",
                "description": "Caller email, from the auth token",
                "authSources": [AUTH_SERVICE],
            },
        ],
    },
    "get-row-by-content-auth": {
        "description": "Fetch a row by content; caller must be authorized.",
        "parameters": [
            {"name": "content", "type": "string", "description": "Row content"},
        ],
        "authRequired": [AUTH_SERVICE],
    },
    "sum-matrix": {
        "description": "Sum every cell of a float matrix.",
        "parameters": [
            {
                "name": "matrix",
                "type": "array",
                "description": "Rows of cells",
                "items": {
                    "name": "row",
                    "type": "array",
                    "description": "One row",
                    "items": {"name": "cell", "type": "float", "description": "A cell"},
                },
            },
        ],
    },
}

HANDLERS = {
    "get-n-rows": lambda args: [f"row{i}" for i in range(1, int(args["num_rows"]) + 1)],
    "search-rows": lambda args: dict(args),
    "get-row-by-id-auth": lambda args: {"id": args["id"], "user": args["user_email"]},
    "get-row-by-content-auth": lambda args: f"content:{args['content']}",
    "sum-matrix": lambda args: sum(sum(row) for row in args["matrix"]),
}

TOOLSETS = {
    "": list(TOOLS),
    "my-toolset": ["get-n-rows", "search-rows"],
}


# ---------------------------------------------------------------------------
# Fake server + client fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def toolbox_app():
    return create_app(TOOLS, HANDLERS, TOOLSETS)


@pytest.fixture
async def toolbox_session(toolbox_app):
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=toolbox_app)) as session:
        yield session


@pytest.fixture
async def toolbox_client(toolbox_session):
    """ToolboxClient talking to the in-process fake server."""
    yield ToolboxClient(BASE_URL, session=toolbox_session)
