from __future__ import annotations

import json
import logging
import os
from typing import Any, Dict, List, Mapping, Optional, Set, Tuple

import httpx
from pydantic import ValidationError

from .errors import log_api_error
from .models import ManifestSchema, ToolSchema
from .schema import params_to_model
from .tool import ToolboxTool
from .utils import AuthTokenGetter, BoundValue, HeaderValue, identify_auth_requirements, resolve_headers

logger = logging.getLogger(__name__)

TOOLBOX_URL_ENV = "TOOLBOX_URL"  # default base URL when none is passed


class ToolboxClient:
    """Async client that loads tools from a Toolbox server.

    The client owns the ``httpx.AsyncClient`` it creates (close it with
    ``close()`` or ``async with``); a session passed in stays the caller's.
    Tools keep a reference to the session, so they stop working once it is
    closed.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        session: Optional[httpx.AsyncClient] = None,
        client_headers: Optional[Mapping[str, HeaderValue]] = None,
    ):
        base_url = url or os.getenv(TOOLBOX_URL_ENV, "")
        if not base_url:
            raise ValueError(f"A Toolbox URL is required: pass `url` or set {TOOLBOX_URL_ENV}.")
        self.base_url = base_url.rstrip("/")
        self._owns_session = session is None
        self._session = session if session is not None else httpx.AsyncClient()
        self._client_headers: Dict[str, HeaderValue] = dict(client_headers or {})

    async def __aenter__(self) -> "ToolboxClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the HTTP session if this client created it."""
        if self._owns_session:
            await self._session.aclose()

    def add_headers(self, headers: Mapping[str, HeaderValue]) -> None:
        """Register more client headers; tools loaded afterwards send them too."""
        duplicates = [h for h in headers if h in self._client_headers]
        if duplicates:
            raise ValueError(f"Client header(s) `{', '.join(duplicates)}` already registered in the client.")
        self._client_headers.update(headers)

    # -- manifest --

    async def _fetch_manifest(self, api_path: str) -> ManifestSchema:
        url = f"{self.base_url}{api_path}"
        headers = await resolve_headers(self._client_headers)
        logger.debug(f"Fetching manifest from {url}")
        try:
            response = await self._session.get(url, headers=headers)
            response.raise_for_status()
        except httpx.HTTPError as e:
            log_api_error(f"Error fetching data from {url}:", e)
            raise
        try:
            body = response.json()
        except ValueError as e:
            log_api_error(f"Error decoding manifest from {url}:", e)
            raise

        try:
            return ManifestSchema.model_validate(body)
        except ValidationError as e:
            issues = json.dumps(e.errors(include_url=False, include_context=False), indent=2, default=str)
            raise ValueError(f"Invalid manifest structure received from {url}: {issues}") from e

    def _create_tool(
        self,
        name: str,
        schema: ToolSchema,
        auth_token_getters: Mapping[str, AuthTokenGetter],
        bound_params: Mapping[str, BoundValue],
    ) -> Tuple[ToolboxTool, Set[str], Set[str]]:
        """Build one tool and report which getters and bound params it consumed."""
        params = []
        authn_params: Dict[str, List[str]] = {}
        bound: Dict[str, BoundValue] = {}
        for p in schema.parameters:
            if p.auth_sources:
                authn_params[p.name] = p.auth_sources
                continue
            params.append(p)
            if p.name in bound_params:
                bound[p.name] = bound_params[p.name]

        remaining_authn, remaining_authz, used_auth = identify_auth_requirements(
            authn_params, schema.auth_required, auth_token_getters
        )

        tool = ToolboxTool(
            session=self._session,
            base_url=self.base_url,
            name=name,
            description=schema.description,
            params=params_to_model(params, f"{name}_Input"),
            auth_token_getters={k: v for k, v in auth_token_getters.items() if k in used_auth},
            required_authn_params=remaining_authn,
            required_authz_tokens=remaining_authz,
            bound_params=bound,
            client_headers=self._client_headers,
        )
        logger.debug(f"Loaded tool {name}: bound={sorted(bound)} auth={sorted(used_auth)}")
        return tool, used_auth, set(bound)

    # -- loading --

    async def load_tool(
        self,
        name: str,
        auth_token_getters: Optional[Mapping[str, AuthTokenGetter]] = None,
        bound_params: Optional[Mapping[str, BoundValue]] = None,
    ) -> ToolboxTool:
        """Load one tool by name.

        Raises:
            ValueError: the manifest is malformed, the tool is missing, or a
                getter / bound parameter is not used by the tool.
            httpx.HTTPError: the manifest request failed.
        """
        auth_token_getters = auth_token_getters or {}
        bound_params = bound_params or {}

        api_path = f"/api/tool/{name}"
        manifest = await self._fetch_manifest(api_path)
        if name not in manifest.tools:
            raise ValueError(f"Tool '{name}' not found in manifest from {api_path}.")

        tool, used_auth, used_bound = self._create_tool(
            name, manifest.tools[name], auth_token_getters, bound_params
        )

        problems = _unused_messages(
            [k for k in auth_token_getters if k not in used_auth],
            [k for k in bound_params if k not in used_bound],
        )
        if problems:
            raise ValueError(f"Validation failed for tool '{name}': {'; '.join(problems)}.")
        return tool

    async def load_toolset(
        self,
        name: Optional[str] = None,
        auth_token_getters: Optional[Mapping[str, AuthTokenGetter]] = None,
        bound_params: Optional[Mapping[str, BoundValue]] = None,
        strict: bool = False,
    ) -> List[ToolboxTool]:
        """Load every tool of a toolset (the server's default one if ``name`` is empty).

        In strict mode every tool must use every getter and bound parameter
        given; otherwise each one only has to be used by some tool of the set.
        """
        auth_token_getters = auth_token_getters or {}
        bound_params = bound_params or {}

        manifest = await self._fetch_manifest(f"/api/toolset/{name or ''}")

        tools: List[ToolboxTool] = []
        used_auth_any: Set[str] = set()
        used_bound_any: Set[str] = set()
        for tool_name, schema in manifest.tools.items():
            tool, used_auth, used_bound = self._create_tool(
                tool_name, schema, auth_token_getters, bound_params
            )
            if strict:
                problems = _unused_messages(
                    [k for k in auth_token_getters if k not in used_auth],
                    [k for k in bound_params if k not in used_bound],
                )
                if problems:
                    raise ValueError(f"Validation failed for tool '{tool_name}': {'; '.join(problems)}.")
            used_auth_any |= used_auth
            used_bound_any |= used_bound
            tools.append(tool)

        problems = _unused_messages(
            [k for k in auth_token_getters if k not in used_auth_any],
            [k for k in bound_params if k not in used_bound_any],
            suffix=" could not be applied to any tool",
        )
        if problems:
            raise ValueError(f"Validation failed for toolset '{name or 'default'}': {'; '.join(problems)}.")
        return tools


def _unused_messages(unused_auth: List[str], unused_bound: List[str], suffix: str = "") -> List[str]:
    messages = []
    if unused_auth:
        messages.append(f"unused auth tokens{suffix}: {', '.join(unused_auth)}")
    if unused_bound:
        messages.append(f"unused bound parameters{suffix}: {', '.join(unused_bound)}")
    return messages
