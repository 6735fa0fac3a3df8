from __future__ import annotations

import asyncio
import logging
import warnings
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Type

import httpx
from pydantic import BaseModel, ValidationError

from .auth import auth_header_name
from .errors import log_api_error
from .schema import format_validation_errors, omit_fields, param_names
from .utils import (
    AuthTokenGetter,
    BoundValue,
    HeaderValue,
    identify_auth_requirements,
    resolve_headers,
    resolve_value,
    strip_none,
)

logger = logging.getLogger(__name__)


def _check_header_conflicts(client_headers: Iterable[str], auth_services: Iterable[str]) -> None:
    auth_headers = {auth_header_name(s) for s in auth_services}
    duplicates = [h for h in client_headers if h in auth_headers]
    if duplicates:
        raise ValueError(
            f"Client header(s) `{', '.join(duplicates)}` already registered in client. "
            "Cannot register the same headers in the client as well as tool."
        )


class ToolboxTool:
    """A callable proxy for one tool hosted on a Toolbox server.

    Instances are immutable: ``bind_params`` and ``add_auth_token_getters``
    return new tools. Every tool derived from a client shares that client's
    HTTP session, so closing the client makes all of them unusable.

    Usage:
        tool = await client.load_tool("get-n-rows")
        rows = await tool(num_rows="3")
    """

    def __init__(
        self,
        session: httpx.AsyncClient,
        base_url: str,
        name: str,
        description: str,
        params: Type[BaseModel],
        auth_token_getters: Optional[Mapping[str, AuthTokenGetter]] = None,
        required_authn_params: Optional[Mapping[str, List[str]]] = None,
        required_authz_tokens: Optional[Iterable[str]] = None,
        bound_params: Optional[Mapping[str, BoundValue]] = None,
        client_headers: Optional[Mapping[str, HeaderValue]] = None,
    ):
        """
        Args:
            session: HTTP session shared with the owning client.
            base_url: Toolbox server base URL.
            name: Tool name, as keyed in the manifest.
            description: Tool description.
            params: Model validating every non-authenticated parameter.
            auth_token_getters: auth service name -> token getter.
            required_authn_params: parameter -> services, still unsatisfied.
            required_authz_tokens: services required to authorize the call, still unsatisfied.
            bound_params: parameter -> value or callable producing it at call time.
            client_headers: header name -> value or callable, sent with every call.
        """
        self._session = session
        self._base_url = base_url
        self._name = name
        self._description = description
        self._params = params
        self._auth_token_getters: Dict[str, AuthTokenGetter] = dict(auth_token_getters or {})
        self._required_authn_params: Dict[str, List[str]] = {
            k: list(v) for k, v in (required_authn_params or {}).items()
        }
        self._required_authz_tokens: List[str] = list(required_authz_tokens or [])
        self._bound_params: Dict[str, BoundValue] = dict(bound_params or {})
        self._client_headers: Dict[str, HeaderValue] = dict(client_headers or {})

        if (self._auth_token_getters or self._client_headers) and not base_url.startswith("https://"):
            warnings.warn(
                "Sending ID token over HTTP. User data may be exposed. Use HTTPS for secure communication.",
                UserWarning,
                stacklevel=2,
            )

        _check_header_conflicts(self._client_headers, self._auth_token_getters)

        self._user_params = omit_fields(params, self._bound_params)
        self._url = f"{base_url}/api/tool/{name}/invoke"

        self.__name__ = name
        self.__doc__ = description

    def __repr__(self) -> str:
        return f"ToolboxTool(name={self._name!r}, url={self._url!r})"

    # -- accessors --

    @property
    def name(self) -> str:
        return self._name

    @property
    def description(self) -> str:
        return self._description

    @property
    def params(self) -> Type[BaseModel]:
        """Model of every non-authenticated parameter, bound ones included."""
        return self._params

    @property
    def bound_params(self) -> Mapping[str, BoundValue]:
        return MappingProxyType(self._bound_params)

    @property
    def auth_token_getters(self) -> Mapping[str, AuthTokenGetter]:
        return MappingProxyType(self._auth_token_getters)

    @property
    def required_authn_params(self) -> Mapping[str, List[str]]:
        return MappingProxyType(self._required_authn_params)

    @property
    def required_authz_tokens(self) -> Tuple[str, ...]:
        return tuple(self._required_authz_tokens)

    @property
    def client_headers(self) -> Mapping[str, HeaderValue]:
        return MappingProxyType(self._client_headers)

    def input_schema(self) -> Dict[str, Any]:
        """JSON schema of the arguments a caller has to supply."""
        return self._user_params.model_json_schema()

    # -- invocation --

    async def __call__(self, **kwargs: Any) -> Any:
        return await self.invoke(kwargs)

    async def invoke(self, arguments: Optional[Mapping[str, Any]] = None) -> Any:
        """Validate ``arguments``, add bound values and auth headers, and run the tool remotely.

        Returns the ``result`` field of the server response.
        """
        if self._required_authn_params or self._required_authz_tokens:
            services: Dict[str, None] = {}
            for required in self._required_authn_params.values():
                services.update(dict.fromkeys(required))
            services.update(dict.fromkeys(self._required_authz_tokens))
            raise PermissionError(
                "One or more of the following authn services are required to invoke this tool: "
                f"{','.join(services)}"
            )

        try:
            validated = self._user_params.model_validate(dict(arguments or {}))
        except ValidationError as e:
            details = "\n - ".join(format_validation_errors(e))
            raise ValueError(f'Argument validation failed for tool "{self._name}":\n - {details}') from e

        names = list(self._bound_params)
        values = await asyncio.gather(*(resolve_value(self._bound_params[n]) for n in names))
        payload = strip_none({**validated.model_dump(by_alias=True), **dict(zip(names, values))})

        headers = await resolve_headers(self._client_headers)
        headers.update(await self._resolve_auth_headers())

        logger.debug(f"Invoking {self._name} with parameters {sorted(payload)}")
        try:
            response = await self._session.post(self._url, json=payload, headers=headers)
            response.raise_for_status()
        except httpx.HTTPError as e:
            log_api_error(f"Error posting data to {self._url}:", e)
            raise
        try:
            body = response.json()
        except ValueError as e:
            log_api_error(f"Error decoding response from {self._url}:", e)
            raise
        return body.get("result")

    async def _resolve_auth_headers(self) -> Dict[str, str]:
        services = list(self._auth_token_getters)
        tokens = await asyncio.gather(*(resolve_value(self._auth_token_getters[s]) for s in services))
        headers: Dict[str, str] = {}
        for service, token in zip(services, tokens):
            if not isinstance(token, str):
                raise TypeError(f"Auth token getter for '{service}' did not return a string.")
            headers[auth_header_name(service)] = token
        return headers

    # -- derivation --

    def _evolve(self, **changes: Any) -> "ToolboxTool":
        state = dict(
            session=self._session,
            base_url=self._base_url,
            name=self._name,
            description=self._description,
            params=self._params,
            auth_token_getters=self._auth_token_getters,
            required_authn_params=self._required_authn_params,
            required_authz_tokens=self._required_authz_tokens,
            bound_params=self._bound_params,
            client_headers=self._client_headers,
        )
        state.update(changes)
        return ToolboxTool(**state)

    def bind_params(self, params: Mapping[str, BoundValue]) -> "ToolboxTool":
        """Return a new tool with ``params`` fixed; they disappear from the call signature."""
        known = set(param_names(self._params))
        for name in params:
            if name in self._bound_params:
                raise ValueError(
                    f"Cannot re-bind parameter: parameter '{name}' is already bound in tool '{self._name}'."
                )
            if name not in known:
                raise ValueError(
                    f"Unable to bind parameter: no parameter named '{name}' in tool '{self._name}'."
                )
        return self._evolve(bound_params={**self._bound_params, **params})

    def bind_param(self, name: str, value: BoundValue) -> "ToolboxTool":
        return self.bind_params({name: value})

    def add_auth_token_getters(self, getters: Mapping[str, AuthTokenGetter]) -> "ToolboxTool":
        """Return a new tool that sends tokens from ``getters``.

        Every service must satisfy at least one of the tool's outstanding
        auth requirements.
        """
        incoming = list(getters)
        duplicates = [s for s in incoming if s in self._auth_token_getters]
        if duplicates:
            raise ValueError(
                f"Authentication source(s) `{', '.join(duplicates)}` already registered in tool `{self._name}`."
            )

        _check_header_conflicts(self._client_headers, incoming)

        authn_params, authz_tokens, used = identify_auth_requirements(
            self._required_authn_params, self._required_authz_tokens, incoming
        )
        unused = [s for s in incoming if s not in used]
        if unused:
            raise ValueError(
                f"Authentication source(s) `{', '.join(unused)}` unused by tool `{self._name}`."
            )

        return self._evolve(
            auth_token_getters={**self._auth_token_getters, **getters},
            required_authn_params=authn_params,
            required_authz_tokens=authz_tokens,
        )

    def add_auth_token_getter(self, service: str, getter: AuthTokenGetter) -> "ToolboxTool":
        return self.add_auth_token_getters({service: getter})
