from __future__ import annotations

import asyncio
import inspect
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Mapping, Set, Tuple, Union

BoundValue = Union[Any, Callable[[], Any], Callable[[], Awaitable[Any]]]
AuthTokenGetter = Union[Callable[[], str], Callable[[], Awaitable[str]]]
HeaderValue = Union[str, Callable[[], str], Callable[[], Awaitable[str]]]


async def resolve_value(value: BoundValue) -> Any:
    """Resolve a literal, a sync callable or an async callable to its value.

    Callables are invoked on every call, so getters that return fresh values
    (timestamps, rotated tokens) stay fresh.
    """
    if callable(value):
        result = value()
        if inspect.isawaitable(result):
            return await result
        return result
    return value


async def resolve_headers(headers: Mapping[str, HeaderValue]) -> Dict[str, str]:
    """Resolve all header providers concurrently; every value must be a string."""
    names = list(headers)
    values = await asyncio.gather(*(resolve_value(headers[n]) for n in names))
    resolved: Dict[str, str] = {}
    for name, value in zip(names, values):
        if not isinstance(value, str):
            raise TypeError(f"Client header '{name}' did not resolve to a string.")
        resolved[name] = value
    return resolved


def strip_none(payload: Mapping[str, Any]) -> Dict[str, Any]:
    """Drop keys whose value is None; the server gets omissions, not nulls."""
    return {k: v for k, v in payload.items() if v is not None}


def identify_auth_requirements(
    req_authn_params: Mapping[str, List[str]],
    req_authz_tokens: Iterable[str],
    auth_service_names: Iterable[str],
) -> Tuple[Dict[str, List[str]], List[str], Set[str]]:
    """Split auth requirements into what is still outstanding.

    Args:
        req_authn_params: parameter name -> services, any one of which satisfies it.
        req_authz_tokens: services that are each required.
        auth_service_names: services that are available.

    Returns:
        (remaining authn params, remaining authz tokens, services that matched
        at least one requirement).
    """
    available = set(auth_service_names)
    used: Set[str] = set()

    remaining_params: Dict[str, List[str]] = {}
    for param, services in req_authn_params.items():
        matched = [s for s in services if s in available]
        if matched:
            used.update(matched)
        else:
            remaining_params[param] = list(services)

    remaining_tokens: List[str] = []
    for token in req_authz_tokens:
        if token in available:
            used.add(token)
        else:
            remaining_tokens.append(token)

    return remaining_params, remaining_tokens, used
