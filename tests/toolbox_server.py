"""In-process fake of a Toolbox server, served to tests through httpx.ASGITransport.

Serves manifests for the tools it is given and invokes plain Python handlers.
Authenticated parameters are filled from the ``<service>_token`` headers, the
way a real server fills them from verified tokens.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional

from fastapi import APIRouter, FastAPI, HTTPException, Request, status
from pydantic import BaseModel

SERVER_VERSION = "0.0.0-test"

Handler = Callable[[Dict[str, Any]], Any]


class InvokeResponse(BaseModel):
    result: Any


def _token(request: Request, service: str) -> Optional[str]:
    return request.headers.get(f"{service}_token")


def build_toolbox_router(
    tools: Dict[str, Dict[str, Any]],
    handlers: Dict[str, Handler],
    toolsets: Dict[str, List[str]],
) -> APIRouter:
    r = APIRouter(prefix="/api")

    def manifest(names: List[str]) -> Dict[str, Any]:
        return {"serverVersion": SERVER_VERSION, "tools": {n: tools[n] for n in names}}

    @r.get("/tool/{name}")
    async def get_tool(name: str):
        if name not in tools:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Tool not found")
        return manifest([name])

    @r.get("/toolset/")
    async def get_default_toolset():
        return manifest(toolsets.get("", list(tools)))

    @r.get("/toolset/{name}")
    async def get_toolset(name: str):
        if name not in toolsets:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Toolset not found")
        return manifest(toolsets[name])

    @r.post("/tool/{name}/invoke", response_model=InvokeResponse)
    async def invoke(name: str, request: Request):
        if name not in tools:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Tool not found")
        schema = tools[name]
        args: Dict[str, Any] = await request.json()

        for p in schema.get("parameters", []):
            sources = p.get("authSources") or []
            if not sources:
                continue
            tokens = [t for t in (_token(request, s) for s in sources) if t]
            if not tokens:
                raise HTTPException(
                    status_code=status.HTTP_401_UNAUTHORIZED,
                    detail=f"Missing auth token for parameter {p['name']}",
                )
            args[p["name"]] = tokens[0]

        for service in schema.get("authRequired", []):
            if not _token(request, service):
                raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=f"Missing {service} token")

        try:
            out = handlers[name](args)
        except (KeyError, ValueError) as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
        return InvokeResponse(result=out)

    return r


def create_app(
    tools: Dict[str, Dict[str, Any]],
    handlers: Dict[str, Handler],
    toolsets: Optional[Dict[str, List[str]]] = None,
) -> FastAPI:
    app = FastAPI(title="fake toolbox")
    app.include_router(build_toolbox_router(tools, handlers, toolsets or {}))

    @app.get("/health")
    def health():
        return {"ok": True}

    return app
