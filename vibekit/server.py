"""HTTP surface: capability card and JSON-RPC endpoint for an agent."""

from __future__ import annotations

import json
import logging
from contextlib import asynccontextmanager
from typing import Any, Awaitable, Callable

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError

from vibekit.agent import Agent
from vibekit.errors import VibkitError
from vibekit.schemas import InvokeSkillParams, JSONRPCRequest, TaskIdParams, WireModel

logger = logging.getLogger(__name__)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

AGENT_CARD_PATH = "/.well-known/agent.json"

RpcMethod = Callable[[dict[str, Any]], Awaitable[Any]]


def _error_body(request_id: Any, error: VibkitError) -> dict[str, Any]:
    return {
        "jsonrpc": "2.0",
        "id": request_id,
        "error": error.to_jsonrpc_error().model_dump(exclude_none=True),
    }


def _rpc_error(request_id: Any, error: VibkitError) -> JSONResponse:
    return JSONResponse(_error_body(request_id, error))


def _rpc_result(request_id: Any, result: Any) -> JSONResponse:
    if isinstance(result, WireModel):
        result = result.to_wire()
    return JSONResponse({"jsonrpc": "2.0", "id": request_id, "result": result})


def _parse_params(model: type[BaseModel], params: dict[str, Any]) -> Any:
    try:
        return model.model_validate(params)
    except ValidationError as e:
        raise VibkitError.invalid_params(
            f"Invalid params: {e.error_count()} validation error(s)",
            data=json.loads(e.json(include_url=False)),
        ) from e


def create_app(agent: Agent) -> FastAPI:
    """Build the FastAPI application serving one agent.

    Args:
        agent: Agent runtime; started and stopped with the app lifespan

    Returns:
        Configured FastAPI app
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await agent.start()
        try:
            yield
        finally:
            await agent.stop()

    app = FastAPI(
        title=agent.name,
        description=agent.description or f"{agent.name} agent",
        version=agent.version,
        lifespan=lifespan,
    )
    app.state.agent = agent

    # --- JSON-RPC methods ---

    async def invoke_skill(params: dict[str, Any]) -> Any:
        request = _parse_params(InvokeSkillParams, params)
        return await agent.invoke(request.skill_id, request.input, context_id=request.context_id)

    async def get_task(params: dict[str, Any]) -> Any:
        request = _parse_params(TaskIdParams, params)
        return agent.get_task(request.id)

    async def cancel_task(params: dict[str, Any]) -> Any:
        request = _parse_params(TaskIdParams, params)
        return agent.cancel_task(request.id)

    async def set_push_notification(params: dict[str, Any]) -> Any:
        raise VibkitError.push_notification_not_supported()

    async def resubscribe(params: dict[str, Any]) -> Any:
        raise VibkitError.unsupported_operation("tasks/resubscribe")

    methods: dict[str, RpcMethod] = {
        "skills/invoke": invoke_skill,
        "tasks/get": get_task,
        "tasks/cancel": cancel_task,
        "tasks/pushNotificationConfig/set": set_push_notification,
        "tasks/resubscribe": resubscribe,
    }

    # --- HTTP Endpoints ---

    @app.get("/")
    async def root() -> dict[str, Any]:
        """Server info."""
        return {
            "name": agent.name,
            "version": agent.version,
            "status": "running" if agent.is_started else "stopped",
            "endpoints": {"agentCard": AGENT_CARD_PATH, "jsonrpc": "/"},
            "skills": [skill.id for skill in agent.registry.all()],
        }

    @app.get(AGENT_CARD_PATH)
    async def agent_card() -> JSONResponse:
        """Capability card."""
        return JSONResponse(agent.card.to_wire())

    @app.post("/")
    async def jsonrpc(request: Request) -> JSONResponse:
        """Dispatch one JSON-RPC 2.0 request."""
        content_type = request.headers.get("content-type", "")
        if "application/json" not in content_type:
            return _rpc_error(
                None,
                VibkitError.content_type_not_supported(f"Unsupported content type: {content_type or 'none'}"),
            )

        body = await request.body()
        try:
            data = json.loads(body)
        except (json.JSONDecodeError, UnicodeDecodeError):
            return _rpc_error(None, VibkitError.parse_error())

        request_id = data.get("id") if isinstance(data, dict) else None
        try:
            rpc_request = JSONRPCRequest.model_validate(data)
        except ValidationError as e:
            return _rpc_error(
                request_id,
                VibkitError.invalid_request(data=json.loads(e.json(include_url=False))),
            )

        method = methods.get(rpc_request.method)
        if method is None:
            logger.warning(f"Unknown method: {rpc_request.method}")
            return _rpc_error(rpc_request.id, VibkitError.method_not_found(rpc_request.method))

        logger.info(f"Received request: method={rpc_request.method}, id={rpc_request.id}")
        try:
            result = await method(rpc_request.params)
        except VibkitError as e:
            logger.warning(f"Request {rpc_request.id} failed: [{e.name}] {e.message}")
            return _rpc_error(rpc_request.id, e)
        return _rpc_result(rpc_request.id, result)

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle uncaught exceptions."""
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content=_error_body(None, VibkitError.from_exception(exc)),
        )

    return app
