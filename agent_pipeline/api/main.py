"""FastAPI service exposing the orchestrator as an agent.

Endpoints:
- GET  /              plain-text help
- GET  /capabilities  orchestrator identity and capabilities
- POST /negotiate     always accepts
- POST /execute       runs the configured workflow for ``{"address": ...}``
"""

import logging
from collections.abc import Callable
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel, ConfigDict, ValidationError

from ..config import PipelineSettings, get_settings
from ..core.errors import (
    NegotiationRejectedError,
    PipelineAbortError,
    RegistryEmptyError,
    UnmatchedStepsError,
)
from ..core.orchestrator import WorkflowOrchestrator


logger = logging.getLogger(__name__)


class ExecuteRequest(BaseModel):
    """Body of POST /execute; ``wallet`` is accepted as an alias of ``address``."""

    model_config = ConfigDict(extra="allow")

    address: str | None = None
    wallet: str | None = None

    @property
    def target(self) -> str | None:
        value = self.address or self.wallet
        return value.strip() if isinstance(value, str) and value.strip() else None


def error_response(
    message: str, status_code: int = 400, logs: list[Any] | None = None
) -> JSONResponse:
    """Build the error envelope returned on every failure."""
    content: dict[str, Any] = {"status": "ERROR", "message": message}
    if logs is not None:
        content["logs"] = [
            entry.model_dump(mode="json") if isinstance(entry, BaseModel) else entry
            for entry in logs
        ]
    return JSONResponse(status_code=status_code, content=content)


def create_app(
    settings: PipelineSettings | None = None,
    orchestrator_factory: Callable[[PipelineSettings], WorkflowOrchestrator]
    | None = None,
) -> FastAPI:
    """Create the service application.

    Args:
        settings: Pipeline settings. If None, uses global settings.
        orchestrator_factory: Builds the orchestrator at startup. If None,
            a WorkflowOrchestrator with its own AgentClient is used.

    """
    settings = settings or get_settings()
    factory = orchestrator_factory or (lambda s: WorkflowOrchestrator(settings=s))

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Create the orchestrator on startup and release it on shutdown."""
        logger.info("Starting up...")
        app.state.orchestrator = factory(settings)
        yield
        logger.info("Shutting down...")
        await app.state.orchestrator.close()

    app = FastAPI(
        title=settings.service.name,
        description="Capability-matched orchestration of remote agents",
        lifespan=lifespan,
    )

    @app.get("/", response_class=PlainTextResponse)
    async def root() -> str:
        steps = " -> ".join(s.step_id for s in settings.workflow.steps)
        return "\n".join(
            [
                settings.service.name,
                "",
                "GET  /capabilities",
                "POST /negotiate",
                'POST /execute   { "address": "0x..." }',
                "",
                f"This service orchestrates {steps} using discovered agents.",
            ]
        )

    @app.get("/capabilities")
    async def capabilities() -> dict[str, Any]:
        return {
            "id": settings.service.agent_id,
            "name": settings.service.name,
            "capabilities": settings.service.capabilities,
        }

    @app.post("/negotiate")
    async def negotiate() -> dict[str, str]:
        return {
            "status": "ACCEPT",
            "message": f"{settings.service.name} accepts proposals.",
        }

    @app.post("/execute")
    async def execute(request: Request) -> JSONResponse:
        try:
            body = await request.json()
        except ValueError:
            return error_response("Invalid JSON body", 400)
        if not isinstance(body, dict):
            return error_response("Request body must be a JSON object", 400)

        try:
            address = ExecuteRequest.model_validate(body).target
        except ValidationError as e:
            details = "; ".join(
                f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}"
                for err in e.errors()
            )
            return error_response(f"Invalid request body ({details})", 400)
        if address is None:
            return error_response("Missing address (address or wallet)", 400)

        orchestrator: WorkflowOrchestrator = request.app.state.orchestrator
        try:
            result = await orchestrator.run({"address": address})
        except (RegistryEmptyError, UnmatchedStepsError) as e:
            logger.error(f"Workflow not covered: {e}")
            return error_response(str(e), 500)
        except NegotiationRejectedError as e:
            logger.error(f"Negotiation rejected: {e}")
            return error_response(str(e), 502)
        except PipelineAbortError as e:
            logger.error(f"Workflow aborted: {e}")
            return error_response(str(e), 502, logs=e.logs)

        if not result.execution.success:
            logger.error(f"Workflow finished with status {result.status}")
            return error_response(
                result.execution.error or "Execution failed", 502, logs=result.logs
            )

        logs = [entry.model_dump(mode="json") for entry in result.logs]
        first_output = result.logs[0].output if result.logs else None
        return JSONResponse(
            status_code=200,
            content={
                "status": "DONE",
                "wallet": first_output,
                "report": result.final_output,
                "logs": logs,
                "agents": result.agents_used(),
                "timestamp": int(datetime.now().timestamp() * 1000),
            },
        )

    return app
