"""Agent command, routing and assist API routes."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request

from app.models.agent import (
    AgentMessage,
    AgentPlaneUrls,
    AssistResponse,
    CommandResponse,
    RouteRequest,
    RouteResponse,
)
from app.models.error import ErrorDetail
from app.services.agent_routing_service import (
    AgentRoutingConfig,
    build_agent_routing_plan,
    format_routing_summary,
    get_agent_plane_base_urls,
)
from app.services.command_service import CommandService
from app.services.intent_assistant import assist_intent

logger = logging.getLogger(__name__)

router = APIRouter()


def get_routing_config(request: Request) -> AgentRoutingConfig:
    return request.app.state.routing_config


def get_command_service(request: Request) -> CommandService:
    return request.app.state.command_service


@router.post("/agent/route", response_model=RouteResponse)
def route(body: RouteRequest, config: AgentRoutingConfig = Depends(get_routing_config)) -> RouteResponse:
    """Execution-plane decision for a command (no side effects)."""
    plan = build_agent_routing_plan(body.text, config)
    return RouteResponse(
        plan=plan,
        planes=get_agent_plane_base_urls(config),
        summary=format_routing_summary(plan),
    )


@router.get("/agent/planes", response_model=AgentPlaneUrls)
def planes(config: AgentRoutingConfig = Depends(get_routing_config)) -> AgentPlaneUrls:
    return get_agent_plane_base_urls(config)


@router.post("/agent/assist", response_model=AssistResponse)
def assist(body: RouteRequest) -> AssistResponse:
    """Best-guess intent for free-form text; ``suggestion`` is null when nothing fits."""
    return AssistResponse(suggestion=assist_intent(body.text))


@router.post(
    "/agent/command",
    response_model=CommandResponse,
    responses={503: {"model": ErrorDetail}},
)
def command(
    message: AgentMessage,
    config: AgentRoutingConfig = Depends(get_routing_config),
    service: CommandService = Depends(get_command_service),
) -> CommandResponse:
    """Run one chat command for ``message.author`` and return the agent's reply."""
    routing = build_agent_routing_plan(message.text, config)
    logger.info("agent_command %s author=%s", format_routing_summary(routing), message.author)
    outcome = service.handle_detailed(message)
    return CommandResponse(response=outcome.response, routing=routing, event_id=outcome.event_id)
