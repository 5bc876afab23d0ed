"""Dependências injetadas nas rotas."""

from __future__ import annotations

from fastapi import Request

from ecos_patient.application.orchestrator import SessionOrchestrator
from ecos_patient.application.persistence_gateway import PersistenceGateway
from ecos_patient.config.settings import Settings


def get_settings(request: Request) -> Settings:
    """Retorna settings da aplicação."""

    return request.app.state.settings


def get_orchestrator(request: Request) -> SessionOrchestrator:
    """Retorna o orquestrador de sessões."""

    return request.app.state.orchestrator


def get_gateway(request: Request) -> PersistenceGateway:
    return request.app.state.gateway
