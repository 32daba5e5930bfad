"""
Migration wizard HTTP routes — prefix /api/wizard

POST   /sessions                          start a wizard for a shopping list
GET    /sessions/{session_id}             current session state + progress
POST   /sessions/{session_id}/decisions   record one decision
POST   /sessions/{session_id}/bulk-decisions
POST   /sessions/{session_id}/confirm     commit (optional Idempotency-Key header)
DELETE /sessions/{session_id}             cancel
GET    /lists/{list_id}/expired-items     pre-wizard expired item check

WizardError subclasses raised by the service are rendered by the handler in main.py.
"""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from flyerwizard.database import get_db
from flyerwizard.wizard.schemas import (
    BulkDecisionsRequest,
    ConfirmWizardResult,
    DecideItemRequest,
    ExpiredItemsCheck,
    StartWizardRequest,
    WizardSession,
)
from flyerwizard.wizard.service import WizardService

router = APIRouter(prefix="/api/wizard", tags=["wizard"])
logger = logging.getLogger(__name__)


def get_wizard_service(request: Request) -> WizardService:
    """WizardService built once in lifespan and stored on app.state."""
    return request.app.state.wizard_service


def _session_body(session: WizardSession) -> dict:
    body = session.model_dump(mode="json")
    body["progress"] = session.progress().model_dump(mode="json")
    return body


@router.post("/sessions", status_code=201)
async def start_wizard(
    body: StartWizardRequest,
    db: AsyncSession = Depends(get_db),
    service: WizardService = Depends(get_wizard_service),
) -> dict:
    session = await service.start_wizard(db, body.shopping_list_id, body.user_id)
    return _session_body(session)


@router.get("/sessions/{session_id}")
async def get_wizard_session(
    session_id: str,
    service: WizardService = Depends(get_wizard_service),
) -> dict:
    session = await service.get_session(session_id)
    return _session_body(session)


@router.post("/sessions/{session_id}/decisions")
async def decide_item(
    session_id: str,
    body: DecideItemRequest,
    service: WizardService = Depends(get_wizard_service),
) -> dict:
    session = await service.decide_item(session_id, body.item_id, body.action, body.suggestion_id)
    return _session_body(session)


@router.post("/sessions/{session_id}/bulk-decisions")
async def apply_bulk_decisions(
    session_id: str,
    body: BulkDecisionsRequest,
    service: WizardService = Depends(get_wizard_service),
) -> dict:
    session = await service.apply_bulk_decisions(session_id, body.decisions)
    return _session_body(session)


@router.post("/sessions/{session_id}/confirm", response_model=ConfirmWizardResult)
async def confirm_wizard(
    session_id: str,
    db: AsyncSession = Depends(get_db),
    service: WizardService = Depends(get_wizard_service),
    idempotency_key: Optional[str] = Header(default=None, alias="Idempotency-Key"),
) -> ConfirmWizardResult:
    return await service.confirm_wizard(db, session_id, idempotency_key)


@router.delete("/sessions/{session_id}")
async def cancel_wizard(
    session_id: str,
    db: AsyncSession = Depends(get_db),
    service: WizardService = Depends(get_wizard_service),
) -> dict:
    await service.cancel_wizard(db, session_id)
    return {"ok": True}


@router.get("/lists/{list_id}/expired-items", response_model=ExpiredItemsCheck)
async def check_expired_items(
    list_id: int,
    db: AsyncSession = Depends(get_db),
    service: WizardService = Depends(get_wizard_service),
) -> ExpiredItemsCheck:
    return await service.check_expired_items(db, list_id)
