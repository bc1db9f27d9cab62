"""Dependency injection for FastAPI endpoints"""

from typing import Callable, Optional
from fastapi import Depends, Header, HTTPException, Request
from sqlalchemy.orm import Session

from cardpay_gateway.config import settings
from cardpay_gateway.domain.resolution import ResolutionStrategy, SimulatedResolutionStrategy
from cardpay_gateway.infrastructure.clients.gateway import GatewayResolutionStrategy
from cardpay_gateway.infrastructure.database.session import SessionLocal
from cardpay_gateway.services.settlement import SettlementEngine
from cardpay_gateway.services.side_effects import SideEffectDispatcher


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_current_user_id(x_user_id: Optional[str] = Header(default=None)) -> str:
    """Caller identity forwarded by the upstream auth layer"""
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Missing X-User-ID header")
    return x_user_id.strip()


def get_session_factory() -> Callable[[], Session]:
    """Factory for sessions that outlive the request (settlement, side effects)"""
    return SessionLocal


def get_settlement_engine(
    session_factory: Callable[[], Session] = Depends(get_session_factory),
) -> SettlementEngine:
    """Provide settlement engine bound to the session factory"""
    return SettlementEngine(session_factory, dispatcher=SideEffectDispatcher(session_factory))


def get_resolution_strategy() -> ResolutionStrategy:
    """Provide the configured strategy for internally settled payments"""
    if settings.resolution_strategy == "gateway":
        return GatewayResolutionStrategy()
    return SimulatedResolutionStrategy(
        success_rate=settings.simulated_success_rate,
        min_delay=settings.simulated_delay_min_seconds,
        max_delay=settings.simulated_delay_max_seconds,
    )
