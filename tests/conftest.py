"""Pytest fixtures for testing"""

import pytest
from datetime import date
from typing import Callable, Generator, List, Optional, Tuple
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker, Session
from cardpay_gateway.api.main import create_app
from cardpay_gateway.api.dependencies import get_resolution_strategy, get_session_factory
from cardpay_gateway.domain.resolution import SimulatedResolutionStrategy
from cardpay_gateway.infrastructure.database.models import Base, Card, Statement
from cardpay_gateway.infrastructure.database.session import build_engine, get_db
from cardpay_gateway.services.settlement import SettlementEngine
from cardpay_gateway.services.side_effects import SideEffectDispatcher


# Test database (file-backed so threads get their own connections)
TEST_DATABASE_URL = "sqlite:///./test.db"
engine = build_engine(TEST_DATABASE_URL)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

USER_ID = "user_alice"
OTHER_USER_ID = "user_bob"


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create test database and session"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def session_factory(db: Session) -> sessionmaker:
    """Factory for the independent sessions settlement and side effects open"""
    return TestingSessionLocal


@pytest.fixture
def settlement_engine(session_factory: sessionmaker) -> SettlementEngine:
    return SettlementEngine(session_factory, dispatcher=SideEffectDispatcher(session_factory))


@pytest.fixture
def resolution_strategy() -> SimulatedResolutionStrategy:
    """Resolve background payments immediately and successfully"""
    return SimulatedResolutionStrategy(success_rate=1.0, min_delay=0.0, max_delay=0.0)


@pytest.fixture
def client(db: Session, session_factory: sessionmaker, resolution_strategy: SimulatedResolutionStrategy) -> TestClient:
    """Create FastAPI test client with test database"""
    app = create_app()

    # Fresh session per request, like production; the db fixture only seeds and asserts
    def override_get_db():
        session = TestingSessionLocal()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_resolution_strategy] = lambda: resolution_strategy
    return TestClient(app)


@pytest.fixture
def make_card(db: Session) -> Callable[..., Card]:
    """Create a card with statements given as (due_date, balance_cents) pairs"""

    def _make_card(
        user_id: str = USER_ID,
        statements: Optional[List[Tuple[date, int]]] = None,
        status: str = "ACTIVE",
        last4: str = "4242",
    ) -> Card:
        card = Card(user_id=user_id, last4=last4, status=status)
        db.add(card)
        db.flush()

        for due_date, balance in statements or []:
            db.add(
                Statement(
                    card_id=card.id,
                    month=due_date.month,
                    year=due_date.year,
                    due_date=due_date,
                    balance_cents=balance,
                    is_paid=balance == 0,
                )
            )

        db.commit()
        return card

    return _make_card


@pytest.fixture
def user_headers() -> dict:
    return {"X-User-ID": USER_ID}
