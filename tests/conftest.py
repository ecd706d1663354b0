"""
Pytest configuration and shared fixtures

Fun fact: The name "conftest" comes from pytest's configuration testing
framework. Files named conftest.py are automatically discovered and their
fixtures are available to all tests in the same directory and subdirectories!
"""

from datetime import datetime, timezone
from pathlib import Path

import pytest

from requisition_flow.access.identity import InMemoryUserDirectory
from requisition_flow.access.models import Actor, UserRole
from requisition_flow.flow import RequisitionFlow
from requisition_flow.items.handlers import ItemCommandHandlers
from requisition_flow.kernel.collaborators import RecordingNotifier
from requisition_flow.kernel.event_store import SQLiteEventStore
from requisition_flow.kernel.policy import WorkflowPolicy
from requisition_flow.kernel.time import TestTimeProvider
from requisition_flow.lots.handlers import LotCommandHandlers
from requisition_flow.requisition.handlers import RequisitionCommandHandlers
from requisition_flow.requisition.projections import RequisitionRegistry


@pytest.fixture
def temp_db(tmp_path: Path) -> Path:
    """Database path inside pytest's per-test temporary directory"""
    return tmp_path / "requisitions.db"


@pytest.fixture
def event_store(temp_db: Path) -> SQLiteEventStore:
    """Provide a fresh event store for each test"""
    return SQLiteEventStore(temp_db)


@pytest.fixture
def test_time() -> TestTimeProvider:
    """
    Provide a controllable time provider for deterministic tests

    Default time: 2025-01-15 12:00:00 UTC, so every number issued in a
    test is REQ-2025-NNNN.
    """
    return TestTimeProvider(datetime(2025, 1, 15, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def policy() -> WorkflowPolicy:
    return WorkflowPolicy()


@pytest.fixture
def manual_policy() -> WorkflowPolicy:
    """Classified items stay EN_STOCK / REQUIERE_COMPRA until moved by hand"""
    return WorkflowPolicy(auto_advance_classified_items=False)


@pytest.fixture
def directory() -> InMemoryUserDirectory:
    """
    One user per role (id = role in lower case), plus a second requester
    and an inactive logistics user
    """
    users = InMemoryUserDirectory.one_per_role()
    users.add(Actor(user_id="tecnico2", role=UserRole.TECNICO, name="Second requester"))
    users.add(Actor(user_id="logistica2", role=UserRole.LOGISTICA, active=False))
    return users


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def flow(
    temp_db: Path,
    policy: WorkflowPolicy,
    test_time: TestTimeProvider,
    directory: InMemoryUserDirectory,
    notifier: RecordingNotifier,
) -> RequisitionFlow:
    """Fully wired engine on a fresh database"""
    return RequisitionFlow(
        temp_db,
        policy=policy,
        time_provider=test_time,
        directory=directory,
        notifier=notifier,
    )


@pytest.fixture
def manual_flow(
    temp_db: Path,
    manual_policy: WorkflowPolicy,
    test_time: TestTimeProvider,
    directory: InMemoryUserDirectory,
    notifier: RecordingNotifier,
) -> RequisitionFlow:
    """Engine whose classification does not auto-advance items"""
    return RequisitionFlow(
        temp_db,
        policy=manual_policy,
        time_provider=test_time,
        directory=directory,
        notifier=notifier,
    )


# =============================================================================
# Handler-level fixtures
# =============================================================================


@pytest.fixture
def requisition_handlers(
    test_time: TestTimeProvider, policy: WorkflowPolicy
) -> RequisitionCommandHandlers:
    """
    Handlers are stateless - they take the registry's requisitions as a parameter
    """
    return RequisitionCommandHandlers(test_time, policy)


@pytest.fixture
def item_handlers(test_time: TestTimeProvider, policy: WorkflowPolicy) -> ItemCommandHandlers:
    return ItemCommandHandlers(test_time, policy)


@pytest.fixture
def lot_handlers(test_time: TestTimeProvider, policy: WorkflowPolicy) -> LotCommandHandlers:
    return LotCommandHandlers(test_time, policy)


@pytest.fixture
def registry() -> RequisitionRegistry:
    """Fresh registry projection, fed by the events a test applies"""
    return RequisitionRegistry()


@pytest.fixture
def requester() -> Actor:
    return Actor(user_id="tecnico", role=UserRole.TECNICO)


@pytest.fixture
def safety_officer() -> Actor:
    return Actor(user_id="seguridad", role=UserRole.SEGURIDAD)


@pytest.fixture
def manager() -> Actor:
    return Actor(user_id="gerencia", role=UserRole.GERENCIA)
