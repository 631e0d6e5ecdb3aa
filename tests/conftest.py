"""Pytest configuration and shared fixtures."""

from pathlib import Path
from typing import Any, Optional

import pytest
import pytest_asyncio

from webcheck.executor.action_log import ActionLogger
from webcheck.executor.automation import AutomationCapability
from webcheck.models.config import WebcheckConfig
from webcheck.models.session import Session
from webcheck.models.test_plan import Assertion, GoalDescriptor, Step, TestCase
from webcheck.storage.memory import MemoryStore

SESSION_ID = "session_test_0001"

PNG_BYTES = (
    b'\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR\x00\x00\x00\x01'
    b'\x00\x00\x00\x01\x08\x02\x00\x00\x00\x90wS\xde\x00\x00'
    b'\x00\x0cIDATx\x9cc\x00\x01\x00\x00\x05\x00\x01\r\n-'
    b'\xb4\x00\x00\x00\x00IEND\xaeB`\x82'
)

SAMPLE_HTML = """
<html>
    <body>
        <div class="header">
            <h1>Sign in</h1>
        </div>
        <form id="login">
            <input name="email" type="email" />
            <input name="password" type="password" />
            <button id="submit">Submit</button>
        </form>
        <script>var hidden = "Welcome back";</script>
    </body>
</html>
"""


class FakeAutomation(AutomationCapability):
    """Scripted automation capability.

    ``elements`` maps a selector to its state (``visible``, ``text``,
    ``value``, ``count``); a selector that is absent does not exist.
    ``fail_on`` maps an operation name to the exception it raises.
    """

    def __init__(
        self,
        html: str = SAMPLE_HTML,
        elements: Optional[dict[str, dict[str, Any]]] = None,
        fail_on: Optional[dict[str, Exception]] = None,
    ):
        self.html = html
        self.elements = elements or {}
        self.fail_on = dict(fail_on or {})
        self.calls: list[tuple[str, tuple]] = []
        self.dispose_count = 0

    @property
    def operations(self) -> list[str]:
        return [op for op, _ in self.calls]

    async def _record(self, operation: str, *args: Any) -> None:
        self.calls.append((operation, args))
        error = self.fail_on.get(operation)
        if error is not None:
            raise error

    async def navigate(self, url: str) -> None:
        await self._record("navigate", url)

    async def click(self, selector: str) -> None:
        await self._record("click", selector)

    async def type(self, selector: str, text: str) -> None:
        await self._record("type", selector, text)

    async def select_option(self, selector: str, value: str) -> None:
        await self._record("select_option", selector, value)

    async def take_screenshot(self) -> bytes:
        await self._record("take_screenshot")
        return PNG_BYTES

    async def snapshot(self) -> str:
        await self._record("snapshot")
        return self.html

    async def element_exists(self, selector: str) -> bool:
        await self._record("element_exists", selector)
        return selector in self.elements

    async def element_visible(self, selector: str) -> bool:
        await self._record("element_visible", selector)
        return self.elements.get(selector, {}).get("visible", False)

    async def element_text(self, selector: str) -> str:
        await self._record("element_text", selector)
        return self.elements.get(selector, {}).get("text", "")

    async def element_value(self, selector: str) -> str:
        await self._record("element_value", selector)
        return self.elements.get(selector, {}).get("value", "")

    async def element_count(self, selector: str) -> int:
        await self._record("element_count", selector)
        return self.elements.get(selector, {}).get("count", 1 if selector in self.elements else 0)

    async def wait_for_element(self, selector: str, timeout_ms: int) -> None:
        await self._record("wait_for_element", selector, timeout_ms)

    async def dispose(self) -> None:
        self.dispose_count += 1


# ============================================================================
# Automation and Storage Fixtures
# ============================================================================


@pytest.fixture
def fake_automation() -> FakeAutomation:
    """Create a fake automation capability with a login form on the page."""
    return FakeAutomation(elements={
        "#submit": {"visible": True, "text": " Submit ", "count": 1},
        "input[name='email']": {"visible": True, "value": "user@example.com"},
        "li.item": {"visible": True, "count": 3},
    })


@pytest.fixture
def make_automation():
    """Return the fake capability class for tests that script their own page."""
    return FakeAutomation


@pytest.fixture
def memory_store() -> MemoryStore:
    """Create an empty in-process store."""
    return MemoryStore()


@pytest.fixture
def action_logger(memory_store: MemoryStore) -> ActionLogger:
    """Create an action logger bound to the test session."""
    return ActionLogger(memory_store, SESSION_ID, config_id=7)


@pytest_asyncio.fixture
async def running_session(memory_store: MemoryStore) -> Session:
    """Store a running session and return it."""
    session = Session(id=SESSION_ID, url="https://example.com/login",
                      test_kind="deterministic", config_id=7)
    await memory_store.create_test_session(session)
    return session


# ============================================================================
# Instruction Fixtures
# ============================================================================


@pytest.fixture
def login_test_case() -> TestCase:
    """Create a deterministic login test case."""
    return TestCase(
        name="Login form",
        steps=[
            Step(action="navigate", url="https://example.com/login", description="Open login"),
            Step(action="type", selector="input[name='email']", value="user@example.com"),
            Step(action="type", selector="input[name='password']", value="hunter2"),
            Step(action="click", selector="#submit", description="Submit form"),
        ],
        assertions=[
            Assertion(type="exists", selector="#submit", description="Submit exists"),
            Assertion(type="text", selector="#submit", expected="Submit"),
        ],
    )


@pytest.fixture
def sample_goal() -> GoalDescriptor:
    """Create a goal-directed descriptor."""
    return GoalDescriptor(
        goal="Sign in to the dashboard",
        context="Use the demo account",
        success_criteria=["Dashboard", "Welcome back"],
        max_attempts=3,
        timeout_ms=60000,
    )


# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def webcheck_config(tmp_path: Path) -> WebcheckConfig:
    """Create a config whose store lives in a temporary directory."""
    return WebcheckConfig(store_path=str(tmp_path / "store.json"), default_wait_ms=10)


@pytest.fixture
def temp_evidence_dir(tmp_path: Path) -> Path:
    """Create a temporary evidence directory."""
    evidence_dir = tmp_path / "evidence"
    evidence_dir.mkdir()
    return evidence_dir
