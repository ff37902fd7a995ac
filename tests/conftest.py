"""Test fixtures -- personas, fake analysis provider, mock HTTP transports."""

import asyncio
import json

import httpx
import pytest

from persona_council.collaboration.models import ActionPlan, SynthesisResult
from persona_council.personas.models import Persona
from persona_council.personas.repository import PersonaRepository
from persona_council.utils.network import NetworkClient


def make_persona(persona_id: str, name: str, **overrides) -> Persona:
    fields = {
        "rule": f"{name} speaks plainly",
        "goal": f"Help as {name}",
        "version": "1.0",
    }
    fields.update(overrides)
    return Persona(id=persona_id, name=name, **fields)


def persona_record(persona_id: str, name: str, **overrides) -> dict:
    record = {
        "id": persona_id,
        "name": name,
        "rule": f"{name} speaks plainly",
        "goal": f"Help as {name}",
        "version": "1.0",
    }
    record.update(overrides)
    return record


class FakeProvider:
    """AnalysisProvider that records calls and can fail or stall per persona."""

    def __init__(self, fail_for=(), stall_for=(), stall_seconds=5.0):
        self.calls: list[tuple[str, str]] = []
        self.fail_for = set(fail_for)
        self.stall_for = set(stall_for)
        self.stall_seconds = stall_seconds
        self.synthesize_error: Exception | None = None

    async def analyze(self, persona, query, prompt):
        self.calls.append((persona.id, query))
        if persona.id in self.fail_for:
            raise RuntimeError(f"{persona.id} is unavailable")
        if persona.id in self.stall_for:
            await asyncio.sleep(self.stall_seconds)
        return f"{persona.name} notes a risk. Recommendation: gather more data on {persona.id}."

    async def synthesize(self, query, analyses, cross_validation):
        if self.synthesize_error is not None:
            raise self.synthesize_error
        return SynthesisResult(summary=f"{len(analyses)} analyses", confidence=0.6)

    async def plan_actions(self, query, synthesis, analyses):
        return ActionPlan(timeline="1 week", priority="low")


class RecordingTransport(httpx.MockTransport):
    """MockTransport that keeps every request it served."""

    def __init__(self, handler):
        self.requests: list[httpx.Request] = []

        def _record(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return handler(request)

        super().__init__(_record)


def json_transport(routes: dict[str, object], status: int = 200) -> RecordingTransport:
    """Serve fixed JSON bodies by URL (path and query); unknown URLs are 404."""

    def handler(request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        for prefix, body in routes.items():
            if url.startswith(prefix):
                return httpx.Response(status, content=json.dumps(body).encode())
        return httpx.Response(404)

    return RecordingTransport(handler)


# =============================================================================
# FIXTURES
# =============================================================================


@pytest.fixture
def skeptic():
    return make_persona(
        "skeptic",
        "Skeptic",
        rule="Question every assumption and scrutinize each claim",
        goal="Find the risk in every plan",
        category="critical",
        tags=("critical", "risk"),
    )


@pytest.fixture
def cheerleader():
    return make_persona(
        "cheerleader",
        "Cheerleader",
        rule="Encourage the team and highlight strengths",
        goal="Keep morale positive",
        category="supportive",
        tags=("supportive", "encouragement"),
    )


@pytest.fixture
def inventor():
    return make_persona(
        "inventor",
        "Inventor",
        rule="Imagine bold alternatives and propose creative options",
        goal="Spark innovative ideas",
        category="creative",
        tags=("ideas",),
    )


@pytest.fixture
def analyst():
    return make_persona(
        "analyst",
        "Analyst",
        rule="Reason from data and logic",
        goal="Produce an evidence-based analysis",
        category="analytical",
        tags=("data",),
    )


@pytest.fixture
def failing_transport():
    return RecordingTransport(lambda request: httpx.Response(503))


@pytest.fixture
def offline_network(failing_transport):
    return NetworkClient(retry_delay=0.0, transport=failing_transport)


@pytest.fixture
def fake_provider():
    return FakeProvider()


@pytest.fixture
def make_repository(offline_network):
    """Repository whose base set is exactly the given personas (no remote sources)."""

    def _make(*personas, local=None):
        return PersonaRepository(
            network=offline_network,
            local_personas=local,
            sources=(),
            defaults=personas,
            warm_up=False,
        )

    return _make
