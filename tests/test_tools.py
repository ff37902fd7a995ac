"""PersonaToolService -- argument validation, handlers, error mapping, stats."""

import asyncio

import httpx
import pytest

from persona_council.collaboration.orchestrator import CollaborationOrchestrator
from persona_council.sync.config_sync import ConfigSynchronizer
from persona_council.tools.schemas import sanitize_args
from persona_council.tools.service import PersonaToolService
from persona_council.tools.stats import ToolStatsManager
from persona_council.utils.network import NetworkClient

from conftest import FakeProvider, RecordingTransport, persona_record


@pytest.fixture
def service(make_repository, fake_provider, skeptic, cheerleader, inventor, tmp_path):
    repository = make_repository(skeptic, cheerleader, inventor)
    orchestrator = CollaborationOrchestrator(repository, provider=fake_provider)
    synchronizer = ConfigSynchronizer(
        network=NetworkClient(retry_delay=0.0, transport=RecordingTransport(lambda r: httpx.Response(500))),
        config_path=tmp_path / "config.json",
    )
    return PersonaToolService(repository, orchestrator, synchronizer)


class TestSanitize:
    def test_trims_and_caps(self):
        args = sanitize_args({"query": "  hi  ", "ids": list(range(50)), "long": "x" * 6000})
        assert args["query"] == "hi"
        assert len(args["ids"]) == 20
        assert len(args["long"]) == 5000

    def test_depth_limit(self):
        nested: dict = {}
        cursor = nested
        for _ in range(20):
            cursor["child"] = {}
            cursor = cursor["child"]
        cleaned = sanitize_args(nested)
        depth = 0
        while isinstance(cleaned, dict):
            cleaned = cleaned.get("child")
            depth += 1
        assert depth <= 12


class TestValidation:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("query", ["", "x" * 3000])
    async def test_search_rejects_bad_length_without_network(self, service, offline_network, failing_transport, query):
        """Empty and over-length queries fail validation before any fetch."""
        response = await service.search_personas(query)
        assert response.ok is False
        assert response.error.kind == "validation"
        assert failing_transport.requests == []

    @pytest.mark.asyncio
    async def test_unknown_tool(self, service):
        response = await service.call("summon_everyone", {})
        assert response.error.kind == "not_found"
        assert "summon_persona" in response.error.hints[0]

    @pytest.mark.asyncio
    async def test_bad_config_id(self, service):
        response = await service.download_persona_config("../../etc")
        assert response.error.kind == "validation"

    @pytest.mark.asyncio
    async def test_too_many_persona_ids(self, service):
        response = await service.start_collaboration("Evaluate the plan", persona_ids=[f"p{i}" for i in range(11)])
        assert response.error.kind == "validation"


class TestPersonaTools:
    @pytest.mark.asyncio
    async def test_summon_by_id_and_name(self, service):
        by_id = await service.summon_persona("skeptic")
        by_name = await service.summon_persona("cheerleader")
        by_exact_name = await service.summon_persona("Inventor")
        assert by_id.data["name"] == "Skeptic"
        assert by_name.data["id"] == "cheerleader"
        assert by_exact_name.data["id"] == "inventor"

    @pytest.mark.asyncio
    async def test_summon_unknown_suggests(self, service):
        response = await service.summon_persona("risk")
        assert response.error.kind == "not_found"
        assert response.error.hints[0].startswith("Did you mean: Skeptic")

    @pytest.mark.asyncio
    async def test_list_grouped_by_source(self, service):
        response = await service.list_personas()
        assert set(response.data) == {"default"}
        assert len(response.data["default"]) == 3

    @pytest.mark.asyncio
    async def test_list_category_filter_matches_tags(self, service):
        response = await service.list_personas(category="risk")
        assert [p["id"] for p in response.data["default"]] == ["skeptic"]

    @pytest.mark.asyncio
    async def test_list_no_match(self, service):
        response = await service.list_personas(source="local")
        assert response.ok
        assert response.data == {}

    @pytest.mark.asyncio
    async def test_search_ranks_name_first(self, service):
        response = await service.search_personas("skeptic")
        top = response.data[0]
        assert top["persona"]["id"] == "skeptic"
        assert "name" in top["matched_fields"]
        assert "id" in top["matched_fields"]


class TestCollaborationTools:
    @pytest.mark.asyncio
    async def test_start_collaboration_returns_report(self, service):
        response = await service.start_collaboration(
            "Evaluate risk of launching this product now",
            persona_ids=["skeptic", "cheerleader"],
            mode="parallel",
        )
        assert response.ok
        assert response.data["mode"] == "parallel"
        assert len(response.data["analyses"]) == 2
        assert "## Skeptic" in response.text

    @pytest.mark.asyncio
    async def test_invalid_mode(self, service):
        response = await service.start_collaboration("Evaluate the plan", mode="chaotic")
        assert response.error.kind == "validation"

    @pytest.mark.asyncio
    async def test_unknown_personas(self, service):
        response = await service.start_collaboration("Evaluate the plan", persona_ids=["ghost"])
        assert response.error.kind == "not_found"

    @pytest.mark.asyncio
    async def test_list_sessions(self, service):
        await service.start_collaboration("Evaluate the plan", persona_ids=["skeptic"])
        response = await service.list_sessions()
        assert response.data["active"] == []
        assert response.data["history"][0]["status"] == "completed"


class TestCancelSession:
    @pytest.mark.asyncio
    async def test_cancel_running_session(self, make_repository, skeptic):
        """The cancelled run reports kind "cancelled" and lands in history as failed."""
        repository = make_repository(skeptic)
        provider = FakeProvider(stall_for={"skeptic"}, stall_seconds=5.0)
        service = PersonaToolService(
            repository, CollaborationOrchestrator(repository, provider=provider)
        )
        run = asyncio.ensure_future(
            service.start_collaboration("Evaluate the plan", persona_ids=["skeptic"])
        )
        while not provider.calls:
            await asyncio.sleep(0.01)

        session_id = service.orchestrator.get_active_sessions()[0].id
        response = await service.cancel_session(session_id)
        assert response.ok
        assert response.data == {"session_id": session_id, "cancelled": True}

        outcome = await run
        assert outcome.error.kind == "cancelled"
        sessions = (await service.list_sessions()).data
        assert sessions["active"] == []
        assert sessions["history"][0]["status"] == "failed"

    @pytest.mark.asyncio
    async def test_cancel_unknown_session(self, service):
        response = await service.cancel_session("session_missing")
        assert response.error.kind == "not_found"
        assert "list_sessions" in response.error.hints[0]


class TestConfigTools:
    @pytest.mark.asyncio
    async def test_missing_key(self, service):
        response = await service.list_persona_configs()
        assert response.error.kind == "auth"

    @pytest.mark.asyncio
    async def test_network_failure_details(self, service):
        service.synchronizer.set_user_key("uk_test")
        response = await service.list_persona_configs()
        assert response.error.kind == "network"
        assert response.error.details["status"] == 500

    @pytest.mark.asyncio
    async def test_sync_applies_to_repository(self, make_repository, fake_provider, tmp_path):
        config = {
            "id": "team-a",
            "name": "Team A",
            "version": "1",
            "personas": [persona_record("cfg-1", "Configured")],
        }

        def handler(request):
            data = [{"id": "team-a", "name": "Team A"}] if request.url.path == "/api/configs" else config
            return httpx.Response(200, json={"success": True, "data": data})

        repository = make_repository()
        synchronizer = ConfigSynchronizer(
            network=NetworkClient(retry_delay=0.0, transport=RecordingTransport(handler)),
            config_path=tmp_path / "config.json",
        )
        synchronizer.set_user_key("uk_test")
        service = PersonaToolService(
            repository, CollaborationOrchestrator(repository, provider=fake_provider), synchronizer
        )
        response = await service.sync_persona_config("team-a")
        assert response.data["personas_applied"] == 1
        assert (await repository.get_by_id("cfg-1")).source == "local"


class TestStats:
    @pytest.mark.asyncio
    async def test_calls_are_recorded(self, service):
        await service.summon_persona("skeptic")
        await service.summon_persona("nobody")
        response = await service.get_tool_stats("summon_persona")
        entry = response.data["tools"][0]
        assert entry["call_count"] == 2
        assert entry["success_count"] == 1
        assert entry["error_count"] == 1

    def test_summary(self):
        stats = ToolStatsManager()
        stats.record_call("a", True, 0.1)
        stats.record_call("a", False, 0.3)
        stats.record_call("b", True, 0.2)
        summary = stats.summary()
        assert summary["total_calls"] == 3
        assert summary["most_used_tool"] == "a"
        assert stats.get_stats("a")[0].avg_execution_time == pytest.approx(0.2)
        stats.reset()
        assert stats.get_stats() == []
