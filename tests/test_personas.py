"""Persona parsing and the repository's merge / fallback / cache behavior."""

import json

import pytest

from persona_council.errors import ConfigValidationError
from persona_council.personas.defaults import DEFAULT_PERSONAS, PERSONA_SOURCES, PersonaSource
from persona_council.personas.models import parse_persona, parse_personas
from persona_council.personas.repository import PersonaRepository, load_local_personas
from persona_council.utils.network import NetworkClient

from conftest import json_transport, make_persona, persona_record


# =============================================================================
# PARSING
# =============================================================================


class TestParsePersona:
    def test_valid_record(self):
        persona = parse_persona(
            persona_record("p1", "  Planner ", tags=["plan", 3, ""], relatedPersonas=["p2"])
        )
        assert persona.name == "Planner"
        assert persona.tags == ("plan",)
        assert persona.related_personas == ("p2",)
        assert persona.source == "remote"

    @pytest.mark.parametrize("missing", ["id", "name", "rule", "goal", "version"])
    def test_missing_required_field_is_rejected(self, missing):
        record = persona_record("p1", "Planner")
        del record[missing]
        assert parse_persona(record) is None

    def test_blank_required_field_is_rejected(self):
        assert parse_persona(persona_record("p1", "   ")) is None

    def test_non_dict_is_rejected(self):
        assert parse_persona(["not", "a", "record"]) is None

    def test_parse_personas_keeps_valid_in_order(self):
        records = [persona_record("a", "A"), {"id": "broken"}, persona_record("b", "B")]
        assert [p.id for p in parse_personas(records, "local")] == ["a", "b"]

    def test_persona_is_immutable(self):
        persona = make_persona("a", "A")
        with pytest.raises(AttributeError):
            persona.name = "B"


class TestDefaults:
    def test_five_builtin_personas(self):
        assert len(DEFAULT_PERSONAS) == 5
        assert len({p.id for p in DEFAULT_PERSONAS}) == 5

    def test_sources_are_prioritized(self):
        assert [s.priority for s in PERSONA_SOURCES] == [1, 2, 3]


# =============================================================================
# REPOSITORY
# =============================================================================


def _sources(*urls: str) -> tuple[PersonaSource, ...]:
    return tuple(
        PersonaSource(url=url, priority=i + 1, timeout=1.0, retry_attempts=0)
        for i, url in enumerate(urls)
    )


class TestFallback:
    @pytest.mark.asyncio
    async def test_all_sources_failing_yields_defaults(self, offline_network, failing_transport):
        """No local personas and every remote down: the built-in set, tagged default."""
        repo = PersonaRepository(network=offline_network, warm_up=False)
        personas = await repo.get_all()
        assert len(personas) == len(DEFAULT_PERSONAS)
        assert all(p.source == "default" for p in personas)
        requested = {str(r.url) for r in failing_transport.requests}
        assert requested == {s.url for s in PERSONA_SOURCES}

    @pytest.mark.asyncio
    async def test_first_healthy_source_wins(self):
        transport = json_transport(
            {
                "https://two.test": [persona_record("r2", "From Two")],
                "https://three.test": [persona_record("r3", "From Three")],
            }
        )
        repo = PersonaRepository(
            network=NetworkClient(retry_delay=0.0, transport=transport),
            sources=_sources("https://one.test/p.json", "https://two.test/p.json", "https://three.test/p.json"),
            warm_up=False,
        )
        personas = await repo.get_all()
        assert [p.id for p in personas] == ["r2"]
        assert personas[0].source == "remote"
        assert not any("three.test" in str(r.url) for r in transport.requests)

    @pytest.mark.asyncio
    async def test_empty_array_counts_as_failure(self):
        transport = json_transport(
            {"https://one.test": [], "https://two.test": [persona_record("r2", "Two")]}
        )
        repo = PersonaRepository(
            network=NetworkClient(retry_delay=0.0, transport=transport),
            sources=_sources("https://one.test/p.json", "https://two.test/p.json"),
            warm_up=False,
        )
        assert [p.id for p in await repo.get_all()] == ["r2"]

    @pytest.mark.asyncio
    async def test_all_invalid_records_fall_through(self):
        transport = json_transport(
            {"https://one.test": [{"id": "x"}], "https://two.test": [persona_record("r2", "Two")]}
        )
        repo = PersonaRepository(
            network=NetworkClient(retry_delay=0.0, transport=transport),
            sources=_sources("https://one.test/p.json", "https://two.test/p.json"),
            warm_up=False,
        )
        assert [p.id for p in await repo.get_all()] == ["r2"]


class TestMerge:
    @pytest.mark.asyncio
    async def test_local_overrides_remote_by_id(self, make_repository):
        repo = make_repository(
            make_persona("shared", "Remote Shared"),
            make_persona("other", "Other"),
            local=[persona_record("shared", "Local Shared")],
        )
        by_id = {p.id: p for p in await repo.get_all()}
        assert by_id["shared"].name == "Local Shared"
        assert by_id["shared"].source == "local"
        assert by_id["other"].source == "default"

    @pytest.mark.asyncio
    async def test_invalid_local_records_are_dropped(self, make_repository):
        repo = make_repository(local=[{"id": "broken"}, persona_record("ok", "Ok")])
        assert [p.id for p in await repo.get_all()] == ["ok"]

    def test_load_local_personas(self, tmp_path):
        path = tmp_path / "personas.json"
        path.write_text(json.dumps([persona_record("a", "A")]), encoding="utf-8")
        assert load_local_personas(path)[0]["id"] == "a"

    def test_load_local_personas_bad_file(self, tmp_path):
        path = tmp_path / "personas.json"
        path.write_text("{not json", encoding="utf-8")
        assert load_local_personas(path) == []
        assert load_local_personas(tmp_path / "missing.json") == []


class TestCaching:
    @pytest.mark.asyncio
    async def test_base_set_is_cached(self):
        transport = json_transport({"https://one.test": [persona_record("r1", "One")]})
        repo = PersonaRepository(
            network=NetworkClient(retry_delay=0.0, transport=transport),
            sources=_sources("https://one.test/p.json"),
            warm_up=False,
        )
        await repo.get_all()
        await repo.get_all()
        assert len(transport.requests) == 1
        assert repo.is_cache_valid()

    @pytest.mark.asyncio
    async def test_refresh_cache_refetches(self):
        transport = json_transport({"https://one.test": [persona_record("r1", "One")]})
        repo = PersonaRepository(
            network=NetworkClient(retry_delay=0.0, transport=transport),
            sources=_sources("https://one.test/p.json"),
            warm_up=False,
        )
        await repo.get_all()
        await repo.refresh_cache()
        assert len(transport.requests) == 2

    @pytest.mark.asyncio
    async def test_stats(self, make_repository):
        repo = make_repository(
            make_persona("a", "A"), local=[persona_record("b", "B")]
        )
        await repo.get_all()
        stats = repo.stats()
        assert stats["total_personas"] == 2
        assert stats["local_personas"] == 1
        assert stats["by_source"] == {"default": 1, "local": 1}
        assert stats["cache_valid"] is True


class TestQueries:
    @pytest.mark.asyncio
    async def test_search_is_case_insensitive(self, make_repository, skeptic, cheerleader):
        repo = make_repository(skeptic, cheerleader)
        assert [p.id for p in await repo.search("RISK")] == ["skeptic"]

    @pytest.mark.asyncio
    async def test_get_by_id_and_category(self, make_repository, skeptic, cheerleader):
        repo = make_repository(skeptic, cheerleader)
        assert (await repo.get_by_id("cheerleader")).name == "Cheerleader"
        assert await repo.get_by_id("nobody") is None
        assert [p.id for p in await repo.get_by_category("critical")] == ["skeptic"]
        assert await repo.get_categories() == ["critical", "supportive"]


class TestUpdateFromConfig:
    @pytest.mark.asyncio
    async def test_replaces_local_set(self, make_repository):
        repo = make_repository(make_persona("base", "Base"))
        count = repo.update_from_config({"personas": [persona_record("cfg", "Configured")]})
        assert count == 1
        ids = {p.id for p in await repo.get_all()}
        assert ids == {"base", "cfg"}

    def test_rejects_config_without_personas(self, make_repository):
        repo = make_repository()
        with pytest.raises(ConfigValidationError):
            repo.update_from_config({"name": "empty"})

    def test_rejects_config_with_only_invalid_personas(self, make_repository):
        repo = make_repository()
        with pytest.raises(ConfigValidationError):
            repo.update_from_config({"personas": [{"id": "x"}]})


class TestWarmUp:
    @pytest.mark.asyncio
    async def test_warm_up_populates_cache(self, make_repository, skeptic):
        repo = make_repository(skeptic)
        assert not repo.is_cache_valid()
        await repo.warm_up()
        assert repo.is_cache_valid()

    def test_no_warm_up_without_loop(self, offline_network):
        """Constructing outside an event loop must not try to schedule anything."""
        PersonaRepository(network=offline_network, sources=(), warm_up=True)
