"""
Tests for the roster deduplicator and roster import.
"""
import random
import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from agsuite.models.roster_entry import EntityCategory
from agsuite.services.roster import (
    Eligibility, build_roster, group_by_category, import_roster, load_roster,
    parse_eligibility, sort_key,
)


RAW_ROWS = [
    {"category": "eb", "external_id": " EB-SEC ", "name": "Bruno Lima", "role": "Secretário-Geral"},
    {"category": "eb", "external_id": "EB-PRES", "name": "Carla Dias", "role": "Presidente"},
    {"category": "cr", "external_id": "CR-SUL", "name": "Diego Prado", "role": "Coordenador Sul"},
    {"category": "comite", "external_id": "USP", "name": "", "status": ""},
    {"category": "comite", "external_id": "USP", "name": "Comitê USP", "status": "Pleno", "city": "São Paulo"},
    {"category": "comite", "external_id": "UFPR", "name": "Comitê UFPR", "status": "Não-pleno"},
    {"category": "comite", "external_id": "   ", "name": "No id"},
]


class TestBuildRoster:
    """Test deduplication and ordering of raw roster rows."""

    def test_empty_input(self):
        """Test that no rows yields an empty roster."""
        assert build_roster([]) == []

    def test_one_entity_per_key(self):
        """Test that duplicate (category, external id) rows collapse."""
        roster = build_roster(RAW_ROWS)
        keys = [e.key for e in roster]
        assert len(keys) == len(set(keys))
        assert len(roster) == 5

    def test_blank_external_id_discarded(self):
        """Test that rows whose trimmed external id is empty are dropped."""
        roster = build_roster(RAW_ROWS)
        assert all(e.external_id.strip() for e in roster)
        assert "No id" not in [e.name for e in roster]

    def test_external_id_trimmed(self):
        roster = build_roster(RAW_ROWS)
        assert (EntityCategory.EXECUTIVE_BOARD, "EB-SEC") in [e.key for e in roster]

    def test_first_non_empty_value_wins(self):
        """Test that later rows fill fields the first row left empty."""
        roster = build_roster(RAW_ROWS)
        usp = next(e for e in roster if e.external_id == "USP")
        assert usp.name == "Comitê USP"
        assert usp.city == "São Paulo"
        assert usp.eligibility == Eligibility.FULL_VOTING

    def test_first_value_not_overwritten(self):
        rows = [
            {"category": "eb", "external_id": "EB-1", "name": "First", "role": "Presidente"},
            {"category": "eb", "external_id": "EB-1", "name": "Second", "role": "Tesoureiro"},
        ]
        roster = build_roster(rows)
        assert len(roster) == 1
        assert roster[0].name == "First"
        assert roster[0].role == "Presidente"

    def test_ordering(self):
        """Test board/coordinators sorted by role, committees by external id."""
        roster = build_roster(RAW_ROWS)
        assert [e.external_id for e in roster] == ["EB-PRES", "EB-SEC", "CR-SUL", "UFPR", "USP"]

    def test_ordering_ignores_case_and_diacritics(self):
        rows = [
            {"category": "eb", "external_id": "B", "role": "Ética"},
            {"category": "eb", "external_id": "A", "role": "estágios"},
            {"category": "eb", "external_id": "C", "role": "Diretor"},
        ]
        assert [e.role for e in build_roster(rows)] == ["Diretor", "estágios", "Ética"]

    def test_membership_order_independent(self):
        """Test that shuffling the input does not change which entities exist."""
        expected = {e.key for e in build_roster(RAW_ROWS)}
        rows = list(RAW_ROWS)
        for seed in range(5):
            random.Random(seed).shuffle(rows)
            assert {e.key for e in build_roster(rows)} == expected

    def test_idempotent(self):
        """Test that rebuilding from the canonical output gives the same roster."""
        first = build_roster(RAW_ROWS)
        rows = [
            {
                "category": e.category, "external_id": e.external_id, "name": e.name,
                "role": e.role, "status": e.status, "city": e.city,
            }
            for e in first
        ]
        assert build_roster(rows) == first

    def test_scope_filter(self):
        roster = build_roster(RAW_ROWS, scope_filter=lambda row: row["category"] == "comite")
        assert {e.category for e in roster} == {EntityCategory.LOCAL_COMMITTEE}

    def test_name_falls_back_to_external_id(self):
        roster = build_roster([{"category": "cr", "external_id": "CR-NORTE"}])
        assert roster[0].name == "CR-NORTE"

    def test_group_by_category(self):
        grouped = group_by_category(build_roster(RAW_ROWS))
        assert len(grouped[EntityCategory.EXECUTIVE_BOARD]) == 2
        assert len(grouped[EntityCategory.REGIONAL_COORDINATOR]) == 1
        assert len(grouped[EntityCategory.LOCAL_COMMITTEE]) == 2


class TestEligibility:
    """Test committee status parsing."""

    @pytest.mark.parametrize("value", ["Pleno", "pleno", " PLENO ", "full", "Full Voting"])
    def test_full_voting(self, value):
        assert parse_eligibility(value) == Eligibility.FULL_VOTING

    @pytest.mark.parametrize("value", ["Não-pleno", "Nao pleno", "limited", None, "", "???"])
    def test_limited_voting(self, value):
        assert parse_eligibility(value) == Eligibility.LIMITED_VOTING

    def test_sort_key(self):
        assert sort_key("Comitê São João") == "comite sao joao"
        assert sort_key(None) == ""


class TestRosterImport:
    """Test storing and reading back raw roster rows."""

    @pytest.mark.asyncio
    async def test_import_and_load(self, db_session: AsyncSession, test_assembly):
        """Test that imported rows come back deduplicated."""
        stored = await import_roster(db_session, test_assembly.id, RAW_ROWS)
        assert stored == len(RAW_ROWS)

        roster = await load_roster(db_session, test_assembly.id)
        assert [e.external_id for e in roster] == ["EB-PRES", "EB-SEC", "CR-SUL", "UFPR", "USP"]

    @pytest.mark.asyncio
    async def test_import_preserves_first_row_precedence(self, db_session: AsyncSession, test_assembly):
        await import_roster(db_session, test_assembly.id, [
            {"category": "eb", "external_id": "EB-1", "name": "First"},
        ])
        await import_roster(db_session, test_assembly.id, [
            {"category": "eb", "external_id": "EB-1", "name": "Second", "role": "Presidente"},
        ])
        roster = await load_roster(db_session, test_assembly.id)
        assert len(roster) == 1
        assert roster[0].name == "First"
        assert roster[0].role == "Presidente"

    @pytest.mark.asyncio
    async def test_unknown_category_skipped(self, db_session: AsyncSession, test_assembly):
        stored = await import_roster(db_session, test_assembly.id, [
            {"category": "alien", "external_id": "X"},
            {"category": "cr", "external_id": "CR-1"},
        ])
        assert stored == 1

    @pytest.mark.asyncio
    async def test_replace(self, db_session: AsyncSession, test_assembly):
        await import_roster(db_session, test_assembly.id, RAW_ROWS)
        await import_roster(db_session, test_assembly.id, [{"category": "cr", "external_id": "CR-1"}], replace=True)
        roster = await load_roster(db_session, test_assembly.id)
        assert [e.external_id for e in roster] == ["CR-1"]

    @pytest.mark.asyncio
    async def test_roster_api(self, client: AsyncClient, organizer_headers: dict, test_assembly):
        """Test importing and listing the roster over HTTP."""
        response = await client.post(
            f"/api/v1/assemblies/{test_assembly.id}/roster",
            headers=organizer_headers,
            json={"rows": RAW_ROWS},
        )
        assert response.status_code == 201, response.text
        assert response.json()["imported"] == len(RAW_ROWS)

        response = await client.get(f"/api/v1/assemblies/{test_assembly.id}/roster")
        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 5
        usp = next(item for item in data["items"] if item["external_id"] == "USP")
        assert usp["category"] == "local_committee"
        assert usp["eligibility"] == "full_voting"

    @pytest.mark.asyncio
    async def test_roster_unknown_assembly(self, client: AsyncClient):
        response = await client.get("/api/v1/assemblies/missing/roster")
        assert response.status_code == 404
        assert response.json()["code"] == "not_found"
