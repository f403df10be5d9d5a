"""Tests for the bar yield calculator and the calculation engine.

Covers:
- Default geometric formula (margin 12, kerf 0.25) and zero-yield cost
- Ranking: most pieces first, cheapest cost per piece on ties
- Formula candidates: applicable, inapplicable, failing
- Material compatibility filter with fail-open fallback
- Formula bindings built from dimensions and custom fields
- Piece length precondition
"""

from __future__ import annotations

from decimal import Decimal

import pytest

from src.calculation import CalculationPreconditionError, compute_all, piece_length, rank_results
from src.calculation.bindings import extraction_bindings, material_bindings
from src.calculation.compatibility import filter_compatible_materials
from src.calculation.engine import MISSING_LENGTH_MESSAGE
from src.calculators.bar_yield import clamp_pieces, cost_per_piece, default_pieces_per_bar, parse_length
from src.schemas.calculation import CalculationResult
from src.schemas.catalog import ClientProfile, Formula, Material
from src.schemas.extraction import DimensionField, ExtractedData, ExtractedField, ExtractionResult

# ── Helpers ──────────────────────────────────────────────────────────


def _make_material(
    material_id: str = "M1",
    type_: str = "Tube acier",
    standard_length: float = 288,
    cost: str = "45.50",
) -> Material:
    return Material(
        id=material_id,
        type=type_,
        dimensions="1x1",
        standard_length=standard_length,
        unit="in",
        cost_per_unit=Decimal(cost),
    )


def _make_data(length: str | None = "24", piece_type: str = "tube", material: str = "acier") -> ExtractedData:
    dimensions = {"longueur": DimensionField(value=length, unit="in", confidence=90)} if length is not None else {}
    return ExtractedData(
        reference=ExtractedField(value="PL-001", confidence=95),
        material=ExtractedField(value=material, confidence=80),
        piece_type=ExtractedField(value=piece_type, confidence=80),
        dimensions=dimensions,
    )


def _make_extraction(data: ExtractedData | None = None) -> ExtractionResult:
    return ExtractionResult(id="ex1", file_name="plan.pdf", extracted_data=data or _make_data())


def _make_result(candidate_id: str, pieces: int, cost: str) -> CalculationResult:
    return CalculationResult(
        candidate_id=candidate_id,
        pieces_per_bar=pieces,
        estimated_cost=Decimal(cost),
        selected_material=_make_material(candidate_id),
    )


# ── Bar yield ────────────────────────────────────────────────────────


class TestBarYield:
    def test_default_pieces(self):
        """floor((288 - 12) / (24 + 0.25)) = 11."""
        assert default_pieces_per_bar(288, 24) == 11

    def test_piece_longer_than_bar(self):
        assert default_pieces_per_bar(10, 24) == 0

    def test_clamp_negative(self):
        assert clamp_pieces(-3.7) == 0

    def test_clamp_floors(self):
        assert clamp_pieces(11.99) == 11

    def test_cost_per_piece(self):
        assert cost_per_piece(Decimal("45.50"), 11) == Decimal("45.50") / 11

    def test_zero_yield_costs_full_bar(self):
        assert cost_per_piece(Decimal("45.50"), 0) == Decimal("45.50")

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("24", 24.0),
            ("24 in", 24.0),
            ("1 200,5 mm", 1200.5),
            ("24.5 in.", 24.5),
            ("1200 mm (+/- 0.5)", 1200.0),
            ("L = 36\" env.", 36.0),
            (36, 36.0),
            ("Non spécifié", None),
            (None, None),
            (True, None),
        ],
    )
    def test_parse_length(self, raw, expected):
        assert parse_length(raw) == expected


# ── Ranking ──────────────────────────────────────────────────────────


class TestRanking:
    def test_more_pieces_first(self):
        ranked = rank_results([_make_result("A", 10, "1.00"), _make_result("B", 12, "9.00")])
        assert [r.candidate_id for r in ranked] == ["B", "A"]

    def test_cost_breaks_ties(self):
        ranked = rank_results([_make_result("A", 11, "4.14"), _make_result("B", 11, "3.90")])
        assert [r.candidate_id for r in ranked] == ["B", "A"]


# ── Engine ───────────────────────────────────────────────────────────


class TestComputeAll:
    def test_default_only(self):
        profile = ClientProfile(id="p1", name="Profil", materials=[_make_material()])
        outcome = compute_all(_make_extraction(), profile)

        assert len(outcome.ranked) == 1
        result = outcome.selected
        assert result is not None
        assert result.candidate_id == "M1:default"
        assert result.pieces_per_bar == 11
        assert result.estimated_cost == Decimal("45.50") / 11
        assert result.applied_formula is None
        assert "11 pièces" in result.details
        assert outcome.profile_used == "p1"

    def test_one_default_per_material(self):
        profile = ClientProfile(
            id="p1",
            name="Profil",
            materials=[_make_material("M1"), _make_material("M2", type_="Tube alu", cost="30")],
        )
        outcome = compute_all(_make_extraction(), profile)
        assert {r.candidate_id for r in outcome.ranked} == {"M1:default", "M2:default"}
        # Same yield, M2 is cheaper
        assert outcome.selected.candidate_id == "M2:default"

    def test_zero_yield_candidate(self):
        profile = ClientProfile(id="p1", name="Profil", materials=[_make_material(standard_length=10)])
        outcome = compute_all(_make_extraction(), profile)
        assert outcome.selected.pieces_per_bar == 0
        assert outcome.selected.estimated_cost == Decimal("45.50")

    def test_applicable_formula_ranks_first(self):
        formula = Formula(id="f1", name="Sans marge", condition="type_piece == 'tube'", formula="longueur_barre / longueur_piece")
        profile = ClientProfile(id="p1", name="Profil", materials=[_make_material()], formulas=[formula])
        outcome = compute_all(_make_extraction(), profile)

        assert [r.candidate_id for r in outcome.ranked] == ["M1:f1", "M1:default"]
        assert outcome.selected.pieces_per_bar == 12
        assert outcome.selected.applied_formula.id == "f1"

    def test_inapplicable_formula_skipped(self):
        formula = Formula(id="f1", name="Plats", condition="type_piece == 'plat'", formula="1000")
        profile = ClientProfile(id="p1", name="Profil", materials=[_make_material()], formulas=[formula])
        outcome = compute_all(_make_extraction(), profile)
        assert [r.candidate_id for r in outcome.ranked] == ["M1:default"]

    def test_failing_formula_dropped(self):
        formulas = [
            Formula(id="bad", name="Cassée", formula="longueur_barre / inconnu"),
            Formula(id="syntax", name="Syntaxe", formula="longueur_barre /"),
            Formula(id="good", name="Bonne", formula="5"),
        ]
        profile = ClientProfile(id="p1", name="Profil", materials=[_make_material()], formulas=formulas)
        outcome = compute_all(_make_extraction(), profile)
        assert {r.candidate_id for r in outcome.ranked} == {"M1:good", "M1:default"}

    def test_formula_uses_custom_field_aggregate(self):
        data = _make_data()
        data.custom_fields = {
            "Trous": ExtractedField(value=[{"Quantité": "2"}, {"Quantité": 3}], confidence=70),
        }
        formula = Formula(id="f1", name="Trous", condition="sum(trous.quantite) > 4", formula="20")
        profile = ClientProfile(id="p1", name="Profil", materials=[_make_material()], formulas=[formula])
        outcome = compute_all(_make_extraction(data), profile)
        assert outcome.selected.candidate_id == "M1:f1"

    def test_no_materials(self):
        profile = ClientProfile(id="p1", name="Profil")
        outcome = compute_all(_make_extraction(), profile)
        assert outcome.ranked == []
        assert outcome.selected is None

    def test_missing_length(self):
        profile = ClientProfile(id="p1", name="Profil", materials=[_make_material()])
        with pytest.raises(CalculationPreconditionError) as exc_info:
            compute_all(_make_extraction(_make_data(length=None)), profile)
        assert str(exc_info.value) == MISSING_LENGTH_MESSAGE

    def test_length_with_tolerance(self):
        """floor((288 - 12) / (24.5 + 0.25)) = 11."""
        profile = ClientProfile(id="p1", name="Profil", materials=[_make_material()])
        outcome = compute_all(_make_extraction(_make_data(length="24.5 in.")), profile)
        assert piece_length(_make_data(length="24.5 in.")) == 24.5
        assert outcome.selected.pieces_per_bar == 11

    @pytest.mark.parametrize("raw", ["abc", "0", "-5"])
    def test_unusable_length(self, raw):
        with pytest.raises(CalculationPreconditionError):
            piece_length(_make_data(length=raw))


class TestManualSelection:
    def test_select_overrides(self):
        profile = ClientProfile(
            id="p1",
            name="Profil",
            materials=[_make_material("M1"), _make_material("M2", type_="Tube alu", cost="30")],
        )
        outcome = compute_all(_make_extraction(), profile)
        outcome.select("M1:default")
        assert outcome.selected.candidate_id == "M1:default"

    def test_select_unknown(self):
        profile = ClientProfile(id="p1", name="Profil", materials=[_make_material()])
        outcome = compute_all(_make_extraction(), profile)
        with pytest.raises(KeyError):
            outcome.select("nope")


# ── Compatibility ────────────────────────────────────────────────────


class TestCompatibility:
    def test_matches_material_token_and_generic(self):
        materials = [
            _make_material("steel", type_="Tube acier"),
            _make_material("brass", type_="Plat laiton"),
            _make_material("copper", type_="Rond cuivre"),
        ]
        data = _make_data(piece_type="tube", material="laiton")
        compatible = filter_compatible_materials(data, materials)
        assert [m.id for m in compatible] == ["steel", "brass"]

    def test_matches_piece_type(self):
        materials = [_make_material("copper", type_="Rond cuivre"), _make_material("brass", type_="Plat laiton")]
        data = _make_data(piece_type="rond", material="titane")
        assert [m.id for m in filter_compatible_materials(data, materials)] == ["copper"]

    def test_fail_open(self):
        materials = [_make_material("copper", type_="Rond cuivre"), _make_material("brass", type_="Plat laiton")]
        data = _make_data(piece_type="autre", material="titane")
        assert len(filter_compatible_materials(data, materials)) == 2

    def test_type_from_category(self):
        material = Material.model_validate({
            "id": "m",
            "category": "Tube",
            "material": "Acier",
            "standardLength": 240,
            "costPerUnit": "12.5",
        })
        assert material.type == "Tube Acier"


# ── Bindings ─────────────────────────────────────────────────────────


class TestBindings:
    def test_standard_variables(self):
        data = _make_data()
        data.dimensions["Épaisseur"] = DimensionField(value="3,5", unit="mm")
        data.processes = [ExtractedField(value="Perçage"), ExtractedField(value="Pliage")]
        bindings = material_bindings(extraction_bindings(data, 24.0), _make_material())

        assert bindings["longueur_piece"] == 24.0
        assert bindings["longueur"] == 24.0
        assert bindings["epaisseur"] == 3.5
        assert bindings["type_piece"] == "tube"
        assert bindings["materiau"] == "acier"
        assert bindings["procedes"] == ["Perçage", "Pliage"]
        assert bindings["longueur_barre"] == 288.0
        assert bindings["cout_materiau"] == 45.5

    def test_custom_object_properties_normalized(self):
        data = _make_data()
        data.custom_fields = {"Filetage": ExtractedField(value={"Pas Métrique": "1,5", "Type": "M8"})}
        bindings = extraction_bindings(data, 24.0)
        assert bindings["filetage"] == {"pas_metrique": 1.5, "type": "M8"}

    def test_custom_field_list(self):
        data = _make_data()
        data.custom_fields = {"finitions": [ExtractedField(value="Peinture"), ExtractedField(value="12")]}
        bindings = extraction_bindings(data, 24.0)
        assert bindings["finitions"] == ["Peinture", 12.0]
