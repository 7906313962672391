"""
Tests for Deterministic, Predictive and Blended Scoring
"""
from datetime import date

import pytest

from src.distress_leads.exceptions import ValidationError
from src.distress_leads.models.predictive import ActiveSignal, HistoricalScore, PredictiveInput
from src.distress_leads.models.signals import DistressSignal, OwnerFlags, ScoringInput
from src.distress_leads.scoring.blend import blend_heat_score
from src.distress_leads.scoring.deterministic import (
    compute_score,
    recency_decay,
    score_label,
    severity_multiplier,
    stacking_bonus,
)
from src.distress_leads.scoring.predictive import (
    PREDICTIVE_MODEL_VERSION,
    compute_predictive_score,
    estimate_days_until_distress,
    predictive_label,
)
from src.distress_leads.scoring.skip_trace import CORPORATE_SCORE, compute_skip_trace, detect_corporate, infer_age
from src.distress_leads.scoring.weights import DEFAULT_WEIGHTS, FeatureWeights, calibrate_weights, validate_weights

AS_OF = date(2025, 6, 1)


class TestDeterministicComponents:
    """Tests for the deterministic scorer building blocks."""

    @pytest.mark.parametrize("severity,expected", [(10, 1.8), (9, 1.8), (7, 1.5), (3, 1.25), (1, 1.0)])
    def test_severity_tiers(self, severity, expected):
        assert severity_multiplier(severity) == expected

    def test_recency_decay_non_increasing(self):
        values = [recency_decay(d) for d in (0, 10, 45, 180, 365, 1000)]
        assert values == sorted(values, reverse=True)
        assert values[0] == 1.0
        # clamped at a year
        assert recency_decay(365) == recency_decay(1000)

    @pytest.mark.parametrize("types,bonus", [(0, 0), (1, 0), (2, 6), (3, 14), (4, 22), (5, 30), (8, 30)])
    def test_stacking_bonus(self, types, bonus):
        assert stacking_bonus(types) == bonus

    @pytest.mark.parametrize("score,label", [(100, "fire"), (85, "fire"), (84, "hot"), (65, "hot"),
                                             (64, "warm"), (40, "warm"), (39, "cold"), (0, "cold")])
    def test_labels(self, score, label):
        assert score_label(score) == label


class TestComputeScore:
    """Tests for compute_score."""

    def test_single_severe_foreclosure(self):
        output = compute_score(ScoringInput(signals=[DistressSignal(type="pre_foreclosure", severity=9)]))

        assert output.motivation_score == pytest.approx(70.2)
        assert output.deal_score == 30
        assert output.composite_score == 60
        assert output.label == "warm"
        assert output.severity_multiplier == 1.8

    def test_composite_within_bounds(self):
        signals = [DistressSignal(type=t, severity=10) for t in
                   ("probate", "pre_foreclosure", "tax_lien", "bankruptcy", "water_shutoff", "inherited")]
        output = compute_score(ScoringInput(
            signals=signals,
            owner_flags=OwnerFlags(absentee=True, inherited=True, elderly=True, out_of_state=True),
            equity_percent=100,
            comp_ratio=3,
            historical_conversion_rate=1,
        ))
        assert 0 <= output.composite_score <= 100
        assert output.motivation_score == 100
        assert output.deal_score == 100
        assert output.composite_score == 100

    def test_adding_a_signal_never_lowers_the_score(self):
        base = [DistressSignal(type="tax_lien", severity=5, days_since_event=30)]
        previous = compute_score(ScoringInput(signals=base)).composite_score
        for extra in ("vacant", "absentee", "probate", "divorce", "code_violation"):
            base = base + [DistressSignal(type=extra, severity=2, days_since_event=300)]
            current = compute_score(ScoringInput(signals=base)).composite_score
            assert current >= previous
            previous = current

    def test_older_event_never_scores_higher(self):
        def score_at(days):
            signal = DistressSignal(type="probate", severity=6, days_since_event=days)
            return compute_score(ScoringInput(signals=[signal])).composite_score

        scores = [score_at(d) for d in (0, 30, 90, 200, 365)]
        assert scores == sorted(scores, reverse=True)

    def test_unknown_signal_type_uses_default_weight(self):
        output = compute_score(ScoringInput(signals=[DistressSignal(type="mystery", severity=1)]))
        assert output.factors[0].value == 10

    def test_stacking_counts_distinct_types(self):
        same_type = [DistressSignal(type="tax_lien", severity=1)] * 3
        output = compute_score(ScoringInput(signals=same_type))
        assert output.stacking_bonus == 0

    def test_corporate_owner_cannot_go_negative(self):
        output = compute_score(ScoringInput(owner_flags=OwnerFlags(corporate=True)))
        assert output.motivation_score == 0


class TestWeights:
    """Tests for predictive weight validation and calibration."""

    def test_defaults_sum_to_one(self):
        assert DEFAULT_WEIGHTS.total == pytest.approx(1.0)
        assert len(DEFAULT_WEIGHTS.model_dump()) == 9

    def test_schema_summing_to_094_is_rejected(self):
        weights = {**DEFAULT_WEIGHTS.model_dump(), "life_event_probability": 0.12}
        with pytest.raises(ValidationError) as exc_info:
            calibrate_weights(weights)
        assert exc_info.value.context["weight_sum"] == pytest.approx(0.94)

    def test_rejected_schema_is_never_applied(self):
        bad = FeatureWeights(**{**DEFAULT_WEIGHTS.model_dump(), "life_event_probability": 0.12})
        with pytest.raises(ValidationError):
            compute_predictive_score(PredictiveInput(as_of=AS_OF), bad)

    def test_tolerance(self):
        within = FeatureWeights(**{**DEFAULT_WEIGHTS.model_dump(), "owner_age": 0.114})
        assert validate_weights(within) is within

    def test_negative_weight(self):
        with pytest.raises(ValidationError):
            calibrate_weights({"owner_age": -0.01, "market_exposure": 0.08})

    def test_unknown_weight_name(self):
        with pytest.raises(ValidationError) as exc_info:
            calibrate_weights({"moon_phase": 0.1})
        assert exc_info.value.context["unknown"] == ["moon_phase"]

    def test_non_numeric_weight(self):
        with pytest.raises(ValidationError):
            calibrate_weights({"owner_age": "heavy"})

    def test_partial_schema_keeps_defaults(self):
        weights = calibrate_weights({"owner_age": 0.10, "market_exposure": 0.07})
        assert weights.owner_age == 0.10
        assert weights.equity_burn_rate == DEFAULT_WEIGHTS.equity_burn_rate


class TestSkipTrace:
    """Tests for owner demographic inference."""

    def test_corporate_detection(self):
        assert detect_corporate("Sunrise Holdings LLC")
        assert detect_corporate("Smith Family Trust")
        assert not detect_corporate("Mary Johnson")

    def test_corporate_owner_short_circuits(self):
        result = compute_skip_trace("Acme Properties Inc", AS_OF, has_phone=True)
        assert result.is_corporate_entity
        assert result.skip_trace_score == CORPORATE_SCORE
        assert result.contact_probability == 0.6

    def test_known_age_wins(self):
        assert infer_age("James Smith", 71, None, AS_OF) == (71, 95, "known")

    def test_name_based_age(self):
        age, confidence, method = infer_age("James Smith", None, None, AS_OF)
        assert (age, confidence, method) == (75, 50, "name_ssa")

    def test_name_and_ownership_blend(self):
        age, confidence, method = infer_age("James Smith", None, 10, AS_OF)
        assert age == 62
        assert method == "name_ssa"

    def test_ownership_heuristic(self):
        assert infer_age("Zed Quux", None, 20, AS_OF) == (53, 40, "ownership_heuristic")

    def test_unknown_age(self):
        assert infer_age("Zed Quux", None, None, AS_OF) == (None, 0, "unknown")

    def test_probabilities_bounded(self):
        result = compute_skip_trace(
            "Dorothy Miller",
            AS_OF,
            ownership_years=40,
            is_free_clear=True,
            is_absentee=True,
            has_probate_signal=True,
            has_inherited_signal=True,
            delinquent_amount=5000,
        )
        assert 0 <= result.heir_probability <= 0.98
        assert 0.05 <= result.contact_probability <= 0.95
        assert 0 <= result.skip_trace_score <= 100


def _rich_input(**overrides) -> PredictiveInput:
    values = dict(
        property_id=1,
        owner_name="Dorothy Miller",
        ownership_years=30,
        last_sale_date=date(1995, 5, 1),
        last_sale_price=90000,
        estimated_value=180000,
        equity_percent=12,
        previous_equity_percent=30,
        equity_delta_months=12,
        total_loan_balance=150000,
        is_absentee=True,
        is_vacant=True,
        delinquent_amount=6000,
        previous_delinquent_amount=3000,
        active_signals=[
            ActiveSignal(type="probate", severity=9, days_since_event=10),
            ActiveSignal(type="tax_lien", severity=7, days_since_event=20),
            ActiveSignal(type="pre_foreclosure", severity=8, days_since_event=40),
        ],
        historical_scores=[
            HistoricalScore(composite=40, created_at=date(2025, 1, 1)),
            HistoricalScore(composite=70, created_at=date(2025, 5, 1)),
        ],
        foreclosure_stage="Notice of Default",
        default_amount=20000,
        as_of=AS_OF,
    )
    values.update(overrides)
    return PredictiveInput(**values)


class TestPredictiveScore:
    """Tests for the predictive scorer."""

    def test_deterministic_for_same_input(self):
        first = compute_predictive_score(_rich_input())
        second = compute_predictive_score(_rich_input())
        assert first == second

    def test_bounds(self):
        for input in (PredictiveInput(as_of=AS_OF), _rich_input()):
            output = compute_predictive_score(input)
            assert 0 <= output.predictive_score <= 100
            assert 15 <= output.confidence <= 98
            assert output.days_until_distress >= 7
            assert output.model_version == PREDICTIVE_MODEL_VERSION

    def test_nine_weighted_factors(self):
        output = compute_predictive_score(_rich_input())
        assert len(output.factors) == 9
        assert output.factor("skip_trace_intelligence") is not None
        assert output.weights == DEFAULT_WEIGHTS.model_dump()

    def test_rich_distress_scores_above_empty(self):
        empty = compute_predictive_score(PredictiveInput(as_of=AS_OF))
        rich = compute_predictive_score(_rich_input())
        assert rich.predictive_score > empty.predictive_score
        assert rich.confidence > empty.confidence

    def test_equity_burn_from_history(self):
        output = compute_predictive_score(_rich_input())
        # 18 points lost over 12 months
        assert output.features.equity_burn_rate == pytest.approx(0.18)

    def test_absentee_duration_follows_as_of(self):
        since = date(2024, 6, 1)
        early = compute_predictive_score(_rich_input(absentee_since_date=since, as_of=date(2024, 12, 1)))
        late = compute_predictive_score(_rich_input(absentee_since_date=since, as_of=date(2025, 6, 1)))
        assert early.features.absentee_duration_days == 183
        assert late.features.absentee_duration_days == 365

    def test_corporate_owner_has_no_age(self):
        output = compute_predictive_score(PredictiveInput(owner_name="Acme LLC", is_corporate_owner=True,
                                                          ownership_years=12, as_of=AS_OF))
        assert output.features.owner_age_inference is None
        assert output.features.skip_trace_score == CORPORATE_SCORE

    def test_custom_weights_snapshot(self):
        weights = calibrate_weights({"owner_age": 0.21, "equity_burn_rate": 0.06})
        output = compute_predictive_score(_rich_input(), weights)
        assert output.weights["owner_age"] == 0.21

    def test_auction_stage_caps_days(self):
        input = _rich_input(foreclosure_stage="Auction scheduled", active_signals=[])
        assert estimate_days_until_distress(0, input) == 14

    def test_recent_signals_shorten_window(self):
        input = _rich_input(foreclosure_stage=None, active_signals=[
            ActiveSignal(type="probate", days_since_event=5),
            ActiveSignal(type="divorce", days_since_event=10),
        ])
        assert estimate_days_until_distress(0, input) == 219

    @pytest.mark.parametrize("score,label", [(80, "imminent"), (55, "likely"), (30, "possible"), (29, "unlikely")])
    def test_labels(self, score, label):
        assert predictive_label(score) == label


class TestBlend:
    """Tests for the deterministic/predictive blend."""

    def test_default_seventy_thirty(self):
        assert blend_heat_score(80, 40) == 68

    def test_stays_between_inputs(self):
        for d, p in ((0, 100), (100, 0), (61, 60), (33, 99), (50, 50)):
            blended = blend_heat_score(d, p)
            assert min(d, p) <= blended <= max(d, p)

    def test_weight_extremes(self):
        assert blend_heat_score(90, 10, deterministic_weight=1) == 90
        assert blend_heat_score(90, 10, deterministic_weight=0) == 10

    @pytest.mark.parametrize("weight", [-0.1, 1.1])
    def test_weight_out_of_range(self, weight):
        with pytest.raises(ValidationError):
            blend_heat_score(50, 50, deterministic_weight=weight)
