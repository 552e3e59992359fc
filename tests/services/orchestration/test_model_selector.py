from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from src.core.exceptions import NoAvailableModelsError
from src.models.assistant import Capability, ModelDescriptor, ModelPricing
from src.services.orchestration.model_selector import ModelSelector

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


def _model(
    model_id: str,
    *,
    context: int = 8000,
    prompt: str | None = "0",
    capabilities: frozenset[Capability] = frozenset(),
    privacy: str | None = None,
    expires_in_days: float | None = None,
) -> ModelDescriptor:
    return ModelDescriptor(
        id=model_id,
        name=model_id,
        context_window=context,
        capabilities=capabilities,
        pricing=ModelPricing(prompt=None if prompt is None else Decimal(prompt)),
        privacy_policy=privacy,
        expiration_date=None if expires_in_days is None else NOW + timedelta(days=expires_in_days),
    )


@pytest.fixture
def selector() -> ModelSelector:
    return ModelSelector(clock=lambda: NOW)


class TestFilterFree:
    def test_keeps_only_zero_prompt_price_in_order(self, selector: ModelSelector) -> None:
        catalog = [
            _model("free-a"),
            _model("paid", prompt="0.000001"),
            _model("unknown-price", prompt=None),
            _model("free-b", prompt="0.0"),
        ]
        assert [m.id for m in selector.filter_free(catalog)] == ["free-a", "free-b"]

    def test_excludes_expired_and_expiring_now(self, selector: ModelSelector) -> None:
        catalog = [
            _model("expired", expires_in_days=-1),
            _model("expires-now", expires_in_days=0),
            _model("later", expires_in_days=0.5),
            _model("forever"),
        ]
        assert [m.id for m in selector.filter_free(catalog)] == ["later", "forever"]

    def test_empty_or_missing_catalog(self, selector: ModelSelector) -> None:
        assert selector.filter_free([]) == []
        assert selector.filter_free(None) == []


class TestScore:
    @pytest.mark.parametrize(
        ("context", "expected"),
        [(128000, 40), (100000, 40), (64000, 30), (32000, 20), (16000, 10), (8000, 5), (0, 5)],
    )
    def test_context_bands(self, selector: ModelSelector, context: int, expected: int) -> None:
        # 无过期时间固定 +10
        assert selector.score(_model("m", context=context)) == expected + 10

    def test_capability_bonuses(self, selector: ModelSelector) -> None:
        caps = frozenset(
            {
                Capability.TEXT,
                Capability.MULTIMODAL,
                Capability.FUNCTION_CALLING,
                Capability.STRUCTURED_OUTPUT,
            }
        )
        assert selector.score(_model("m", capabilities=caps)) == 5 + 30 + 10

    @pytest.mark.parametrize(
        ("policy", "bonus"),
        [
            ("no-log", 20),
            ("Anonymous usage only", 20),
            ("prompts retained 30 days", 10),
            ("may be used for training", 0),
            (None, 0),
        ],
    )
    def test_privacy_bonus(self, selector: ModelSelector, policy: str | None, bonus: int) -> None:
        assert selector.score(_model("m", privacy=policy)) == 5 + 10 + bonus

    @pytest.mark.parametrize(
        ("days", "bonus"),
        [(None, 10), (120, 8), (60, 5), (10, 2), (3, 0)],
    )
    def test_freshness_bonus(self, selector: ModelSelector, days: float | None, bonus: int) -> None:
        assert selector.score(_model("m", expires_in_days=days)) == 5 + bonus

    def test_maximum_is_100(self, selector: ModelSelector) -> None:
        best = _model(
            "best",
            context=200000,
            capabilities=frozenset(
                {Capability.MULTIMODAL, Capability.FUNCTION_CALLING, Capability.STRUCTURED_OUTPUT}
            ),
            privacy="no-log",
        )
        assert selector.score(best) == 100


class TestRank:
    def test_descending_and_stable_on_ties(self, selector: ModelSelector) -> None:
        catalog = [
            _model("small-1"),
            _model("big", context=128000),
            _model("small-2"),
            _model("mid", context=50000),
        ]
        ranked = selector.rank(catalog)
        assert [s.id for s in ranked] == ["big", "mid", "small-1", "small-2"]
        assert [s.score for s in ranked] == [50, 40, 15, 15]

    def test_deterministic_for_fixed_snapshot(self, selector: ModelSelector) -> None:
        catalog = [
            _model(f"m{i}", context=c, expires_in_days=d)
            for i, (c, d) in enumerate([(8000, 100), (64000, None), (8000, 40), (128000, 5)])
        ]
        first = [(s.id, s.score) for s in selector.rank(catalog)]
        second = [(s.id, s.score) for s in selector.rank(catalog)]
        assert first == second

    def test_empty(self, selector: ModelSelector) -> None:
        assert selector.rank([]) == []


class TestCascadeOrder:
    def test_prefers_larger_context_window(self, selector: ModelSelector) -> None:
        catalog = [_model("a", context=8000), _model("b", context=128000)]
        assert [s.id for s in selector.cascade_order(catalog)] == ["b", "a"]

    def test_limits_candidates(self, selector: ModelSelector) -> None:
        catalog = [_model(f"m{i}") for i in range(8)]
        assert len(selector.cascade_order(catalog)) == 5
        assert [s.id for s in selector.cascade_order(catalog, limit=2)] == ["m0", "m1"]

    def test_no_free_models_is_hard_stop(self, selector: ModelSelector) -> None:
        with pytest.raises(NoAvailableModelsError):
            selector.cascade_order([_model("paid", prompt="0.1"), _model("gone", expires_in_days=-3)])

    def test_select_best(self, selector: ModelSelector) -> None:
        best = selector.select_best([_model("a"), _model("b", context=64000)])
        assert best.id == "b"
        with pytest.raises(NoAvailableModelsError):
            selector.select_best([])
