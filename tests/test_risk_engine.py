"""
Tests del RiskEngine: flujo completo con oráculos de prueba.

Escenarios cubiertos:
  - Oráculo OK          → se usa su veredicto
  - Oráculo caído       → veredicto de fallback, igual se persiste
  - Respuesta inválida  → fallback (nunca se repara)
  - Concurrencia        → orden por usuario, paralelismo entre usuarios
"""

import asyncio
import json
from datetime import datetime, timezone

import pytest

from aegis.domain.schemas import AlertLevel, RISK_FACTOR_NAMES, RiskLevel, VerdictStatus
from aegis.services.risk_engine import RiskEngine
from tests.helpers import (
    AFTERNOON,
    NIGHT,
    FailingOracle,
    RendezvousOracle,
    ScriptedOracle,
    SlowOracle,
    StubOracle,
    fixed_clock,
    make_transaction,
    oracle_reply,
)


def _engine(oracle, moment=AFTERNOON, **kwargs) -> RiskEngine:
    return RiskEngine(oracle, clock=fixed_clock(moment), **kwargs)


class TestOracleAccepted:

    @pytest.mark.asyncio
    async def test_uses_oracle_verdict(self):
        engine = _engine(StubOracle(oracle_reply()))

        analysis = await engine.analyze(make_transaction())

        assert analysis.risk_score == 42
        assert analysis.status == VerdictStatus.FLAGGED
        assert analysis.alert_level == AlertLevel.MEDIUM
        assert analysis.fallback is False
        assert set(analysis.risk_factors) == set(RISK_FACTOR_NAMES)
        assert analysis.transaction_id.startswith("TXN-")

    @pytest.mark.asyncio
    async def test_partial_factors_are_completed(self):
        reply  = oracle_reply(riskFactors={"MerchantRisk": 55})
        engine = _engine(StubOracle(reply))

        analysis = await engine.analyze(make_transaction())

        assert analysis.risk_factors["MerchantRisk"] == 55
        assert analysis.risk_factors["VelocityCheck"] == 0
        assert len(analysis.risk_factors) == 7

    @pytest.mark.asyncio
    async def test_fenced_reply_is_accepted(self):
        text   = "```json\n" + json.dumps(oracle_reply(riskScore=12, status="Approved")) + "\n```"
        engine = _engine(StubOracle(text))

        analysis = await engine.analyze(make_transaction())
        assert analysis.risk_score == 12
        assert analysis.fallback is False


class TestFallback:

    @pytest.mark.asyncio
    async def test_unavailable_oracle_mid_amount_afternoon(self):
        oracle = FailingOracle()
        engine = _engine(oracle)

        analysis = await engine.analyze(make_transaction(amount=2500, merchant="Best Buy"))

        assert oracle.calls == 1
        assert analysis.fallback is True
        assert analysis.risk_score == 35
        assert analysis.status == VerdictStatus.APPROVED
        assert analysis.confidence == 75

    @pytest.mark.asyncio
    async def test_casino_at_night_is_denied_and_recorded(self):
        engine = _engine(FailingOracle(), moment=NIGHT)
        tx     = make_transaction(amount=6000, merchant="Casino Royale", location="Las Vegas")

        analysis = await engine.analyze(tx)

        assert analysis.risk_score == 100
        assert analysis.status == VerdictStatus.DENIED
        assert analysis.alert_level == AlertLevel.HIGH
        assert engine.patterns.keys() == {"Casino Royale-Las Vegas-6000"}

        profile = engine.profile_for("user_001")
        assert profile.recent_suspicious_activity is True
        assert profile.risk_level == RiskLevel.HIGH

    @pytest.mark.asyncio
    async def test_out_of_range_reply_falls_back(self):
        engine = _engine(StubOracle(oracle_reply(riskScore=150)))

        analysis = await engine.analyze(make_transaction())

        assert analysis.fallback is True
        assert analysis.risk_score == 20

    @pytest.mark.asyncio
    async def test_oracle_cannot_claim_fallback(self):
        engine = _engine(StubOracle(oracle_reply(fallback=True)))
        analysis = await engine.analyze(make_transaction())
        assert analysis.fallback is False

    @pytest.mark.asyncio
    async def test_unexpected_error_still_returns_verdict(self):
        engine = _engine(FailingOracle(RuntimeError("boom")))
        analysis = await engine.analyze(make_transaction())
        assert analysis.fallback is True
        assert len(engine.ledger) == 1

    @pytest.mark.asyncio
    async def test_slow_oracle_times_out(self):
        engine = _engine(SlowOracle(delay=0.5), oracle_timeout=0.05)
        analysis = await engine.analyze(make_transaction())
        assert analysis.fallback is True


class TestStateEvolution:

    @pytest.mark.asyncio
    async def test_history_excludes_current_transaction(self):
        oracle = StubOracle(oracle_reply())
        engine = _engine(oracle)

        for _ in range(3):
            await engine.analyze(make_transaction())

        counts = [r.history_summary.transaction_count for r in oracle.requests]
        assert counts == [0, 1, 2]

    @pytest.mark.asyncio
    async def test_known_patterns_reach_oracle(self):
        oracle = ScriptedOracle([95, 10])
        engine = _engine(oracle)
        tx     = make_transaction(amount=6000, merchant="Casino Royale", location="Las Vegas")

        await engine.analyze(tx)
        await engine.analyze(make_transaction(user_id="user_002"))

        assert oracle.requests[0].known_pattern_keys == []
        assert oracle.requests[1].known_pattern_keys == ["Casino Royale-Las Vegas-6000"]

    @pytest.mark.asyncio
    async def test_profile_reaches_high_after_suspicious_ratio(self):
        engine = _engine(ScriptedOracle([90, 85, 75, 95, 10, 20, 30, 15, 5, 25]))

        for _ in range(10):
            await engine.analyze(make_transaction())

        profile = engine.profile_for("user_001")
        assert profile.total_transactions == 10
        assert profile.suspicious_transactions == 4
        assert profile.risk_level == RiskLevel.HIGH
        assert engine.stats().high_risk_users == 1

    @pytest.mark.asyncio
    async def test_ledger_capacity_and_stats(self):
        engine = _engine(FailingOracle(), ledger_capacity=3)

        for i in range(5):
            await engine.analyze(make_transaction(user_id=f"user_{i:03d}"))

        stats = engine.stats()
        assert len(engine.ledger) == 3
        assert stats.total_transactions == 3
        assert stats.approved_transactions == 3
        assert stats.unique_users == 3
        assert [r.transaction.user_id for r in engine.recent(2)] == ["user_004", "user_003"]

    @pytest.mark.asyncio
    async def test_scores_always_in_range(self):
        engine = _engine(FailingOracle(), moment=NIGHT)
        for amount, merchant in [(1, "Coffee"), (1500, "Crypto Exchange"), (9999, "Betting Hub")]:
            analysis = await engine.analyze(make_transaction(amount=amount, merchant=merchant))
            assert 0 <= analysis.risk_score <= 100
            assert 0 <= analysis.confidence <= 100
            assert all(0 <= v <= 100 for v in analysis.risk_factors.values())
            assert analysis.processing_time >= 0


class TestClock:

    @pytest.mark.asyncio
    async def test_naive_system_clock_is_accepted(self):
        """
        WHEN el motor usa datetime.now (sin zona horaria)
        THEN la segunda tx del usuario evalúa la ventana de velocidad sin fallar
        """
        oracle = StubOracle(oracle_reply())
        engine = RiskEngine(oracle, clock=datetime.now)

        await engine.analyze(make_transaction(timestamp=datetime.now(timezone.utc)))
        analysis = await engine.analyze(make_transaction(timestamp=datetime.now(timezone.utc)))

        assert analysis.fallback is False
        assert analysis.timestamp.tzinfo is not None
        assert oracle.requests[1].history_summary.transaction_count == 1
        assert engine.profile_for("user_001").total_transactions == 2

    @pytest.mark.asyncio
    async def test_naive_fixed_clock_keeps_wall_hour(self):
        engine = _engine(FailingOracle(), moment=datetime(2024, 5, 14, 2, 0))

        first  = await engine.analyze(make_transaction())
        second = await engine.analyze(make_transaction())

        # 02:00 es fuera de horario: base 20 + 20
        assert first.risk_score == 40
        assert second.risk_score == 40
        assert second.timestamp.hour == 2

    def test_ledger_capacity_zero_is_rejected(self):
        with pytest.raises(ValueError):
            RiskEngine(FailingOracle(), ledger_capacity=0)


class TestConcurrency:

    @pytest.mark.asyncio
    async def test_same_user_is_processed_in_arrival_order(self):
        oracle = SlowOracle(delay=0.01)
        engine = _engine(oracle)

        await asyncio.gather(*(engine.analyze(make_transaction()) for _ in range(5)))

        counts = [r.history_summary.transaction_count for r in oracle.requests]
        assert counts == [0, 1, 2, 3, 4]
        assert engine.profile_for("user_001").total_transactions == 5

    @pytest.mark.asyncio
    async def test_different_users_run_in_parallel(self):
        oracle = RendezvousOracle(parties=3)
        engine = _engine(oracle, oracle_timeout=1.0)

        results = await asyncio.gather(
            *(engine.analyze(make_transaction(user_id=f"user_{i}")) for i in range(3))
        )

        assert all(r.fallback is False for r in results)
        assert engine.stats().unique_users == 3
