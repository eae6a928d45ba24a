"""
多周期编排、扫描与 HTTP 接口测试

覆盖范围：
  - 周期一致性与整体动量计算
  - 多周期编排服务（缓存复用、部分失败、并发上限、超时）
  - 多标的扫描（排序、过滤、置信度）
  - FastAPI 路由（通过 TestClient + dependency_overrides，不访问外部数据源）
"""

import asyncio
import os
import sys

import pytest
from fastapi.testclient import TestClient

# 确保项目根目录在 sys.path
ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from momentum_service.config import MultiTimeframeConfig, ScannerConfig  # noqa: E402
from momentum_service.layers.acquisition import SyntheticDataProvider  # noqa: E402
from momentum_service.models.errors import (  # noqa: E402
    InsufficientDataError,
    InvalidTimeframesError,
)
from momentum_service.models.momentum import (  # noqa: E402
    AnalysisRequest,
    Candle,
    MomentumDirection,
    MomentumResult,
    MomentumStrength,
    Timeframe,
)
from momentum_service.services.multi_timeframe_service import (  # noqa: E402
    MultiTimeframeService,
    calculate_alignment,
    calculate_overall_momentum,
    get_multi_timeframe_service,
)
from momentum_service.services.scanner_service import (  # noqa: E402
    ScannerService,
    ScanRequest,
    SignalFilter,
    calculate_confidence,
    get_scanner_service,
)


# ─────────────────────────────────────────────────────────
# 辅助函数 / 测试数据源
# ─────────────────────────────────────────────────────────

UP = [100.0 + i for i in range(60)]
DOWN = [200.0 - i for i in range(60)]
FLAT = [100.0] * 60


def _candles(closes) -> list:
    return [
        Candle(timestamp=i * 60_000, open=c, high=c, low=c, close=c, volume=1000.0)
        for i, c in enumerate(closes)
    ]


def _result(timeframe: Timeframe, direction: MomentumDirection, score: float) -> MomentumResult:
    return MomentumResult(
        symbol="X",
        timeframe=timeframe,
        timestamp=0,
        direction=direction,
        strength=MomentumStrength.MODERATE,
        score=score,
    )


class _FakeProvider:
    """
    记录调用次数与并发数的测试数据源

    closes_by_symbol: 标的 → 收盘价序列（默认上涨趋势）
    fail: 拉取时抛出异常的周期或标的
    """

    def __init__(self, closes_by_symbol=None, fail=(), delay: float = 0.0, slow=()):
        self.closes_by_symbol = closes_by_symbol or {}
        self.fail = set(fail)
        self.delay = delay
        self.slow = set(slow)
        self.calls = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def get_candles(self, symbol, timeframe, limit):
        self.calls.append((symbol, timeframe))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(1.0 if timeframe in self.slow else self.delay)
            if timeframe in self.fail or symbol in self.fail:
                raise RuntimeError(f"upstream error: {symbol} {timeframe.value}")
            return _candles(self.closes_by_symbol.get(symbol, UP))
        finally:
            self.in_flight -= 1


# ─────────────────────────────────────────────────────────
# 1. 周期一致性测试
# ─────────────────────────────────────────────────────────

class TestAlignment:
    def test_weighted_dominant_direction(self):
        results = {
            Timeframe.M5: _result(Timeframe.M5, MomentumDirection.BEARISH, -40),
            Timeframe.H1: _result(Timeframe.H1, MomentumDirection.BULLISH, 40),
            Timeframe.H4: _result(Timeframe.H4, MomentumDirection.BULLISH, 50),
        }
        alignment = calculate_alignment(results, 0.6)
        assert alignment.dominant_direction is MomentumDirection.BULLISH
        assert alignment.aligned is True
        assert alignment.aligned_timeframes == [Timeframe.H1, Timeframe.H4]
        assert alignment.divergent_timeframes == [Timeframe.M5]
        assert alignment.alignment_score == pytest.approx(200 / 3)
        assert alignment.weighted_score == pytest.approx(13 / 15 * 100)

    def test_weight_tie_is_neutral(self):
        results = {
            Timeframe.M1: _result(Timeframe.M1, MomentumDirection.BULLISH, 30),
            Timeframe.M5: _result(Timeframe.M5, MomentumDirection.BULLISH, 30),
            Timeframe.M15: _result(Timeframe.M15, MomentumDirection.BEARISH, -30),
        }
        alignment = calculate_alignment(results, 0.6)
        assert alignment.dominant_direction is MomentumDirection.NEUTRAL
        assert alignment.aligned is False
        assert alignment.aligned_timeframes == []
        assert len(alignment.divergent_timeframes) == 3

    def test_neutral_results_are_not_divergent(self):
        results = {
            Timeframe.H1: _result(Timeframe.H1, MomentumDirection.BULLISH, 40),
            Timeframe.D1: _result(Timeframe.D1, MomentumDirection.NEUTRAL, 5),
        }
        alignment = calculate_alignment(results, 0.6)
        assert alignment.dominant_direction is MomentumDirection.BULLISH
        assert alignment.divergent_timeframes == []
        assert alignment.alignment_score == pytest.approx(50.0)

    def test_agreeing_timeframe_never_lowers_alignment(self):
        results = {
            Timeframe.M5: _result(Timeframe.M5, MomentumDirection.BEARISH, -40),
            Timeframe.H1: _result(Timeframe.H1, MomentumDirection.BULLISH, 40),
        }
        before = calculate_alignment(results, 0.6)
        results[Timeframe.D1] = _result(Timeframe.D1, MomentumDirection.BULLISH, 40)
        after = calculate_alignment(results, 0.6)
        assert after.dominant_direction is before.dominant_direction
        assert after.alignment_score >= before.alignment_score
        assert after.weighted_score >= before.weighted_score

    @pytest.mark.parametrize("direction", list(MomentumDirection))
    def test_unanimous_direction_is_fully_aligned(self, direction):
        results = {
            tf: _result(tf, direction, 0)
            for tf in (Timeframe.M5, Timeframe.H1, Timeframe.D1)
        }
        for threshold in (0.1, 0.6, 1.0):
            alignment = calculate_alignment(results, threshold)
            assert alignment.alignment_score == 100
            assert alignment.weighted_score == 100
            assert alignment.aligned is True
            assert alignment.dominant_direction is direction

    def test_empty_results(self):
        alignment = calculate_alignment({}, 0.6)
        direction, strength, confluence = calculate_overall_momentum({}, alignment)
        assert alignment.alignment_score == 0
        assert alignment.aligned is False
        assert direction is MomentumDirection.NEUTRAL
        assert strength is MomentumStrength.WEAK
        assert confluence == 0

    def test_overall_strong_when_aligned(self):
        results = {
            tf: _result(tf, MomentumDirection.BULLISH, 80)
            for tf in (Timeframe.H1, Timeframe.H4, Timeframe.D1)
        }
        alignment = calculate_alignment(results, 0.6)
        direction, strength, confluence = calculate_overall_momentum(results, alignment)
        assert direction is MomentumDirection.BULLISH
        assert strength is MomentumStrength.STRONG
        assert 0 < confluence <= 100

    def test_overall_weak_when_mixed(self):
        results = {
            Timeframe.M1: _result(Timeframe.M1, MomentumDirection.BULLISH, 20),
            Timeframe.M5: _result(Timeframe.M5, MomentumDirection.BULLISH, 20),
            Timeframe.M15: _result(Timeframe.M15, MomentumDirection.BEARISH, -20),
        }
        alignment = calculate_alignment(results, 0.6)
        _, strength, _ = calculate_overall_momentum(results, alignment)
        assert strength is MomentumStrength.WEAK


# ─────────────────────────────────────────────────────────
# 2. 多周期编排服务测试
# ─────────────────────────────────────────────────────────

class TestMultiTimeframeService:
    @pytest.mark.asyncio
    async def test_unknown_timeframes_are_ignored(self):
        provider = _FakeProvider()
        svc = MultiTimeframeService(provider)
        result = await svc.analyze(
            AnalysisRequest(symbol="BTC", timeframes=["1h", "bogus", "4h"])
        )
        assert list(result.results) == [Timeframe.H1, Timeframe.H4]
        assert len(provider.calls) == 2

    @pytest.mark.asyncio
    async def test_all_unknown_raises(self):
        svc = MultiTimeframeService(_FakeProvider())
        with pytest.raises(InvalidTimeframesError):
            await svc.analyze(AnalysisRequest(symbol="BTC", timeframes=["bogus"]))
        with pytest.raises(InvalidTimeframesError):
            await svc.analyze(AnalysisRequest(symbol="BTC", timeframes=[]))

    @pytest.mark.asyncio
    async def test_partial_failure_is_isolated(self):
        provider = _FakeProvider(fail={Timeframe.H4})
        svc = MultiTimeframeService(provider)
        result = await svc.analyze(
            AnalysisRequest(symbol="BTC", timeframes=["1h", "4h", "1d"])
        )
        assert set(result.results) == {Timeframe.H1, Timeframe.D1}
        assert Timeframe.H4 not in result.alignment.aligned_timeframes
        assert not svc.cache.has("BTC", Timeframe.H4)

    @pytest.mark.asyncio
    async def test_all_failed_returns_empty_result(self):
        svc = MultiTimeframeService(_FakeProvider(fail={"BTC"}))
        result = await svc.analyze(AnalysisRequest(symbol="BTC", timeframes=["1h", "1d"]))
        assert result.results == {}
        assert result.overall_direction is MomentumDirection.NEUTRAL
        assert result.overall_strength is MomentumStrength.WEAK
        assert result.confluence_score == 0

    @pytest.mark.asyncio
    async def test_cached_results_are_reused(self):
        provider = _FakeProvider()
        svc = MultiTimeframeService(provider)
        request = AnalysisRequest(symbol="BTC", timeframes=["1h", "4h", "1d"])
        first = await svc.analyze(request)
        second = await svc.analyze(request)
        assert len(provider.calls) == 3
        assert second.results[Timeframe.H1] == first.results[Timeframe.H1]
        assert svc.get_cache_stats().hits == 3

    @pytest.mark.asyncio
    async def test_only_missing_timeframes_are_fetched(self):
        provider = _FakeProvider()
        svc = MultiTimeframeService(provider)
        await svc.analyze(AnalysisRequest(symbol="BTC", timeframes=["1h"]))
        await svc.analyze(AnalysisRequest(symbol="BTC", timeframes=["1h", "1d"]))
        assert provider.calls == [("BTC", Timeframe.H1), ("BTC", Timeframe.D1)]

    @pytest.mark.asyncio
    async def test_results_follow_request_order(self):
        svc = MultiTimeframeService(_FakeProvider())
        result = await svc.analyze(AnalysisRequest(symbol="BTC", timeframes=["1d", "1m", "1h"]))
        assert list(result.results) == [Timeframe.D1, Timeframe.M1, Timeframe.H1]

    @pytest.mark.asyncio
    async def test_all_timeframes_fetched_once(self):
        provider = _FakeProvider(delay=0.01)
        svc = MultiTimeframeService(provider, MultiTimeframeConfig(max_concurrency=6))
        result = await svc.analyze_all_timeframes("BTC")
        assert len(result.results) == 6
        assert len(provider.calls) == 6
        assert provider.max_in_flight <= 6

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self):
        provider = _FakeProvider(delay=0.01)
        svc = MultiTimeframeService(provider, MultiTimeframeConfig(max_concurrency=2))
        result = await svc.analyze_all_timeframes("BTC")
        assert len(result.results) == 6
        assert provider.max_in_flight == 2

    @pytest.mark.asyncio
    async def test_fetch_timeout_is_soft_failure(self):
        provider = _FakeProvider(slow={Timeframe.D1})
        svc = MultiTimeframeService(provider, MultiTimeframeConfig(fetch_timeout_s=0.05))
        result = await svc.analyze(AnalysisRequest(symbol="BTC", timeframes=["1h", "1d"]))
        assert list(result.results) == [Timeframe.H1]

    @pytest.mark.asyncio
    async def test_uptrend_everywhere_is_strong_bullish(self):
        svc = MultiTimeframeService(_FakeProvider())
        result = await svc.analyze(AnalysisRequest(symbol="BTC", timeframes=["1h", "4h", "1d"]))
        assert result.alignment.aligned is True
        assert result.overall_direction is MomentumDirection.BULLISH
        assert result.overall_strength is MomentumStrength.STRONG

    @pytest.mark.asyncio
    async def test_analyze_single_propagates_errors(self):
        svc = MultiTimeframeService(_FakeProvider({"SHORT": UP[:10]}))
        with pytest.raises(InsufficientDataError):
            await svc.analyze_single("SHORT", Timeframe.H1)

    @pytest.mark.asyncio
    async def test_analyze_single_uses_cache(self):
        provider = _FakeProvider()
        svc = MultiTimeframeService(provider)
        first = await svc.analyze_single("BTC", Timeframe.H1)
        second = await svc.analyze_single("BTC", Timeframe.H1)
        assert first == second
        assert len(provider.calls) == 1

    @pytest.mark.asyncio
    async def test_cache_management(self):
        svc = MultiTimeframeService(_FakeProvider())
        await svc.analyze(AnalysisRequest(symbol="BTC", timeframes=["1h", "1d"]))
        await svc.analyze(AnalysisRequest(symbol="ETH", timeframes=["1h"]))
        assert svc.get_cache_stats().size == 3
        assert svc.invalidate_cache("BTC", Timeframe.H1) == 1
        assert svc.invalidate_cache("BTC") == 1
        assert svc.cleanup_cache() == 0
        svc.clear_cache()
        assert svc.get_cache_stats().size == 0


# ─────────────────────────────────────────────────────────
# 3. 多标的扫描测试
# ─────────────────────────────────────────────────────────

class TestScanner:
    def _provider(self, **kwargs):
        return _FakeProvider({"UP": UP, "DOWN": DOWN, "FLAT": FLAT}, **kwargs)

    @pytest.mark.asyncio
    async def test_ranked_by_absolute_score(self):
        svc = ScannerService(self._provider())
        resp = await svc.scan(ScanRequest(symbols=["FLAT", "UP", "DOWN"]))
        scores = [abs(r.momentum_score) for r in resp.results]
        assert scores == sorted(scores, reverse=True)
        assert resp.results[-1].symbol == "FLAT"
        assert resp.total_scanned == 3
        assert resp.timeframe is Timeframe.H1

    @pytest.mark.asyncio
    async def test_signal_filter(self):
        svc = ScannerService(self._provider())
        resp = await svc.scan(
            ScanRequest(symbols=["FLAT", "UP", "DOWN"], signal_filter=SignalFilter.BEARISH)
        )
        assert [r.symbol for r in resp.results] == ["DOWN"]

    @pytest.mark.asyncio
    async def test_limit_and_min_confidence(self):
        svc = ScannerService(self._provider())
        resp = await svc.scan(ScanRequest(symbols=["FLAT", "UP", "DOWN"], limit=1))
        assert resp.results_returned == 1
        resp = await svc.scan(ScanRequest(symbols=["FLAT", "UP", "DOWN"], min_confidence=60))
        assert "FLAT" not in [r.symbol for r in resp.results]

    @pytest.mark.asyncio
    async def test_failed_symbols_are_skipped(self):
        svc = ScannerService(self._provider(fail={"DOWN"}))
        resp = await svc.scan(ScanRequest(symbols=["UP", "DOWN"]))
        assert [r.symbol for r in resp.results] == ["UP"]
        assert resp.total_scanned == 2

    @pytest.mark.asyncio
    async def test_concurrent_scans_bounded(self):
        provider = _FakeProvider(delay=0.01)
        svc = ScannerService(provider, config=ScannerConfig(concurrent_scans=2))
        await svc.scan(ScanRequest(symbols=[f"S{i}" for i in range(6)]))
        assert provider.max_in_flight == 2

    @pytest.mark.asyncio
    async def test_too_many_symbols(self):
        svc = ScannerService(self._provider(), config=ScannerConfig(max_symbols_per_scan=2))
        with pytest.raises(ValueError):
            await svc.scan(ScanRequest(symbols=["A", "B", "C"]))

    @pytest.mark.asyncio
    async def test_invalid_timeframe(self):
        svc = ScannerService(self._provider())
        with pytest.raises(InvalidTimeframesError):
            await svc.scan(ScanRequest(symbols=["UP"], timeframe="2h"))

    def test_confidence(self):
        strong = MomentumResult(
            symbol="X",
            timeframe=Timeframe.H1,
            timestamp=0,
            direction=MomentumDirection.BULLISH,
            strength=MomentumStrength.STRONG,
            score=70,
            rsi=60,
            macd_signal=0.5,
            volume_ratio=1.5,
        )
        assert calculate_confidence(strong) == 100

        weak = strong.model_copy(update={
            "direction": MomentumDirection.NEUTRAL,
            "strength": MomentumStrength.WEAK,
            "score": 5,
        })
        assert calculate_confidence(weak) == 50

        moderate = strong.model_copy(update={
            "strength": MomentumStrength.MODERATE,
            "score": 40,
            "rsi": 80,
            "macd_signal": -0.1,
            "volume_ratio": 1.0,
        })
        assert calculate_confidence(moderate) == 65


# ─────────────────────────────────────────────────────────
# 4. HTTP 路由测试（TestClient，不访问外部数据源）
# ─────────────────────────────────────────────────────────

@pytest.fixture(scope="module")
def client():
    from momentum_service.main import app
    with TestClient(app) as c:
        yield c


@pytest.fixture
def services():
    """以确定性的合成数据源替换路由依赖"""
    from momentum_service.main import app
    provider = SyntheticDataProvider(seed=7)
    svc = MultiTimeframeService(provider)
    scanner = ScannerService(provider, config=ScannerConfig(max_symbols_per_scan=3))
    app.dependency_overrides[get_multi_timeframe_service] = lambda: svc
    app.dependency_overrides[get_scanner_service] = lambda: scanner
    yield svc, scanner
    app.dependency_overrides.clear()


class TestHealthRoutes:
    def test_health_endpoint(self, client, services):
        resp = client.get("/health")
        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["data"]["status"] == "ok"
        assert body["data"]["cache"]["size"] == 0

    def test_healthz_endpoint(self, client):
        resp = client.get("/healthz")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"

    def test_readyz_endpoint(self, client):
        resp = client.get("/readyz")
        assert resp.status_code == 200
        assert resp.json()["ready"] is True

    def test_root_endpoint(self, client):
        resp = client.get("/")
        assert resp.status_code == 200
        body = resp.json()
        assert "version" in body
        assert "docs" in body
        assert "X-Process-Time" in resp.headers


class TestMomentumRoutes:
    def test_analyze(self, client, services):
        resp = client.post(
            "/api/momentum/analyze",
            json={"symbol": "BTCUSDT", "timeframes": ["1h", "bogus", "4h"]},
        )
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["symbol"] == "BTCUSDT"
        assert list(data["results"]) == ["1h", "4h"]
        assert -100 <= data["results"]["1h"]["score"] <= 100
        assert data["overall_direction"] in ("bullish", "bearish", "neutral")

    def test_analyze_invalid_timeframes(self, client, services):
        resp = client.post(
            "/api/momentum/analyze",
            json={"symbol": "BTCUSDT", "timeframes": ["bogus"]},
        )
        assert resp.status_code == 400
        body = resp.json()
        assert body["success"] is False
        assert body["code"] == "INVALID_TIMEFRAMES"

    def test_analyze_rejects_blank_symbol(self, client, services):
        resp = client.post("/api/momentum/analyze", json={"symbol": "", "timeframes": ["1h"]})
        assert resp.status_code == 422

    def test_get_with_timeframes_query(self, client, services):
        resp = client.get("/api/momentum/ETHUSDT", params={"timeframes": "1d,1h"})
        assert resp.status_code == 200
        assert list(resp.json()["data"]["results"]) == ["1d", "1h"]

    def test_get_all_timeframes(self, client, services):
        resp = client.get("/api/momentum/ETHUSDT", params={"lookback": 60})
        assert resp.status_code == 200
        assert len(resp.json()["data"]["results"]) == 6

    def test_get_single_timeframe(self, client, services):
        resp = client.get("/api/momentum/ETHUSDT/15m")
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["timeframe"] == "15m"
        assert data["metadata"]["candle_count"] == 100

    def test_get_single_invalid_timeframe(self, client, services):
        resp = client.get("/api/momentum/ETHUSDT/2h")
        assert resp.status_code == 400
        assert resp.json()["code"] == "INVALID_TIMEFRAMES"

    def test_get_single_insufficient_data(self, client, services):
        resp = client.get("/api/momentum/ETHUSDT/1h", params={"lookback": 10})
        assert resp.status_code == 422
        body = resp.json()
        assert body["code"] == "INSUFFICIENT_DATA"
        assert body["data"]["required"] == 35
        assert body["data"]["actual"] == 10

    def test_get_single_provider_failure(self, client, services):
        from momentum_service.main import app
        svc = MultiTimeframeService(_FakeProvider(fail={"BTC"}))
        app.dependency_overrides[get_multi_timeframe_service] = lambda: svc
        resp = client.get("/api/momentum/BTC/1h")
        assert resp.status_code == 502


class TestScannerRoutes:
    def test_scan(self, client, services):
        resp = client.post(
            "/api/scanner/scan",
            json={"symbols": ["AAA", "BBB", "CCC"], "timeframe": "4h"},
        )
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["total_scanned"] == 3
        assert data["timeframe"] == "4h"
        scores = [abs(r["momentum_score"]) for r in data["results"]]
        assert scores == sorted(scores, reverse=True)

    def test_scan_too_many_symbols(self, client, services):
        resp = client.post("/api/scanner/scan", json={"symbols": ["A", "B", "C", "D"]})
        assert resp.status_code == 400

    def test_scan_invalid_timeframe(self, client, services):
        resp = client.post("/api/scanner/scan", json={"symbols": ["A"], "timeframe": "3d"})
        assert resp.status_code == 400
        assert resp.json()["code"] == "INVALID_TIMEFRAMES"


class TestCacheRoutes:
    def test_stats_and_clear(self, client, services):
        client.get("/api/momentum/BTC", params={"timeframes": "1h,4h"})
        resp = client.get("/api/cache/stats")
        assert resp.status_code == 200
        assert resp.json()["data"]["size"] == 2

        resp = client.post("/api/cache/clear")
        assert resp.status_code == 200
        assert client.get("/api/cache/stats").json()["data"]["size"] == 0

    def test_invalidate(self, client, services):
        client.get("/api/momentum/BTC", params={"timeframes": "1h,4h"})
        resp = client.post("/api/cache/invalidate", json={"symbol": "BTC", "timeframe": "1h"})
        assert resp.status_code == 200
        assert resp.json()["data"]["removed"] == 1
        resp = client.post("/api/cache/invalidate", json={"symbol": "BTC"})
        assert resp.json()["data"]["removed"] == 1

    def test_invalidate_invalid_timeframe(self, client, services):
        resp = client.post("/api/cache/invalidate", json={"symbol": "BTC", "timeframe": "2h"})
        assert resp.status_code == 400

    def test_cleanup(self, client, services):
        resp = client.post("/api/cache/cleanup")
        assert resp.status_code == 200
        assert resp.json()["data"]["removed"] == 0


class TestMarketRoutes:
    def test_timeframes(self, client):
        resp = client.get("/api/markets/timeframes")
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert [t["timeframe"] for t in data["timeframes"]] == ["1m", "5m", "15m", "1h", "4h", "1d"]
        assert data["timeframes"][-1]["weight"] == 13

    def test_providers(self, client):
        resp = client.get("/api/markets/providers")
        assert resp.status_code == 200
        ids = [p["id"] for p in resp.json()["data"]["providers"]]
        assert "synthetic" in ids
        assert "yfinance" in ids
