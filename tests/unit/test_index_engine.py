"""RisqLab: Tests for IndexEngine orchestration.

The engine runs against an in-memory snapshot reader and index storage,
so no database is needed.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Dict, List, Optional, Sequence

import pytest

from risqlab.constituents import EmptyUniverseError, MarketSnapshot, SnapshotReader
from risqlab.core.config import IndexSettings
from risqlab.index import (
    PLACEHOLDER_DIVISOR,
    IndexConfiguration,
    IndexEngine,
    IndexResult,
    IndexStorage,
)


T0 = datetime(2025, 1, 1, tzinfo=timezone.utc)
T1 = T0 + timedelta(days=1)
T2 = T0 + timedelta(days=2)


def _snap(ts: datetime, asset_id: int, symbol: str, market_cap: str, **flags: bool) -> MarketSnapshot:
    return MarketSnapshot(
        asset_id=asset_id,
        symbol=symbol,
        timestamp=ts,
        price=Decimal("1"),
        circulating_supply=Decimal(market_cap),
        **flags,
    )


class _StubReader(SnapshotReader):
    """In-memory snapshot reader keyed by timestamp."""

    def __init__(self, snapshots: Dict[datetime, List[MarketSnapshot]]) -> None:  # type: ignore[no-untyped-def]
        self.snapshots = snapshots

    def get_snapshots(self, timestamp: datetime) -> list[MarketSnapshot]:  # type: ignore[override]
        return list(self.snapshots.get(timestamp, []))

    def get_most_recent_snapshots(self) -> list[MarketSnapshot]:  # type: ignore[override]
        if not self.snapshots:
            return []
        return list(self.snapshots[max(self.snapshots)])


class _StubStorage(IndexStorage):
    """In-memory IndexStorage capturing configuration and results."""

    def __init__(self, reader: _StubReader, config: Optional[IndexConfiguration] = None) -> None:  # type: ignore[no-untyped-def]
        self.reader = reader
        self.config = config
        self.results: Dict[datetime, IndexResult] = {}
        self.save_calls = 0
        self.set_divisor_calls = 0
        self._next_id = 0

    def get_active_configuration(self, index_name: str) -> Optional[IndexConfiguration]:  # type: ignore[override]
        return self.config

    def create_configuration(  # type: ignore[override]
        self,
        index_name: str,
        base_level: Decimal,
        divisor: Decimal,
        base_date: Optional[datetime],
        max_constituents: int,
    ) -> IndexConfiguration:
        self.config = IndexConfiguration(
            config_id="cfg-1",
            index_name=index_name,
            base_level=base_level,
            divisor=divisor,
            base_date=base_date,
            max_constituents=max_constituents,
        )
        return self.config

    def set_divisor(self, config_id: str, divisor: Decimal, base_date: Optional[datetime]) -> None:  # type: ignore[override]
        assert self.config is not None
        self.set_divisor_calls += 1
        self.config = replace(self.config, divisor=divisor, base_date=base_date)

    def reset_divisor(self, config_id: str) -> None:  # type: ignore[override]
        self.set_divisor(config_id, PLACEHOLDER_DIVISOR, None)

    def get_missing_timestamps(self, config_id: str) -> list[datetime]:  # type: ignore[override]
        return sorted(ts for ts in self.reader.snapshots if ts not in self.results)

    def save_result(self, result: IndexResult) -> str:  # type: ignore[override]
        self.save_calls += 1
        existing = self.results.get(result.timestamp)
        if existing is not None:
            result_id = existing.index_result_id
        else:
            self._next_id += 1
            result_id = f"res-{self._next_id}"
        self.results[result.timestamp] = replace(result, index_result_id=result_id)
        return str(result_id)

    def delete_results(self, config_id: str, timestamps: Sequence[datetime]) -> int:  # type: ignore[override]
        deleted = 0
        for ts in timestamps:
            if self.results.pop(ts, None) is not None:
                deleted += 1
        return deleted


class _RecordingEngine(IndexEngine):
    """IndexEngine that remembers the verbose flag of each calculation."""

    verbose_flags: List[tuple]

    def calculate_for_timestamp(self, config, timestamp, verbose=False):  # type: ignore[no-untyped-def,override]
        self.verbose_flags.append((timestamp, verbose))
        return super().calculate_for_timestamp(config, timestamp, verbose=verbose)


def _snapshots() -> Dict[datetime, List[MarketSnapshot]]:
    # Most recent set (T2) totals 2.5T after excluding USDT; T0 totals 2.75T.
    return {
        T0: [
            _snap(T0, 1, "BTC", "2200000000000"),
            _snap(T0, 2, "ETH", "550000000000"),
            _snap(T0, 3, "USDT", "140000000000"),
        ],
        T1: [
            _snap(T1, 1, "BTC", "2000000000000"),
            _snap(T1, 2, "ETH", "500000000000"),
            _snap(T1, 3, "USDT", "140000000000"),
        ],
        T2: [
            _snap(T2, 1, "BTC", "2000000000000"),
            _snap(T2, 2, "ETH", "450000000000"),
            _snap(T2, 4, "STETH", "30000000000", is_liquid_staking=True),
            _snap(T2, 5, "SOL", "50000000000", is_stablecoin=False, is_wrapped=False, is_liquid_staking=False),
        ],
    }


def _engine(snapshots=None, config=None) -> tuple[IndexEngine, _StubStorage]:  # type: ignore[no-untyped-def]
    reader = _StubReader(snapshots if snapshots is not None else _snapshots())
    storage = _StubStorage(reader, config)
    engine = _RecordingEngine(reader=reader, storage=storage, settings=IndexSettings())
    engine.verbose_flags = []
    return engine, storage


class TestInitialisation:
    def test_creates_configuration_from_most_recent_snapshots(self) -> None:
        engine, storage = _engine()

        config = engine.ensure_configuration()

        assert config.divisor == Decimal("25000000000")
        assert config.base_date == T2
        assert config.base_level == Decimal("100")
        assert config.max_constituents == 80
        assert storage.config == config

    def test_existing_initialised_configuration_is_reused(self) -> None:
        existing = IndexConfiguration(
            config_id="cfg-0",
            index_name="RisqLab 80",
            base_level=Decimal("100"),
            divisor=Decimal("12345"),
            base_date=T0,
            max_constituents=80,
        )
        engine, storage = _engine(config=existing)

        config = engine.ensure_configuration()

        assert config == existing
        assert storage.set_divisor_calls == 0

    def test_placeholder_divisor_is_initialised(self) -> None:
        placeholder = IndexConfiguration(
            config_id="cfg-0",
            index_name="RisqLab 80",
            base_level=Decimal("100"),
            divisor=PLACEHOLDER_DIVISOR,
            base_date=None,
            max_constituents=80,
        )
        engine, storage = _engine(config=placeholder)

        config = engine.ensure_configuration()

        assert config.config_id == "cfg-0"
        assert config.divisor == Decimal("25000000000")
        assert storage.set_divisor_calls == 1

    def test_no_eligible_constituents_is_fatal(self) -> None:
        snapshots = {T0: [_snap(T0, 3, "USDT", "1000")]}
        engine, storage = _engine(snapshots=snapshots)

        with pytest.raises(EmptyUniverseError):
            engine.run()

        assert storage.config is None
        assert storage.results == {}


class TestBackfill:
    def test_run_fills_every_missing_timestamp(self) -> None:
        engine, storage = _engine()

        summary = engine.run()

        assert summary.total == 3
        assert summary.succeeded == 3
        assert summary.failed == 0
        assert storage.results[T2].index_level == Decimal("100")
        assert storage.results[T0].index_level == Decimal("110")
        assert storage.results[T1].index_level == Decimal("100")
        assert storage.results[T0].divisor_used == Decimal("25000000000")
        assert summary.last_result is not None
        assert summary.last_result.timestamp == T2

    def test_processes_oldest_first_and_only_last_is_verbose(self) -> None:
        engine, _ = _engine()

        engine.run()

        assert engine.verbose_flags == [(T0, False), (T1, False), (T2, True)]

    def test_weights_sum_to_one_hundred(self) -> None:
        engine, storage = _engine()

        engine.run()

        for result in storage.results.values():
            total_weight = sum(c.weight_percent for c in result.constituents)
            assert abs(total_weight - Decimal("100")) < Decimal("1e-6")
            assert result.constituent_count == len(result.constituents)
            assert [c.rank_position for c in result.constituents] == list(
                range(1, result.constituent_count + 1)
            )

    def test_excluded_assets_never_become_constituents(self) -> None:
        engine, storage = _engine()

        engine.run()

        symbols = {c.symbol for r in storage.results.values() for c in r.constituents}
        assert "USDT" not in symbols
        assert "STETH" not in symbols
        assert "SOL" in symbols

    def test_failure_at_one_timestamp_does_not_abort_run(self) -> None:
        snapshots = _snapshots()
        snapshots[T1] = [_snap(T1, 3, "USDT", "140000000000")]
        engine, storage = _engine(snapshots=snapshots)

        summary = engine.run()

        assert summary.total == 3
        assert summary.succeeded == 2
        assert summary.failed == 1
        assert summary.failed_timestamps == [T1]
        assert set(storage.results) == {T0, T2}

    def test_rerun_is_a_noop(self) -> None:
        engine, storage = _engine()
        engine.run()
        saves = storage.save_calls
        before = dict(storage.results)

        summary = engine.run()

        assert summary.total == 0
        assert storage.save_calls == saves
        assert storage.results == before


class TestRecomputeAndReset:
    def test_recompute_replaces_existing_result(self) -> None:
        snapshots = _snapshots()
        engine, storage = _engine(snapshots=snapshots)
        engine.run()

        snapshots[T0] = [_snap(T0, 1, "BTC", "3000000000000")]
        summary = engine.recompute([T0])

        assert summary.succeeded == 1
        assert storage.results[T0].index_level == Decimal("120")
        assert storage.results[T0].constituent_count == 1
        # The divisor is a constant across recomputation.
        assert storage.results[T0].divisor_used == Decimal("25000000000")

    def test_recompute_of_nothing_is_empty(self) -> None:
        engine, _ = _engine()

        summary = engine.recompute([])

        assert summary.total == 0

    def test_reset_divisor_leads_to_reinitialisation(self) -> None:
        snapshots = _snapshots()
        engine, storage = _engine(snapshots=snapshots)
        engine.run()

        reset = engine.reset_divisor()
        assert reset is not None
        assert not reset.is_initialised

        snapshots[T2] = [_snap(T2, 1, "BTC", "5000000000000")]
        config = engine.ensure_configuration()

        assert config.divisor == Decimal("50000000000")
        assert storage.config is not None and storage.config.is_initialised

    def test_reset_without_configuration_returns_none(self) -> None:
        engine, _ = _engine()

        assert engine.reset_divisor() is None
