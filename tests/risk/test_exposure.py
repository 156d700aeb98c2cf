"""Tests for the exposure book."""

import pytest

from riskeval_app.models.risk import RiskDimension
from riskeval_app.risk.exposure import ExposureBook, SymbolExposure, aggregate_positions


def exposure(symbol, quantity=1.0, price=10.0, cost=10.0):
    return SymbolExposure(symbol=symbol, quantity=quantity, cost_basis=quantity * cost, price=price)


class TestAggregatePositions:
    """Test per-symbol aggregation of snapshot positions."""

    def test_lots_are_combined(self, make_snapshot, make_market):
        snapshot = make_snapshot(positions=(("BTC", 1.0, 100.0), ("BTC", 3.0, 200.0)))
        result = aggregate_positions(snapshot, make_market({"BTC": 150.0}))

        btc = result["BTC"]
        assert btc.quantity == 4.0
        assert btc.average_cost == pytest.approx(175.0)
        assert btc.value == pytest.approx(600.0)
        assert btc.drawdown == pytest.approx(1 - 150.0 / 175.0)

    def test_missing_price_falls_back_to_cost(self, make_snapshot, make_market):
        result = aggregate_positions(make_snapshot(), make_market({"BTC": 120.0}))
        assert result["ETH"].price == 100.0
        assert result["BTC"].drawdown == 0.0

    def test_zero_quantity_maps_to_none(self, make_snapshot, make_market):
        snapshot = make_snapshot(positions=(("BTC", 0.0, 100.0),))
        assert aggregate_positions(snapshot, make_market()) == {"BTC": None}

    def test_requested_symbols_only(self, make_snapshot, make_market):
        result = aggregate_positions(make_snapshot(), make_market(), ["ETH", "SOL", "ETH"])
        assert list(result) == ["ETH", "SOL"]
        assert result["SOL"] is None


class TestExposureBook:
    """Test running aggregates and transactional updates."""

    def test_totals_and_weights(self):
        book = ExposureBook([RiskDimension.CONCENTRATION])
        book.set_entry("A", exposure("A", 3.0), {RiskDimension.CONCENTRATION: 900.0})
        book.set_entry("B", exposure("B", 1.0), {RiskDimension.CONCENTRATION: 100.0})

        assert book.total_value == 40.0
        assert book.weight("A") == 0.75
        assert book.weight("C") == 0.0
        assert book.contribution_total(RiskDimension.CONCENTRATION) == 1000.0
        assert [e.symbol for e in book.top_exposures(1)] == ["A"]

    def test_removal(self):
        book = ExposureBook([RiskDimension.CONCENTRATION])
        book.set_entry("A", exposure("A"), {RiskDimension.CONCENTRATION: 100.0})
        book.set_entry("A", None)

        assert "A" not in book
        assert book.contribution(RiskDimension.CONCENTRATION, "A") == 0.0

    def test_top_exposures_tie_break_by_symbol(self):
        book = ExposureBook()
        for symbol in ("C", "A", "B"):
            book.set_entry(symbol, exposure(symbol))
        assert [e.symbol for e in book.top_exposures(10)] == ["A", "B", "C"]

    def test_transaction_rolls_back_on_error(self):
        book = ExposureBook([RiskDimension.LIQUIDITY])
        book.set_entry("A", exposure("A"), {RiskDimension.LIQUIDITY: 1.0})

        with pytest.raises(RuntimeError, match="boom"):
            with book.transaction():
                book.set_entry("A", exposure("A", 5.0), {RiskDimension.LIQUIDITY: 5.0})
                book.set_entry("B", exposure("B"), {RiskDimension.LIQUIDITY: 2.0})
                book.set_entry("A", None)
                raise RuntimeError("boom")

        assert list(book.entries) == ["A"]
        assert book.get("A").quantity == 1.0
        assert book.contribution_total(RiskDimension.LIQUIDITY) == 1.0

    def test_transaction_commits(self):
        book = ExposureBook([RiskDimension.LIQUIDITY])
        with book.transaction():
            book.set_entry("A", exposure("A"), {RiskDimension.LIQUIDITY: 1.0})
        assert len(book) == 1

    def test_nested_transaction(self):
        book = ExposureBook()
        with book.transaction():
            with pytest.raises(RuntimeError):
                with book.transaction():
                    pass

    def test_running_totals_match_fresh_book(self):
        dim = RiskDimension.CONCENTRATION
        book = ExposureBook([dim])
        for i in range(50):
            symbol = f"S{i % 7}"
            quantity = float(i % 5)
            entry = exposure(symbol, quantity) if quantity else None
            book.set_entry(symbol, entry, {dim: quantity ** 2} if entry else None)

        fresh = ExposureBook([dim])
        for entry in book:
            fresh.set_entry(entry.symbol, entry, {dim: book.contribution(dim, entry.symbol)})

        assert book.total_value == pytest.approx(sum(e.value for e in book))
        assert book.total_value == pytest.approx(fresh.total_value)
        assert book.contribution_total(dim) == pytest.approx(fresh.contribution_total(dim))
        assert book.top_exposures(3) == fresh.top_exposures(3)

    def test_ranking_follows_value_changes(self):
        book = ExposureBook()
        book.set_entry("A", exposure("A", 3.0))
        book.set_entry("B", exposure("B", 2.0))
        book.set_entry("A", exposure("A", 1.0))

        assert [e.symbol for e in book.top_exposures(2)] == ["B", "A"]
        assert book.total_value == pytest.approx(30.0)

    def test_emptied_book_has_zero_totals(self):
        book = ExposureBook([RiskDimension.LIQUIDITY])
        book.set_entry("A", exposure("A", 3.0), {RiskDimension.LIQUIDITY: 0.1})
        book.set_entry("A", None)

        assert book.total_value == 0.0
        assert book.contribution_total(RiskDimension.LIQUIDITY) == 0.0
        assert book.top_exposures(5) == []

    def test_rollback_restores_totals_and_ranking(self):
        book = ExposureBook([RiskDimension.LIQUIDITY])
        book.set_entry("A", exposure("A", 2.0), {RiskDimension.LIQUIDITY: 1.0})
        book.set_entry("B", exposure("B", 1.0), {RiskDimension.LIQUIDITY: 3.0})

        with pytest.raises(RuntimeError):
            with book.transaction():
                book.set_entry("B", exposure("B", 9.0), {RiskDimension.LIQUIDITY: 7.0})
                book.set_entry("A", None)
                raise RuntimeError("boom")

        assert book.total_value == pytest.approx(30.0)
        assert book.contribution_total(RiskDimension.LIQUIDITY) == pytest.approx(4.0)
        assert [e.symbol for e in book.top_exposures(2)] == ["A", "B"]


class TestSnapshotIndex:
    """Test per-symbol position lookup on snapshots."""

    def test_positions_for_uses_first_seen_order(self, make_snapshot):
        snapshot = make_snapshot(positions=(("BTC", 1.0, 100.0), ("ETH", 2.0, 50.0), ("BTC", 3.0, 200.0)))

        assert snapshot.symbols == ["BTC", "ETH"]
        assert [p.quantity for p in snapshot.positions_for("BTC")] == [1.0, 3.0]
        assert snapshot.positions_for("SOL") == []

    def test_positions_for_returns_a_copy(self, make_snapshot):
        snapshot = make_snapshot()
        snapshot.positions_for("BTC").clear()
        assert len(snapshot.positions_for("BTC")) == 1
