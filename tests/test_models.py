import pytest

from ragtrader.models import PortfolioSnapshot


def test_portfolio_snapshot_is_detached_from_caller_containers():
    balances = {"USD": 100.0}
    open_orders = [{"OrderID": 1, "Status": "PENDING"}]
    snapshot = PortfolioSnapshot(balances=balances, open_orders=open_orders, exchange_info={"IsRunning": True})

    balances["USD"] = 0.0
    balances["BTC"] = 5.0
    open_orders[0]["Status"] = "FILLED"
    open_orders.append({"OrderID": 2})

    assert snapshot.balances == {"USD": 100.0}
    assert snapshot.open_orders == [{"OrderID": 1, "Status": "PENDING"}]
    assert snapshot.to_dict()["balances"] == {"USD": 100.0}


def test_portfolio_snapshot_rejects_negative_balances():
    with pytest.raises(ValueError):
        PortfolioSnapshot(balances={"USD": -1.0})
    with pytest.raises(ValueError):
        PortfolioSnapshot(balances={}, pending_order_count=-1)
