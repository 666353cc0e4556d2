import json

from model.app import (
    App,
    AppContainer,
    AppFlag,
    AppMetadata,
    Conclusion,
    RiskLevel,
    app_to_dict,
    flags_string,
)


def test_app_key_and_container_lookup():
    app = App(metadata=AppMetadata(namespace="shop", workload="cart"))
    app.containers = [AppContainer(name="cart"), AppContainer(name="envoy")]
    assert app.key == "shop/cart"
    assert str(app.metadata) == "shop/cart"
    assert app.container_index_by_name("envoy") == 1
    assert app.container_by_name("ghost") is None


def test_unknown_risk_is_not_zero():
    app = App(metadata=AppMetadata(namespace="shop", workload="cart"))
    assert app.analysis.reliability_risk is None
    assert app.analysis.efficiency_rate is None
    assert app.analysis.conclusion == Conclusion.INSUFFICIENT_DATA


def test_flags_string_lists_set_flags_sorted():
    flags = {AppFlag.TRAFFIC: True, AppFlag.MAIN_CONTAINER: True, AppFlag.BURST: False}
    assert flags_string(flags) == "CT"


def test_app_to_dict_is_plain():
    app = App(metadata=AppMetadata(namespace="shop", workload="cart"))
    app.analysis.reliability_risk = RiskLevel.MEDIUM
    app.analysis.conclusion = Conclusion.RELIABILITY_RISK
    app.analysis.flags = {AppFlag.WRITEABLE_VOLUME: True}

    data = app_to_dict(app)

    assert data["analysis"]["reliability_risk"] == "medium"
    assert data["analysis"]["conclusion"] == "reliability-risk"
    assert data["analysis"]["flags"] == {"V": True}
    assert data["analysis"]["flags_summary"] == "V"
    assert data["containers"] == []
    json.dumps(data)
