"""Test rate-limit telemetry parsing."""
import math

from storelink.resilience import ThrottleStatus, parse_query_cost, parse_rate_limit_telemetry


def test_call_limit_header():
    info = parse_rate_limit_telemetry({"X-Shopify-Shop-Api-Call-Limit": "32/40"})
    assert info.throttle_status.currently_available == 32
    assert info.throttle_status.maximum_available == 40
    assert info.throttle_status.restore_rate == 2
    assert info.requested_query_cost == 0


def test_header_lookup_is_case_insensitive():
    info = parse_rate_limit_telemetry({"x-shopify-shop-api-call-limit": "1/40"})
    assert info.throttle_status.currently_available == 1


def test_cost_header_leading_integer():
    info = parse_rate_limit_telemetry({
        "X-Shopify-Shop-Api-Call-Limit": "10/40",
        "X-Shopify-Api-Call-Limit": "12 points",
    })
    assert info.requested_query_cost == 12
    assert info.actual_query_cost == 12


def test_absent_header_returns_none():
    assert parse_rate_limit_telemetry({"Content-Type": "application/json"}) is None
    assert parse_rate_limit_telemetry({}) is None
    assert parse_rate_limit_telemetry(None) is None


def test_malformed_header_yields_defaults():
    for raw in ("garbage", "10/", "/40", "a/b", "1/2/3"):
        info = parse_rate_limit_telemetry({"X-Shopify-Shop-Api-Call-Limit": raw})
        assert info is not None
        assert info.throttle_status.currently_available == 0
        assert info.throttle_status.maximum_available == 0


def test_graphql_cost_extension():
    info = parse_query_cost({
        "cost": {
            "requestedQueryCost": 52,
            "actualQueryCost": 12,
            "throttleStatus": {
                "maximumAvailable": 2000.0,
                "currentlyAvailable": 1988,
                "restoreRate": 100.0,
            },
        }
    })
    assert info.requested_query_cost == 52
    assert info.actual_query_cost == 12
    assert info.throttle_status.maximum_available == 2000
    assert info.throttle_status.currently_available == 1988
    assert info.throttle_status.restore_rate == 100


def test_graphql_cost_missing():
    assert parse_query_cost(None) is None
    assert parse_query_cost({}) is None
    assert parse_query_cost({"cost": "n/a"}) is None


def test_seconds_until_available():
    status = ThrottleStatus(maximum_available=40, currently_available=4, restore_rate=2)
    assert status.seconds_until_available(2) == 0.0
    assert status.seconds_until_available(10) == 3.0
    assert math.isinf(ThrottleStatus(40, 0, 0).seconds_until_available(1))


def test_to_dict():
    info = parse_rate_limit_telemetry({"X-Shopify-Shop-Api-Call-Limit": "5/40"})
    assert info.to_dict()["throttle_status"] == {
        "maximum_available": 40,
        "currently_available": 5,
        "restore_rate": 2,
    }
