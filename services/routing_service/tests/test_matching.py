"""
Smart route matching: source precedence, unit conversion, walking legs and
the Google Maps fallback.
"""

import pytest

from common.geo import haversine_m
from services.routing_service.matching import (
    CONFIDENCE_DIRECT,
    CONFIDENCE_GOOGLE,
    CONFIDENCE_INTERMEDIATE,
    CONFIDENCE_REVERSED,
    CONFIDENCE_WALKING,
    SmartRouteMatcher,
    okada_fare,
    walking_step,
)

pytestmark = pytest.mark.unit

# Points on a north-south line; 0.01 deg of latitude is about 1.1 km
START = (6.50, 3.30)
END = (6.60, 3.30)
FAR = (6.70, 3.30)


@pytest.fixture
def places(make_location):
    return {
        "start": make_location("Ojuelegba", *START),
        "end": make_location("Maryland", *END),
    }


@pytest.fixture
def match(run_db):
    def _match(start, end, maps=None):
        async def _run(session):
            return await SmartRouteMatcher(session, maps=maps).match(*start, *end)

        return run_db(_run)

    return _match


@pytest.fixture
def fake_maps(mocker):
    maps = mocker.Mock()
    maps.get_directions = mocker.AsyncMock(return_value=None)
    return maps


# ---------- helpers ----------


def test_short_walk_has_no_okada_alternative():
    step = walking_step(1, "Your location", "Ojuelegba", 420.4)

    assert step["distance"] == 420
    assert step["duration"] == 300
    assert step["transportMode"] == "walk"
    assert step["instructions"] == "Walk about 420m to Ojuelegba"
    assert "alternativeTransport" not in step


def test_long_walk_offers_okada():
    step = walking_step(3, "Maryland", "your destination", 1500)

    assert step["order"] == 3
    assert step["alternativeTransport"]["type"] == "okada"
    assert step["alternativeTransport"]["estimatedFare"] == 175


@pytest.mark.parametrize("meters,fare", [(0, 100), (1000, 150), (2400, 220)])
def test_okada_fare(meters, fare):
    assert okada_fare(meters) == fare


# ---------- database sources ----------


def test_direct_route_in_meters_and_seconds(places, make_route, match, fake_maps):
    route = make_route(places["start"], places["end"])

    result = match(START, END, fake_maps)

    assert result["hasDirectRoute"] is True
    assert result["requiresWalking"] is False
    (best,) = result["routes"]
    assert best["routeId"] == str(route.id)
    assert best["source"] == "database"
    assert best["confidence"] == CONFIDENCE_DIRECT
    assert best["distance"] == 8500
    assert best["duration"] == 1800
    step = best["steps"][0]
    assert step["distance"] == 4250
    assert step["duration"] == 900
    assert step["fromLocation"] == "Ojuelegba"
    assert step["toLocation"] == "Maryland"
    fake_maps.get_directions.assert_not_called()


def test_reversed_route_when_only_opposite_direction_exists(
    places, make_location, make_route, match, fake_maps
):
    middle = make_location("Fadeyi", 6.55, 3.30)
    make_route(
        places["end"],
        places["start"],
        steps=[(places["end"], middle, "bus"), (middle, places["start"], "keke")],
    )

    result = match(START, END, fake_maps)

    (best,) = result["routes"]
    assert best["isReversed"] is True
    assert best["confidence"] == CONFIDENCE_REVERSED
    assert best["routeName"] == "Ojuelegba to Maryland"
    assert [(s["order"], s["fromLocation"], s["toLocation"], s["transportMode"]) for s in best["steps"]] == [
        (1, "Ojuelegba", "Fadeyi", "keke"),
        (2, "Fadeyi", "Maryland", "bus"),
    ]


def test_walk_to_boarding_point_is_prepended(places, make_route, match, fake_maps):
    make_route(places["start"], places["end"])
    # about 550 m south of the boarding point
    origin = (START[0] - 0.005, START[1])

    result = match(origin, END, fake_maps)

    best = result["routes"][0]
    assert result["requiresWalking"] is True
    assert best["steps"][0]["transportMode"] == "walk"
    assert best["steps"][0]["toLocation"] == "Ojuelegba"
    assert [s["order"] for s in best["steps"]] == [1, 2]
    walk = best["steps"][0]["distance"]
    assert walk == round(haversine_m(*origin, *START))
    assert best["distance"] == 8500 + walk


def test_no_prepended_walk_when_already_at_boarding_point(places, make_route, match, fake_maps):
    make_route(places["start"], places["end"])

    result = match((START[0] - 0.001, START[1]), END, fake_maps)

    assert result["routes"][0]["steps"][0]["transportMode"] == "bus"


def test_intermediate_stop_on_a_longer_segment(
    places, make_location, make_segment, match, fake_maps
):
    terminus = make_location("Ikorodu Garage", *FAR)
    make_segment(places["start"], terminus, stops=[places["end"]])

    # destination is about 110 m from the Maryland stop
    result = match(START, (END[0] + 0.001, END[1]), fake_maps)

    assert result["hasIntermediateStop"] is True
    (best,) = result["routes"]
    assert best["source"] == "intermediate_stop"
    assert best["confidence"] == CONFIDENCE_INTERMEDIATE
    # stop 1 of 1 is halfway along the segment
    assert best["minFare"] == best["maxFare"] == 400
    assert best["distance"] == 6000
    assert best["duration"] == 1200
    info = best["intermediateStopInfo"]
    assert info["stopName"] == "Maryland"
    assert info["finalDestination"] == "Ikorodu Garage"
    assert best["steps"][0]["dataAvailability"]["confidence"] == "high"
    assert "Ikorodu Garage" in best["steps"][0]["instructions"]


def test_intermediate_stop_on_a_segment_ridden_backwards(
    places, make_location, make_segment, match, fake_maps
):
    terminus = make_location("Ikorodu Garage", *FAR)
    # stored running towards Ojuelegba: Ikorodu Garage, Maryland, Yaba, Ojuelegba
    yaba = make_location("Yaba", 6.55, 3.30)
    make_segment(terminus, places["start"], stops=[places["end"], yaba], instructions="Alight at the bridge.")

    result = match(START, (END[0] + 0.001, END[1]), fake_maps)

    (best,) = result["routes"]
    assert best["source"] == "intermediate_stop"
    assert best["isReversed"] is True
    assert best["routeName"] == "Ojuelegba to Maryland"
    # ridden from Ojuelegba, Maryland is stop 2 of 2
    assert best["distance"] == 8000
    assert best["minFare"] == 467
    info = best["intermediateStopInfo"]
    assert info["stopOrder"] == 2
    assert info["finalDestination"] == "Ikorodu Garage"
    assert info["segmentName"] == "Ojuelegba to Ikorodu Garage"
    assert "Alight at the bridge" not in best["steps"][0]["instructions"]


def test_one_way_segment_is_not_ridden_backwards(
    places, make_location, make_segment, match, fake_maps
):
    terminus = make_location("Ikorodu Garage", *FAR)
    make_segment(terminus, places["start"], stops=[places["end"]], is_bidirectional=False)

    result = match(START, (END[0] + 0.001, END[1]), fake_maps)

    assert result["hasIntermediateStop"] is False


def test_intermediate_stop_too_far_from_destination(
    places, make_location, make_segment, match, fake_maps
):
    terminus = make_location("Ikorodu Garage", *FAR)
    make_segment(places["start"], terminus, stops=[places["end"]])

    result = match(START, (6.65, 3.30), fake_maps)

    assert result["hasIntermediateStop"] is False


def test_ride_then_walk_when_destination_is_past_known_stops(places, make_route, match, fake_maps):
    make_route(places["start"], places["end"])
    # about 1.2 km beyond Maryland, nothing known within 500 m
    destination = (END[0] + 0.0108, END[1])

    result = match(START, destination, fake_maps)

    assert result["requiresWalking"] is True
    (best,) = result["routes"]
    assert best["source"] == "with_walking"
    assert best["confidence"] == CONFIDENCE_WALKING
    walk = best["steps"][-1]
    assert walk["transportMode"] == "walk"
    assert walk["fromLocation"] == "Maryland"
    assert walk["dataAvailability"]["confidence"] == "low"
    assert walk["alternativeOptions"]["walkable"] is False
    assert walk["alternativeTransport"]["estimatedFare"] == okada_fare(walk["distance"])
    assert best["finalDestinationInfo"]["dropOffLocation"]["name"] == "Maryland"
    assert best["distance"] == 8500 + walk["distance"]


# ---------- google fallback ----------


def test_google_fallback_when_nothing_known(match, fake_maps):
    fake_maps.get_directions.return_value = {
        "distance": 5200,
        "duration": 1500,
        "polyline": "abc",
        "steps": [
            {
                "instruction": "Walk to Allen bus stop",
                "distance": 300,
                "duration": 240,
                "travelMode": "walking",
                "startLocation": {"lat": 6.6, "lng": 3.35},
                "endLocation": {"lat": 6.601, "lng": 3.351},
            },
            {
                "instruction": "Bus towards Ikeja",
                "distance": 4900,
                "duration": 1260,
                "travelMode": "transit",
                "startLocation": {"lat": 6.601, "lng": 3.351},
                "endLocation": {"lat": 6.62, "lng": 3.36},
            },
        ],
    }

    result = match((6.6, 3.35), (6.62, 3.36), fake_maps)

    (best,) = result["routes"]
    assert best["source"] == "google_maps"
    assert best["confidence"] == CONFIDENCE_GOOGLE
    assert [s["transportMode"] for s in best["steps"]] == ["walk", "bus"]
    assert best["steps"][0]["fromLocation"] == "6.60000,3.35000"
    assert best["requiresWalking"] is True
    assert result["hasDirectRoute"] is False


def test_google_errors_yield_no_routes(match, fake_maps):
    fake_maps.get_directions.side_effect = RuntimeError("quota exceeded")

    result = match((6.6, 3.35), (6.62, 3.36), fake_maps)

    assert result == {
        "hasDirectRoute": False,
        "hasIntermediateStop": False,
        "requiresWalking": False,
        "routes": [],
    }


def test_routes_are_sorted_by_confidence(places, make_route, match, fake_maps):
    make_route(places["start"], places["end"], name="Slow", popularity_score=1)
    make_route(places["start"], places["end"], name="Popular", popularity_score=9)

    result = match(START, END, fake_maps)

    assert [r["routeName"] for r in result["routes"]] == ["Popular", "Slow"]
