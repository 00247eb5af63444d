import pytest

from common.geo import bounding_box, haversine_km, haversine_m

pytestmark = pytest.mark.unit

# Lagos landmarks
OSHODI = (6.5536, 3.3436)
IKEJA_ALONG = (6.6018, 3.3515)
YABA = (6.5095, 3.3711)
LEKKI = (6.4474, 3.4723)


@pytest.fixture
def lagos(make_location):
    return {
        "oshodi": make_location("Oshodi Bus Terminal", *OSHODI, popularity_score=50),
        "ikeja": make_location("Ikeja Along", *IKEJA_ALONG, popularity_score=80),
        "yaba": make_location("Yaba Bus Stop", *YABA, popularity_score=10),
        "lekki": make_location("Lekki Phase 1 Gate", *LEKKI, popularity_score=5),
        "abuja": make_location(
            "Wuse Market", 9.0765, 7.4683, city="Abuja", state="FCT", popularity_score=99
        ),
    }


def test_search_is_case_insensitive(client, lagos):
    r = client.get("/locations/search", params={"q": "bus"})

    assert r.status_code == 200
    names = {loc["name"] for loc in r.json()["data"]["locations"]}
    assert names == {"Oshodi Bus Terminal", "Yaba Bus Stop"}
    assert r.json()["data"]["count"] == 2


def test_search_filters_by_city(client, lagos):
    r = client.get("/locations/search", params={"q": "a", "city": "abuja"})

    assert [loc["name"] for loc in r.json()["data"]["locations"]] == ["Wuse Market"]


def test_search_orders_by_popularity(client, lagos):
    r = client.get("/locations/search", params={"q": "a"})

    scores = [loc["popularityScore"] for loc in r.json()["data"]["locations"]]
    assert scores == sorted(scores, reverse=True)


def test_search_requires_query(client):
    r = client.get("/locations/search", params={"q": "   "})

    assert r.status_code == 400
    assert r.json()["detail"] == "Search query is required"


def test_search_skips_inactive_locations(client, make_location):
    make_location("Closed Park", *YABA, is_active=False)

    r = client.get("/locations/search", params={"q": "closed"})

    assert r.json()["data"]["count"] == 0


def test_nearby_returns_distance_in_meters(client, lagos):
    r = client.get("/locations/nearby", params={"lat": OSHODI[0], "lng": OSHODI[1], "radius": 6})

    locations = r.json()["data"]["locations"]
    names = [loc["name"] for loc in locations]
    assert "Lekki Phase 1 Gate" not in names
    assert "Wuse Market" not in names
    assert set(names) == {"Oshodi Bus Terminal", "Ikeja Along", "Yaba Bus Stop"}

    by_name = {loc["name"]: loc for loc in locations}
    assert by_name["Oshodi Bus Terminal"]["distance"] == 0
    expected = round(haversine_m(*OSHODI, *IKEJA_ALONG))
    assert by_name["Ikeja Along"]["distance"] == expected


def test_nearby_validates_coordinates(client):
    r = client.get("/locations/nearby", params={"lat": 95, "lng": 3.3})

    assert r.status_code == 422


def test_popular_locations(client, lagos):
    r = client.get("/locations/popular", params={"city": "Lagos", "limit": 2})

    assert [loc["name"] for loc in r.json()["data"]["locations"]] == [
        "Ikeja Along",
        "Oshodi Bus Terminal",
    ]


def test_get_location(client, lagos):
    location = lagos["yaba"]

    r = client.get(f"/locations/{location.id}")

    assert r.status_code == 200
    data = r.json()["data"]["location"]
    assert data["name"] == "Yaba Bus Stop"
    assert data["latitude"] == pytest.approx(YABA[0])


def test_get_location_not_found(client):
    r = client.get("/locations/00000000-0000-0000-0000-000000000000")

    assert r.status_code == 404
    assert r.json()["detail"] == "Location not found"


def test_create_location_requires_auth(client):
    r = client.post(
        "/locations",
        json={"name": "New Stop", "city": "Lagos", "state": "Lagos", "latitude": 6.5, "longitude": 3.3},
    )

    assert r.status_code == 401


def test_create_location(client, make_user, auth_headers):
    user = make_user()

    r = client.post(
        "/locations",
        json={
            "name": "Obalende Park",
            "city": "Lagos",
            "state": "Lagos",
            "latitude": 6.4488,
            "longitude": 3.4072,
            "description": "Under the bridge",
        },
        headers=auth_headers(user),
    )

    assert r.status_code == 201
    location = r.json()["data"]["location"]
    assert location["isVerified"] is False
    assert location["country"] == "Nigeria"

    fetched = client.get(f"/locations/{location['id']}")
    assert fetched.json()["data"]["location"]["description"] == "Under the bridge"


def test_create_location_drops_cached_smart_searches(client, make_user, auth_headers, fake_redis):
    fake_redis.set("routes:smart:lagos-search", "{}")
    fake_redis.set("user:location:someone", "{}")

    client.post(
        "/locations",
        json={"name": "CMS", "city": "Lagos", "state": "Lagos", "latitude": 6.4520, "longitude": 3.3892},
        headers=auth_headers(make_user()),
    )

    assert [key for key in fake_redis.store if key.startswith("routes:smart:")] == []
    assert "user:location:someone" in fake_redis.store


# ---------- geo helpers ----------


def test_haversine_known_distance():
    # Oshodi to Ikeja Along is a little over 5 km
    assert 5.0 < haversine_km(*OSHODI, *IKEJA_ALONG) < 5.6


def test_haversine_zero_distance():
    assert haversine_m(*YABA, *YABA) == 0


def test_bounding_box_contains_radius():
    min_lat, max_lat, min_lng, max_lng = bounding_box(*OSHODI, 2)

    assert min_lat < OSHODI[0] < max_lat
    assert min_lng < OSHODI[1] < max_lng
    assert haversine_km(min_lat, OSHODI[1], *OSHODI) == pytest.approx(2, rel=0.02)
