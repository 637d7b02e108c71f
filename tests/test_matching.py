from datetime import datetime, timedelta

from app.blitz.modules.matching.scoring import (
    CreatorSnapshot,
    ListingSnapshot,
    calculate_match_score,
    days_ago,
    engagement_rate,
    is_match,
    match_breakdown,
    parse_min_followers,
)


def test_parse_min_followers():
    assert parse_min_followers("Min 5,000 followers") == 5000
    assert parse_min_followers("minimum 200 subscribers") == 200
    assert parse_min_followers("At least 10 posts") is None
    assert parse_min_followers("Min followers") is None
    assert parse_min_followers("") is None


def test_score_all_hits_and_all_misses():
    listing = ListingSnapshot(audience_profile="Young Adults in Texas", categories=("Music",), requirements=("Min 1000 followers",))
    fan = CreatorSnapshot(audience_profile="young adults", categories=frozenset({"Music"}), followers=1500)
    stranger = CreatorSnapshot(audience_profile="retirees", categories=frozenset({"Gardening"}), followers=10)

    assert calculate_match_score([listing], fan) == 100
    assert calculate_match_score([listing], stranger) == 60
    assert is_match([listing], fan)
    assert not is_match([listing], stranger)


def test_score_weights_are_applied():
    listing = ListingSnapshot(audience_profile="gamers", categories=("Technology",), requirements=())
    creator = CreatorSnapshot(audience_profile="gamers", categories=frozenset(), followers=0)
    breakdown = match_breakdown([listing], creator)
    assert (breakdown.audience, breakdown.value, breakdown.requirements) == (100, 60, 60)
    # 0.4*100 + 0.3*60 + 0.3*60
    assert breakdown.score == 76


def test_no_listings_scores_floor():
    creator = CreatorSnapshot(audience_profile="gamers", categories=frozenset({"Music"}), followers=99999)
    assert calculate_match_score([], creator) == 60
    assert not is_match([], creator)


def test_days_ago_and_engagement():
    now = datetime(2026, 5, 31, 12, 0)
    assert days_ago(now - timedelta(hours=3), now) == "Today"
    assert days_ago(now - timedelta(days=1), now) == "1 day ago"
    assert days_ago(now - timedelta(days=9), now) == "9 days ago"

    stamps = [now - timedelta(days=d) for d in (1, 2, 3, 45)]
    assert engagement_rate(stamps, now) == "10.0"
    assert engagement_rate([], now) == "0.0"


def _set_creator_profile(client, **fields):
    r = client.put("/api/profile", json=fields)
    assert r.status_code == 200, r.get_json()


def test_sponsor_matches_ranks_by_score(creator, sponsor, make_user, login_as, post_listing):
    _, creator_client = creator
    _, sponsor_client = sponsor
    make_user("other-sponsor@example.com", "SPONSOR", name="Other Co")
    other_client = login_as("other-sponsor@example.com")

    _set_creator_profile(creator_client, audienceProfile="young adults", categories=["Music"], followers=5000)
    post_listing(sponsor_client)
    post_listing(other_client, audienceProfile="seniors", categories=["Gardening"], requirements=[])

    r = creator_client.get("/api/sponsor-matches")
    assert r.status_code == 200
    names = [m["name"] for m in r.json]
    assert names == ["Sam Sponsor", "Other Co"]
    top = r.json[0]
    assert top["matchScore"] == 100
    assert top["audienceMatch"] == 100
    assert top["valueMatch"] == 100
    assert top["activeListings"] == 1
    assert top["budget"] == 1500.0
    assert top["industry"] == "Beverages"
    assert top["listings"][0]["name"] == "Summer festival sponsorship"
    assert r.json[1]["matchScore"] == 60


def test_matched_creators_filters_non_matches(creator, sponsor, make_user, login_as, post_listing):
    _, creator_client = creator
    _, sponsor_client = sponsor
    make_user("quiet@example.com", "CREATOR", name="Quiet")

    _set_creator_profile(creator_client, categories=["Music"], followers=10)
    post_listing(sponsor_client)

    r = sponsor_client.get("/api/matched-creators")
    assert r.status_code == 200
    assert [c["name"] for c in r.json] == ["Casey Creator"]
    assert r.json[0]["stats"]["followers"] == 10

    assert creator_client.get("/api/matched-creators").status_code == 403


def test_matches_lists_other_side(creator, sponsor):
    _, creator_client = creator
    _, sponsor_client = sponsor

    r = creator_client.get("/api/matches")
    assert r.status_code == 200
    assert [m["role"] for m in r.json] == ["SPONSOR"]
    assert r.json[0]["lastActivity"] == "Today"
    assert r.json[0]["engagement"] == "0.0"

    r = sponsor_client.get("/api/matches")
    assert [m["email"] for m in r.json] == ["creator@example.com"]


def test_matching_requires_login(client):
    assert client.get("/api/matches").status_code == 401
    assert client.get("/api/sponsor-matches").status_code == 401
