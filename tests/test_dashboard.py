def test_creator_stats(creator, sponsor, post_listing):
    creator_id, creator_client = creator
    _, sponsor_client = sponsor
    creator_client.put("/api/profile", json={"categories": ["Music"]})
    listing = post_listing(sponsor_client)
    creator_client.post(f"/api/listings/{listing['id']}/apply", json={"proposal": "Pick me"})
    sponsor_client.post("/api/messages", json={"receiverId": creator_id, "content": "Thanks for applying"})

    r = creator_client.get("/api/dashboard/stats")
    assert r.status_code == 200
    assert r.json == {"activeApplications": 1, "sponsorMatches": 1, "messages": 1, "profileViews": 0}


def test_sponsor_stats(creator, sponsor, post_listing):
    _, creator_client = creator
    _, sponsor_client = sponsor
    first = post_listing(sponsor_client, budget=1000)
    post_listing(sponsor_client, title="Second", budget=250.5)
    closed = post_listing(sponsor_client, title="Old", budget=9999)
    sponsor_client.put(f"/api/listings/{closed['id']}", json={"status": "CLOSED"})
    creator_client.post(f"/api/listings/{first['id']}/apply", json={})

    r = sponsor_client.get("/api/dashboard/stats")
    assert r.status_code == 200
    assert r.json["activeListings"] == 2
    assert r.json["pendingApplications"] == 1
    assert r.json["budgetAllocated"] == 1250.5
    assert r.json["messages"] == 0


def test_recent_activity_merges_applications_and_messages(creator, sponsor, post_listing):
    creator_id, creator_client = creator
    _, sponsor_client = sponsor
    listing = post_listing(sponsor_client)
    creator_client.post(f"/api/listings/{listing['id']}/apply", json={})
    sponsor_client.post("/api/messages", json={"receiverId": creator_id, "content": "x" * 150})

    r = creator_client.get("/api/dashboard/recent-activity")
    assert r.status_code == 200
    assert [i["type"] for i in r.json] == ["message", "application_update"]
    assert r.json[0]["description"] == "x" * 100 + "..."
    assert r.json[0]["title"] == "Message from Sam Sponsor"
    assert r.json[1]["link"] == "/dashboard/applications"

    r = sponsor_client.get("/api/dashboard/recent-activity")
    app_item = [i for i in r.json if i["type"] == "application_update"][0]
    assert "Casey Creator applied" in app_item["description"]


def test_recommendations_by_role(creator, sponsor, post_listing):
    _, creator_client = creator
    _, sponsor_client = sponsor
    creator_client.put("/api/profile", json={"audienceProfile": "young adults", "followers": 2000})
    post_listing(sponsor_client, title="Best fit")
    post_listing(sponsor_client, title="Poor fit", audienceProfile="retirees", categories=[], requirements=[])
    post_listing(creator_client, title="Creator pitch")

    r = creator_client.get("/api/dashboard/recommended-opportunities")
    assert r.status_code == 200
    assert [l["title"] for l in r.json] == ["Best fit", "Poor fit"]
    assert r.json[0]["matchScore"] > r.json[1]["matchScore"]
    assert r.json[0]["creator"]["name"] == "Sam Sponsor"

    r = sponsor_client.get("/api/dashboard/recommended-listings")
    assert r.status_code == 200
    assert [l["title"] for l in r.json] == ["Creator pitch"]

    assert sponsor_client.get("/api/dashboard/recommended-opportunities").status_code == 403
    assert creator_client.get("/api/dashboard/recommended-listings").status_code == 403


def test_dashboard_requires_login(client):
    assert client.get("/api/dashboard/stats").status_code == 401
    assert client.get("/api/dashboard/recent-activity").status_code == 401
