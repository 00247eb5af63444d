from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import select

from common.timeutils import utcnow
from models.community import CommunityPost, PostType, VoteType
from models.notification import Notification
from models.route import ActiveTrip, TripStatus
from models.user_models import User
from services.community.service import bump_votes

pytestmark = pytest.mark.unit


@pytest.fixture
def author(make_user, auth_headers):
    user = make_user(first_name="Tunde")
    return user, auth_headers(user)


@pytest.fixture
def reader(make_user, auth_headers):
    user = make_user(first_name="Ada")
    return user, auth_headers(user)


@pytest.fixture
def create_post(client):
    def _create(headers, **fields):
        payload = {
            "postType": "tip",
            "title": "Use the BRT lane",
            "content": "BRT from Ikorodu is faster before 7am.",
            **fields,
        }
        r = client.post("/community/posts", json=payload, headers=headers)
        assert r.status_code == 201, r.text
        return r.json()["data"]["post"]

    return _create


@pytest.fixture
def stored(run_db):
    def _add(obj):
        async def _save(session):
            session.add(obj)
            await session.commit()
            return obj

        return run_db(_save)

    return _add


def _notifications_for(run_db, user):
    async def _load(session):
        rows = await session.execute(select(Notification).where(Notification.user_id == user.id))
        return list(rows.scalars())

    return run_db(_load)


# ---------- posts ----------


def test_create_post(client, author, create_post, run_db):
    user, headers = author

    post = create_post(headers)

    assert post["postType"] == "tip"
    assert post["author"]["firstName"] == "Tunde"
    assert post["upvotes"] == 0
    assert post["isVerified"] is False

    refreshed = run_db(lambda session: session.get(User, user.id))
    assert refreshed.total_contributions == 1


def test_create_post_requires_auth(client):
    r = client.post("/community/posts", json={"postType": "tip", "title": "Hello", "content": "x"})

    assert r.status_code == 401


def test_create_post_validates_type(client, author):
    _, headers = author

    r = client.post(
        "/community/posts",
        json={"postType": "rant", "title": "Hello", "content": "x"},
        headers=headers,
    )

    assert r.status_code == 422


def test_list_posts_paginates_newest_first(client, author, create_post):
    _, headers = author
    for n in range(3):
        create_post(headers, title=f"Tip number {n}")
    create_post(headers, postType="general", title="Hello Lagos")

    r = client.get("/community/posts", params={"postType": "tip", "limit": 2})

    data = r.json()["data"]
    assert [p["title"] for p in data["posts"]] == ["Tip number 2", "Tip number 1"]
    assert data["pagination"] == {"page": 1, "limit": 2, "total": 3, "pages": 2}


def test_list_posts_by_location(client, author, create_post, make_location):
    _, headers = author
    yaba = make_location("Yaba", 6.5095, 3.3711)
    create_post(headers, locationId=str(yaba.id))
    create_post(headers)

    r = client.get("/community/posts", params={"locationId": str(yaba.id)})

    posts = r.json()["data"]["posts"]
    assert len(posts) == 1
    assert posts[0]["location"] == {"id": str(yaba.id), "name": "Yaba"}


def test_get_post_includes_comments(client, author, reader, create_post):
    _, author_headers = author
    _, reader_headers = reader
    post = create_post(author_headers)
    client.post(f"/community/posts/{post['id']}/comments", json={"content": "Thanks!"}, headers=reader_headers)

    r = client.get(f"/community/posts/{post['id']}")

    data = r.json()["data"]["post"]
    assert [c["content"] for c in data["comments"]] == ["Thanks!"]
    assert data["comments"][0]["author"]["firstName"] == "Ada"


def test_get_missing_post(client):
    r = client.get("/community/posts/00000000-0000-0000-0000-000000000000")

    assert r.status_code == 404
    assert r.json()["detail"] == "Post not found"


def test_update_own_post(client, author, create_post):
    _, headers = author
    post = create_post(headers)

    r = client.put(
        f"/community/posts/{post['id']}",
        json={"title": "Use the BRT lane early", "postType": "route_alert"},
        headers=headers,
    )

    updated = r.json()["data"]["post"]
    assert r.json()["message"] == "Post updated successfully"
    assert updated["title"] == "Use the BRT lane early"
    assert updated["postType"] == "route_alert"
    assert updated["content"] == post["content"]


def test_cannot_update_someone_elses_post(client, author, reader, create_post):
    post = create_post(author[1])

    r = client.put(f"/community/posts/{post['id']}", json={"title": "Hijacked"}, headers=reader[1])

    assert r.status_code == 403
    assert r.json()["detail"] == "You can only modify your own posts"


def test_delete_post_hides_it(client, author, reader, create_post):
    post = create_post(author[1])

    assert client.delete(f"/community/posts/{post['id']}", headers=reader[1]).status_code == 403
    r = client.delete(f"/community/posts/{post['id']}", headers=author[1])

    assert r.json() == {"success": True, "message": "Post deleted successfully"}
    assert client.get(f"/community/posts/{post['id']}").status_code == 404
    assert client.get("/community/posts").json()["data"]["posts"] == []


# ---------- votes ----------


def test_vote_toggle_and_switch(client, author, reader, create_post):
    post = create_post(author[1])
    url = f"/community/posts/{post['id']}/vote"
    headers = reader[1]

    up = client.post(url, json={"voteType": "up"}, headers=headers).json()["data"]
    assert up == {"upvotes": 1, "downvotes": 0, "userVote": "up"}

    switched = client.post(url, json={"voteType": "down"}, headers=headers).json()["data"]
    assert switched == {"upvotes": 0, "downvotes": 1, "userVote": "down"}

    removed = client.post(url, json={"voteType": "down"}, headers=headers).json()["data"]
    assert removed == {"upvotes": 0, "downvotes": 0, "userVote": None}


def test_votes_from_different_users_add_up(client, author, reader, create_post):
    post = create_post(author[1])
    url = f"/community/posts/{post['id']}/vote"

    client.post(url, json={"voteType": "up"}, headers=author[1])
    client.post(url, json={"voteType": "up"}, headers=reader[1])

    fetched = client.get(f"/community/posts/{post['id']}").json()["data"]["post"]
    assert fetched["upvotes"] == 2
    assert fetched["score"] == 2


def test_vote_tally_never_goes_negative(author, stored, run_db):
    post = stored(
        CommunityPost(
            author_id=author[0].id,
            post_type=PostType.TIP,
            title="Imported",
            content="Tally out of step with the vote rows",
            upvotes=0,
            downvotes=2,
        )
    )

    async def _withdraw(session):
        await bump_votes(session, CommunityPost, post.id, VoteType.UP, -1)
        await bump_votes(session, CommunityPost, post.id, VoteType.DOWN, 1)
        await session.commit()
        row = await session.get(CommunityPost, post.id)
        return row.upvotes, row.downvotes

    assert run_db(_withdraw) == (0, 3)


def test_comment_vote(client, author, reader, create_post):
    post = create_post(author[1])
    comment = client.post(
        f"/community/posts/{post['id']}/comments", json={"content": "Confirmed"}, headers=reader[1]
    ).json()["data"]["comment"]

    r = client.post(f"/community/comments/{comment['id']}/vote", json={"voteType": "up"}, headers=author[1])

    assert r.json()["data"]["upvotes"] == 1


def test_trending_ranks_by_net_votes(client, author, reader, create_post, stored):
    user, headers = author
    create_post(headers, title="Quiet tip")
    loved = create_post(headers, title="Loved tip")
    client.post(f"/community/posts/{loved['id']}/vote", json={"voteType": "up"}, headers=reader[1])
    stored(
        CommunityPost(
            author_id=user.id,
            post_type=PostType.TIP,
            title="Old news",
            content="From last month",
            upvotes=50,
            downvotes=0,
            created_at=utcnow() - timedelta(days=10),
        )
    )

    r = client.get("/community/feed/trending")

    titles = [p["title"] for p in r.json()["data"]["posts"]]
    assert titles == ["Loved tip", "Quiet tip"]


# ---------- comments ----------


def test_comment_notifies_post_author(client, author, reader, create_post, run_db):
    post = create_post(author[1])

    r = client.post(
        f"/community/posts/{post['id']}/comments", json={"content": "Still true today"}, headers=reader[1]
    )

    assert r.status_code == 201
    assert r.json()["message"] == "Comment added successfully"
    (notification,) = _notifications_for(run_db, author[0])
    assert notification.title == "New comment on your post"
    assert notification.body == "Ada commented: Still true today"


def test_commenting_on_own_post_does_not_notify(client, author, create_post, run_db):
    post = create_post(author[1])

    client.post(f"/community/posts/{post['id']}/comments", json={"content": "Update: still on"}, headers=author[1])

    assert _notifications_for(run_db, author[0]) == []


def test_list_comments_oldest_first(client, author, reader, create_post):
    post = create_post(author[1])
    for text in ("first", "second", "third"):
        client.post(f"/community/posts/{post['id']}/comments", json={"content": text}, headers=reader[1])

    r = client.get(f"/community/posts/{post['id']}/comments", params={"limit": 2, "page": 2})

    data = r.json()["data"]
    assert [c["content"] for c in data["comments"]] == ["third"]
    assert data["pagination"]["total"] == 3


def test_delete_comment_only_by_author(client, author, reader, create_post):
    post = create_post(author[1])
    comment = client.post(
        f"/community/posts/{post['id']}/comments", json={"content": "Mine"}, headers=reader[1]
    ).json()["data"]["comment"]

    denied = client.delete(f"/community/comments/{comment['id']}", headers=author[1])
    assert denied.status_code == 403
    assert denied.json()["detail"] == "You can only delete your own comments"

    r = client.delete(f"/community/comments/{comment['id']}", headers=reader[1])
    assert r.json()["message"] == "Comment deleted successfully"
    assert client.delete(f"/community/comments/{comment['id']}", headers=reader[1]).status_code == 404


# ---------- alerts ----------


def test_traffic_update_alerts_travellers_at_location(
    client, author, reader, make_user, create_post, make_location, stored, run_db
):
    oshodi = make_location("Oshodi", 6.5536, 3.3436)
    elsewhere = make_location("Ajah", 6.4698, 3.5852)
    rider, _ = reader
    bystander = make_user()
    for user, location in ((rider, oshodi), (bystander, elsewhere)):
        stored(
            ActiveTrip(
                user_id=user.id,
                start_location_id=location.id,
                current_lat=Decimal("6.5"),
                current_lng=Decimal("3.3"),
                status=TripStatus.IN_PROGRESS,
            )
        )

    create_post(
        author[1],
        postType="traffic_update",
        title="Gridlock under the bridge",
        content="Avoid Oshodi for the next hour",
        locationId=str(oshodi.id),
    )

    (alert,) = _notifications_for(run_db, rider)
    assert alert.title == "Traffic update: Gridlock under the bridge"
    assert alert.data["postType"] == "traffic_update"
    assert _notifications_for(run_db, bystander) == []
