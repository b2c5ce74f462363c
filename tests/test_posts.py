import io

from PIL import Image


async def create_post(client, headers, text="hello world", **kwargs):
    response = await client.post("/api/posts", data={"text": text}, headers=headers, **kwargs)
    return response


async def test_create_post(client, make_user, auth_headers):
    alice = await make_user("alice")

    response = await create_post(client, auth_headers(alice), "  hello world  ")

    assert response.status_code == 201
    post = response.json()["data"]
    assert post["text"] == "hello world"
    assert post["postedBy"]["username"] == "alice"
    assert post["likes"] == []
    assert post["comments"] == []
    assert post["hasPhoto"] is False


async def test_create_post_rejects_blank_text(client, make_user, auth_headers):
    alice = await make_user("alice")

    blank = await create_post(client, auth_headers(alice), "   ")
    too_long = await create_post(client, auth_headers(alice), "x" * 1001)

    assert blank.status_code == 400
    assert blank.json()["message"] == "Text is required"
    assert too_long.json()["message"] == "Text cannot exceed 1000 characters"


async def test_create_post_with_photo(client, make_user, auth_headers):
    alice = await make_user("alice")
    buffer = io.BytesIO()
    Image.new("RGB", (4, 4)).save(buffer, format="JPEG")

    response = await create_post(
        client, auth_headers(alice), "look", files={"photo": ("pic.jpg", buffer.getvalue(), "image/jpeg")}
    )
    post_id = response.json()["data"]["id"]
    photo = await client.get(f"/api/posts/{post_id}/photo")

    assert response.json()["data"]["hasPhoto"] is True
    assert photo.status_code == 200
    assert photo.headers["content-type"] == "image/jpeg"


async def test_like_unlike_scenario(client, make_user, auth_headers):
    alice = await make_user("alice")
    bob = await make_user("bob")
    post_id = (await create_post(client, auth_headers(alice))).json()["data"]["id"]

    liked = await client.put("/api/posts/like", json={"postId": post_id}, headers=auth_headers(bob))
    assert liked.status_code == 200
    assert liked.json()["data"]["likes"] == [bob.id]
    assert liked.json()["data"]["likeCount"] == 1

    unliked = await client.put("/api/posts/unlike", json={"postId": post_id}, headers=auth_headers(bob))
    assert unliked.status_code == 200
    assert unliked.json()["data"]["likes"] == []


async def test_second_like_does_not_double_count(client, make_user, auth_headers):
    alice = await make_user("alice")
    post_id = (await create_post(client, auth_headers(alice))).json()["data"]["id"]

    await client.put("/api/posts/like", json={"postId": post_id}, headers=auth_headers(alice))
    again = await client.put("/api/posts/like", json={"postId": post_id}, headers=auth_headers(alice))
    post = await client.get(f"/api/posts/{post_id}", headers=auth_headers(alice))

    assert again.status_code == 400
    assert again.json()["message"] == "Post already liked"
    assert post.json()["data"]["likes"] == [alice.id]


async def test_like_and_unlike_edge_cases(client, make_user, auth_headers):
    alice = await make_user("alice")
    post_id = (await create_post(client, auth_headers(alice))).json()["data"]["id"]

    missing = await client.put("/api/posts/like", json={"postId": 9999}, headers=auth_headers(alice))
    not_liked = await client.put("/api/posts/unlike", json={"postId": post_id}, headers=auth_headers(alice))
    malformed = await client.put("/api/posts/like", json={"postId": "abc"}, headers=auth_headers(alice))

    assert missing.status_code == 404
    assert missing.json()["message"] == "Post not found"
    assert not_liked.status_code == 400
    assert not_liked.json()["message"] == "Post not liked"
    assert malformed.status_code == 400


async def test_comments_and_their_deletion_rules(client, make_user, auth_headers):
    alice = await make_user("alice")
    bob = await make_user("bob")
    carol = await make_user("carol")
    post_id = (await create_post(client, auth_headers(alice))).json()["data"]["id"]

    blank = await client.put("/api/posts/comment", json={"postId": post_id, "text": "  "}, headers=auth_headers(bob))
    await client.put("/api/posts/comment", json={"postId": post_id, "text": "first"}, headers=auth_headers(bob))
    commented = await client.put(
        "/api/posts/comment", json={"postId": post_id, "text": "second"}, headers=auth_headers(carol)
    )
    comments = commented.json()["data"]["comments"]
    bob_comment, carol_comment = comments[0]["id"], comments[1]["id"]

    assert blank.status_code == 400
    assert blank.json()["message"] == "Comment text is required"
    assert [c["text"] for c in comments] == ["first", "second"]
    assert comments[0]["postedBy"]["username"] == "bob"

    # A commenter cannot remove someone else's comment
    forbidden = await client.put(
        "/api/posts/uncomment", json={"postId": post_id, "commentId": carol_comment}, headers=auth_headers(bob)
    )
    assert forbidden.status_code == 403
    assert forbidden.json()["message"] == "Not authorized to delete this comment"

    own = await client.put(
        "/api/posts/uncomment", json={"postId": post_id, "commentId": bob_comment}, headers=auth_headers(bob)
    )
    assert [c["text"] for c in own.json()["data"]["comments"]] == ["second"]

    # The post author may remove any comment on the post
    moderated = await client.put(
        "/api/posts/uncomment", json={"postId": post_id, "commentId": carol_comment}, headers=auth_headers(alice)
    )
    assert moderated.status_code == 200
    assert moderated.json()["data"]["comments"] == []

    missing = await client.put(
        "/api/posts/uncomment", json={"postId": post_id, "commentId": carol_comment}, headers=auth_headers(alice)
    )
    assert missing.status_code == 404
    assert missing.json()["message"] == "Comment not found"


async def test_only_author_deletes_post(client, make_user, auth_headers):
    alice = await make_user("alice")
    bob = await make_user("bob")
    post_id = (await create_post(client, auth_headers(alice))).json()["data"]["id"]
    await client.put("/api/posts/like", json={"postId": post_id}, headers=auth_headers(bob))
    await client.put("/api/posts/comment", json={"postId": post_id, "text": "nice"}, headers=auth_headers(bob))

    forbidden = await client.delete(f"/api/posts/{post_id}", headers=auth_headers(bob))
    deleted = await client.delete(f"/api/posts/{post_id}", headers=auth_headers(alice))
    fetched = await client.get(f"/api/posts/{post_id}", headers=auth_headers(alice))

    assert forbidden.status_code == 403
    assert forbidden.json()["message"] == "Not authorized to delete this post"
    assert deleted.json() == {"success": True, "message": "Post deleted successfully"}
    assert fetched.status_code == 404


async def test_feed_contains_own_and_followed_posts(client, make_user, auth_headers):
    alice = await make_user("alice")
    bob = await make_user("bob")
    carol = await make_user("carol")
    await create_post(client, auth_headers(alice), "from alice")
    await create_post(client, auth_headers(bob), "from bob")
    await create_post(client, auth_headers(carol), "from carol")
    await client.put("/api/users/follow", json={"followId": bob.id}, headers=auth_headers(alice))

    feed = await client.get("/api/posts/feed", headers=auth_headers(alice))
    page = await client.get("/api/posts?limit=1&page=2", headers=auth_headers(alice))

    assert feed.status_code == 200
    assert [p["text"] for p in feed.json()["data"]] == ["from bob", "from alice"]
    assert feed.json()["total"] == 2
    assert page.json()["count"] == 1
    assert page.json()["data"][0]["text"] == "from alice"
    assert page.json()["pagination"]["hasPrev"] is True


async def test_posts_by_user(client, make_user, auth_headers):
    alice = await make_user("alice")
    bob = await make_user("bob")
    await create_post(client, auth_headers(alice), "one")
    await create_post(client, auth_headers(alice), "two")
    await create_post(client, auth_headers(bob), "other")

    response = await client.get(f"/api/posts/by-user/{alice.id}", headers=auth_headers(bob))

    assert [p["text"] for p in response.json()["data"]] == ["two", "one"]
    assert response.json()["total"] == 2
