from datetime import datetime

import pytest
from bson import ObjectId

from sangh_api.controllers.sangh_post_controller import page_params
from sangh_api.db.mongo import sangh_posts_collection
from sangh_api.services.cache_service import post_key, sangh_posts_key


def _image(name="photo.jpg"):
    return ("media", (name, b"\xff" * 32, "image/jpeg"))


async def _create(client, sangh, user, auth, caption="Hello", files=None):
    return await client.post(
        f"/sangh/{sangh['_id']}/posts",
        data={"caption": caption},
        files=files,
        headers=auth(user),
    )


async def test_engagement_scenario(client, sangh, president, make_user, auth, notifier, emitted):
    u1 = president
    u2 = await make_user("Ravi")

    res = await _create(client, sangh, u1, auth)
    assert res.status_code == 201
    post = res.json()
    assert post["caption"] == "Hello"
    assert post["media"] == []
    assert post["like_count"] == 0
    assert post["posted_by_role"] == "president"
    assert post["author"]["full_name"] == "Asha User"
    assert post["sangh"]["name"] == "Jaipur City Sangh"
    pid = post["id"]

    res = await client.put(f"/sangh/posts/{pid}/like", headers=auth(u1))
    assert res.json() == {"is_liked": True, "like_count": 1}
    res = await client.put(f"/sangh/posts/{pid}/like", headers=auth(u1))
    assert res.json() == {"is_liked": False, "like_count": 0}

    res = await client.post(f"/sangh/posts/{pid}/comments", json={"text": "Nice"}, headers=auth(u2))
    assert res.status_code == 200
    body = res.json()
    assert body["comment_count"] == 1
    assert body["comment"]["text"] == "Nice"
    assert body["comment"]["user_id"] == str(u2["_id"])
    cid = body["comment"]["id"]

    res = await client.post(
        f"/sangh/posts/{pid}/comments/{cid}/replies", json={"text": "Thanks"}, headers=auth(u1)
    )
    assert res.status_code == 201
    assert res.json()["reply_count"] == 1

    res = await client.delete(f"/sangh/posts/{pid}", headers=auth(u2))
    assert res.status_code == 403
    assert res.json()["code"] == "forbidden"

    await notifier.drain()
    # own like is silent; comment goes to the post owner, reply to the comment author
    assert sorted((e[2]["type"], e[0]) for e in emitted.events) == [
        ("comment", str(u1["_id"])),
        ("reply", str(u2["_id"])),
    ]


async def test_create_requires_caption_or_media(client, sangh, president, auth):
    res = await _create(client, sangh, president, auth, caption="   ")
    assert res.status_code == 400
    assert res.json()["code"] == "validation_error"
    assert await sangh_posts_collection.count_documents({}) == 0


async def test_create_media_only_post(client, sangh, president, auth, cloud):
    res = await _create(client, sangh, president, auth, caption="", files=[_image("a.jpg"), _image("b.jpg")])
    assert res.status_code == 201
    media = res.json()["media"]
    assert len(media) == 2
    assert all(m["type"] == "image" for m in media)
    assert all(m["url"].startswith("https://cdn.example.org/image/upload/") for m in media)
    assert len(cloud.uploaded) == 2

    stored = await sangh_posts_collection.find_one({"_id": ObjectId(res.json()["id"])})
    # stored as returned by storage, rewritten only on the way out
    assert stored["media"][0]["url"].startswith("https://res.cloudinary.com/")


async def test_create_rejects_bad_media_type(client, sangh, president, auth, cloud):
    res = await _create(client, sangh, president, auth, files=[("media", ("a.gif", b"GIF89a", "image/gif"))])
    assert res.status_code == 400
    assert cloud.uploaded == []


async def test_only_office_bearers_post(client, sangh, make_user, auth):
    member = await make_user("Meera")
    res = await _create(client, sangh, member, auth)
    assert res.status_code == 403


async def test_admin_posts_as_superadmin(client, sangh, make_user, auth):
    admin = await make_user("Root", role="admin")
    res = await _create(client, sangh, admin, auth)
    assert res.status_code == 201
    assert res.json()["posted_by_role"] == "superadmin"


async def test_unknown_sangh(client, president, auth):
    res = await client.post(f"/sangh/{ObjectId()}/posts", data={"caption": "x"}, headers=auth(president))
    assert res.status_code == 404
    assert res.json()["code"] == "sangh_not_found"


async def test_auth_required(client, sangh):
    res = await client.post(f"/sangh/{sangh['_id']}/posts", data={"caption": "x"})
    assert res.status_code == 401
    assert res.json()["code"] == "unauthenticated"


async def test_invalid_post_id(client, president, auth):
    res = await client.put("/sangh/posts/not-an-id/like", headers=auth(president))
    assert res.status_code == 400
    assert res.json()["code"] == "validation_error"


async def test_cached_listing_survives_direct_insert_until_api_write(client, sangh, president, auth, cache):
    url = f"/sangh/{sangh['_id']}/posts?page=1&limit=10"
    await _create(client, sangh, president, auth, caption="first")

    first = await client.get(url, headers=auth(president))
    assert first.json()["pagination"]["total"] == 1
    assert await cache.client.exists(sangh_posts_key(str(sangh["_id"]), 1, 10)) == 1

    await sangh_posts_collection.insert_one({
        "sangh_id": str(sangh["_id"]),
        "posted_by_user_id": str(president["_id"]),
        "posted_by_role": "president",
        "caption": "sneaked in",
        "is_hidden": False,
    })
    again = await client.get(url, headers=auth(president))
    assert again.json() == first.json()

    await _create(client, sangh, president, auth, caption="second")
    fresh = await client.get(url, headers=auth(president))
    assert fresh.json()["pagination"]["total"] == 3


async def test_mutation_drops_single_post_entry(client, sangh, president, auth, cache):
    pid = (await _create(client, sangh, president, auth)).json()["id"]

    assert (await client.get(f"/sangh/posts/{pid}")).status_code == 200
    assert await cache.client.exists(post_key(pid)) == 1

    await client.put(f"/sangh/posts/{pid}/like", headers=auth(president))
    assert await cache.client.exists(post_key(pid)) == 0

    res = await client.get(f"/sangh/posts/{pid}")
    assert res.json()["like_count"] == 1


async def test_update_caption_and_append_media(client, sangh, president, auth, cloud):
    pid = (await _create(client, sangh, president, auth)).json()["id"]

    res = await client.put(
        f"/sangh/posts/{pid}",
        data={"caption": "Edited"},
        files=[_image()],
        headers=auth(president),
    )
    assert res.status_code == 200
    assert res.json()["caption"] == "Edited"
    assert len(res.json()["media"]) == 1


async def test_update_by_stranger_forbidden(client, sangh, president, make_user, auth):
    pid = (await _create(client, sangh, president, auth)).json()["id"]
    other = await make_user("Kiran")
    res = await client.put(f"/sangh/posts/{pid}", data={"caption": "mine now"}, headers=auth(other))
    assert res.status_code == 403


async def test_delete_removes_every_blob(client, sangh, president, auth, cloud):
    res = await _create(client, sangh, president, auth, files=[_image("a.jpg"), _image("b.jpg")])
    pid = res.json()["id"]

    res = await client.delete(f"/sangh/posts/{pid}", headers=auth(president))
    assert res.status_code == 200
    assert res.json()["failed_media"] == []
    assert sorted(cloud.destroyed) == sorted(cloud.uploaded)
    assert await sangh_posts_collection.count_documents({}) == 0
    assert (await client.get(f"/sangh/posts/{pid}")).status_code == 404


async def test_delete_goes_ahead_when_a_blob_fails(client, sangh, president, auth, cloud):
    res = await _create(client, sangh, president, auth, files=[_image("a.jpg"), _image("b.jpg")])
    pid = res.json()["id"]
    cloud.fail_destroy.add(cloud.uploaded[0])

    res = await client.delete(f"/sangh/posts/{pid}", headers=auth(president))
    assert res.status_code == 200
    assert len(res.json()["failed_media"]) == 1
    assert cloud.destroyed == [cloud.uploaded[1]]
    assert await sangh_posts_collection.count_documents({}) == 0


async def test_delete_single_media_item(client, sangh, president, auth, cloud):
    res = await _create(client, sangh, president, auth, files=[_image("a.jpg"), _image("b.jpg")])
    post = res.json()
    target = post["media"][0]

    res = await client.delete(f"/sangh/posts/{post['id']}/media/{target['id']}", headers=auth(president))
    assert res.status_code == 200
    remaining = res.json()["post"]["media"]
    assert [m["id"] for m in remaining] == [post["media"][1]["id"]]
    assert cloud.destroyed == [cloud.uploaded[0]]


async def test_media_reference_kept_when_blob_delete_fails(client, sangh, president, auth, cloud):
    res = await _create(client, sangh, president, auth, files=[_image()])
    post = res.json()
    cloud.fail_destroy.add(cloud.uploaded[0])

    res = await client.delete(
        f"/sangh/posts/{post['id']}/media/{post['media'][0]['id']}", headers=auth(president)
    )
    assert res.status_code == 500
    assert res.json()["code"] == "storage_error"
    stored = await sangh_posts_collection.find_one({"_id": ObjectId(post["id"])})
    assert len(stored["media"]) == 1


async def test_hidden_post_is_not_disclosed(client, sangh, president, make_user, auth):
    pid = (await _create(client, sangh, president, auth)).json()["id"]
    stranger = await make_user("Dev")

    res = await client.put(f"/sangh/posts/{pid}/hide", headers=auth(president))
    assert res.status_code == 200
    assert res.json()["post"]["is_hidden"] is True

    assert (await client.get(f"/sangh/posts/{pid}", headers=auth(stranger))).status_code == 404
    assert (await client.get(f"/sangh/posts/{pid}")).status_code == 404
    assert (await client.put(f"/sangh/posts/{pid}/like", headers=auth(stranger))).status_code == 404
    assert (await client.get(f"/sangh/posts/{pid}", headers=auth(president))).status_code == 200

    feed = await client.get("/sangh/posts/feed", headers=auth(stranger))
    assert feed.json()["posts"] == []

    await client.put(f"/sangh/posts/{pid}/unhide", headers=auth(president))
    assert (await client.get(f"/sangh/posts/{pid}", headers=auth(stranger))).status_code == 200


async def test_feed_pages_newest_first(client, sangh, president, auth):
    for minute, caption in enumerate(("one", "two", "three")):
        await sangh_posts_collection.insert_one({
            "sangh_id": str(sangh["_id"]),
            "posted_by_user_id": str(president["_id"]),
            "posted_by_role": "president",
            "caption": caption,
            "is_hidden": False,
            "created_at": datetime(2024, 1, 1, 12, minute),
        })

    res = await client.get("/sangh/posts/feed?page=1&limit=2", headers=auth(president))
    body = res.json()
    assert [p["caption"] for p in body["posts"]] == ["three", "two"]
    assert body["pagination"] == {"total": 3, "page": 1, "pages": 2}


async def test_paging_is_clamped(client, sangh, president, auth):
    await _create(client, sangh, president, auth)
    res = await client.get("/sangh/posts/feed?page=0&limit=500", headers=auth(president))
    assert res.status_code == 200
    assert res.json()["pagination"] == {"total": 1, "page": 1, "pages": 1}

    res = await client.get("/sangh/posts/feed?limit=abc", headers=auth(president))
    assert res.status_code == 400
    assert res.json()["code"] == "validation_error"


async def test_upper_case_ids_share_the_canonical_cache_entry(client, sangh, president, auth, cache):
    pid = (await _create(client, sangh, president, auth)).json()["id"]
    upper = pid.upper()

    assert (await client.get(f"/sangh/posts/{upper}")).json()["like_count"] == 0
    assert await cache.client.exists(post_key(pid)) == 1

    await client.put(f"/sangh/posts/{pid}/like", headers=auth(president))
    assert (await client.get(f"/sangh/posts/{upper}")).json()["like_count"] == 1

    listing = f"/sangh/{str(sangh['_id']).upper()}/posts?page=1&limit=10"
    assert (await client.get(listing, headers=auth(president))).json()["pagination"]["total"] == 1
    assert await cache.client.exists(sangh_posts_key(str(sangh["_id"]), 1, 10)) == 1

    await _create(client, sangh, president, auth, caption="second")
    assert (await client.get(listing, headers=auth(president))).json()["pagination"]["total"] == 2


async def _comment(client, pid, ids, headers):
    return await client.post(f"/sangh/posts/{pid}/comments", json={"text": "again"}, headers=headers)


async def _reply(client, pid, ids, headers):
    return await client.post(
        f"/sangh/posts/{pid}/comments/{ids['comment']}/replies", json={"text": "re"}, headers=headers
    )


async def _delete_comment(client, pid, ids, headers):
    return await client.delete(f"/sangh/posts/{pid}/comments/{ids['comment']}", headers=headers)


async def _hide(client, pid, ids, headers):
    return await client.put(f"/sangh/posts/{pid}/hide", headers=headers)


async def _unhide(client, pid, ids, headers):
    return await client.put(f"/sangh/posts/{pid}/unhide", headers=headers)


async def _update(client, pid, ids, headers):
    return await client.put(f"/sangh/posts/{pid}", data={"caption": "Edited"}, headers=headers)


async def _delete_media(client, pid, ids, headers):
    return await client.delete(f"/sangh/posts/{pid}/media/{ids['media']}", headers=headers)


async def _delete_post(client, pid, ids, headers):
    return await client.delete(f"/sangh/posts/{pid}", headers=headers)


@pytest.mark.parametrize(
    "mutate",
    [_comment, _reply, _delete_comment, _hide, _unhide, _update, _delete_media, _delete_post],
)
async def test_every_mutation_drops_single_post_entry(client, sangh, president, auth, cache, mutate):
    post = (await _create(client, sangh, president, auth, files=[_image()])).json()
    pid = post["id"]
    comment = await client.post(f"/sangh/posts/{pid}/comments", json={"text": "Nice"}, headers=auth(president))
    ids = {"comment": comment.json()["comment"]["id"], "media": post["media"][0]["id"]}

    assert (await client.get(f"/sangh/posts/{pid}")).status_code == 200
    assert await cache.client.exists(post_key(pid)) == 1

    res = await mutate(client, pid, ids, auth(president))
    assert res.status_code in (200, 201)
    assert await cache.client.exists(post_key(pid)) == 0


async def test_failed_insert_removes_uploaded_media(client, sangh, president, auth, cloud, monkeypatch):
    async def broken(*args, **kwargs):
        raise RuntimeError("write failed")

    monkeypatch.setattr(sangh_posts_collection, "insert_one", broken)
    with pytest.raises(RuntimeError):
        await _create(client, sangh, president, auth, files=[_image("a.jpg"), _image("b.jpg")])

    assert len(cloud.uploaded) == 2
    assert sorted(cloud.destroyed) == sorted(cloud.uploaded)


async def test_failed_update_removes_new_media(client, sangh, president, auth, cloud, monkeypatch):
    pid = (await _create(client, sangh, president, auth)).json()["id"]

    async def broken(*args, **kwargs):
        raise RuntimeError("write failed")

    monkeypatch.setattr(sangh_posts_collection, "update_one", broken)
    with pytest.raises(RuntimeError):
        await client.put(f"/sangh/posts/{pid}", data={"caption": "x"}, files=[_image()], headers=auth(president))

    assert len(cloud.uploaded) == 1
    assert cloud.destroyed == cloud.uploaded


@pytest.mark.parametrize(
    "page, limit, expected",
    [(None, None, (1, 10)), (0, 0, (1, 1)), (-3, 500, (1, 100)), (4, 25, (4, 25))],
)
def test_page_params_clamps(page, limit, expected):
    assert page_params(page, limit) == expected
