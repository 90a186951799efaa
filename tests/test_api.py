"""
End-to-end tests through the HTTP API

Every response carries the envelope: ``message``/``status`` on success,
``error``/``status`` (plus ``details`` for field and upload errors) on failure.
"""

import pytest
from bson import ObjectId

from app.config.settings import settings
from helpers import MP4_BYTES, PNG_BYTES, TEXT_BYTES, auth_header

LISTING_FORM = {
    "title": "Fjord cabin",
    "description": "Quiet cabin by the water",
    "price_per_night": "120",
    "bedrooms": "2",
    "guests": "4",
    "country": "Norway",
    "country_code": "NO",
    "category": "cabin",
}

POST_FORM = {"text": "Sunset", "hashtags": "#sea, #sky", "music": "Waves", "location": "Lisbon"}


def png_file(name="cabin.png"):
    return {"image": (name, PNG_BYTES, "image/png")}


# ========== Registration & verification ==========

class TestRegistration:

    def test_register_verify_and_duplicate(self, client, register, notifier, drain):
        response = register(name="Ana", email="ana@x.com", password="secret1234")

        assert response.status_code == 201
        body = response.json()
        assert body["status"] == 201
        assert "verification" in body["message"]
        assert "password" not in body["user"]
        assert "verification_token" not in body["user"]
        assert body["user"]["status"] == "unverified"

        drain()
        kind, address, token = notifier.last("verification")
        assert address == "ana@x.com"

        verified = client.get(f"/v1/auth/verify/{token}")
        assert verified.status_code == 200
        assert verified.json()["token"]
        assert verified.json()["user"]["is_verified"] is True

        duplicate = register(name="Ana", email="ana@x.com", password="secret1234")
        assert duplicate.status_code == 400
        assert duplicate.json()["status"] == 400
        assert "already registered" in duplicate.json()["error"]

    def test_avatar_is_served_byte_identical(self, client, register):
        user = register().json()["user"]
        stored = client.get(f"/uploads/{user['avatar']['location']}")
        assert stored.status_code == 200
        assert stored.content == PNG_BYTES

    def test_verification_token_works_once(self, client, register, notifier, drain):
        register()
        drain()
        _, _, token = notifier.last("verification")

        assert client.get(f"/v1/auth/verify/{token}").status_code == 200
        again = client.get(f"/v1/auth/verify/{token}")
        assert again.status_code == 400
        assert again.json()["error"] == "Invalid or expired verification token"

    def test_field_errors_are_itemized(self, client, png_bytes):
        response = client.post(
            "/v1/auth/register",
            data={"email": "nope", "password": "short"},
            files={"avatar": ("a.png", png_bytes, "image/png")},
        )
        body = response.json()
        assert response.status_code == 400
        assert body["error"] == "Validation failed"
        assert body["details"] == {
            "name": "name is required",
            "email": "Invalid email format",
            "password": "password is too short",
        }

    def test_disguised_text_avatar_is_rejected(self, client, register, store):
        response = register(avatar=("avatar.png", TEXT_BYTES, "image/png"))
        assert response.status_code == 400
        assert response.json()["details"] == {"reason": "bad-sniffed-type"}
        assert store.accounts.documents == {}

    def test_missing_avatar_is_rejected(self, client, store):
        response = client.post(
            "/v1/auth/register", data={"name": "Ana", "email": "ana@x.com", "password": "secret1234"}
        )
        assert response.status_code == 400
        assert response.json()["details"] == {"reason": "missing-file"}
        assert store.accounts.documents == {}


# ========== Login & password reset ==========

class TestLogin:

    def test_unverified_account_cannot_log_in(self, client, register):
        register()
        response = client.post("/v1/auth/login", json={"email": "ana@x.com", "password": "secret1234"})
        assert response.status_code == 403

    def test_login_with_wrong_password(self, client, verified_account):
        verified_account()
        response = client.post("/v1/auth/login", json={"email": "ana@x.com", "password": "wrong-password"})
        assert response.status_code == 401
        assert response.json() == {"error": "Invalid email or password", "status": 401}

    def test_login_returns_credential(self, client, verified_account):
        verified_account()
        response = client.post("/v1/auth/login", json={"email": "Ana@x.com", "password": "secret1234"})
        assert response.status_code == 200
        token = response.json()["token"]
        me = client.get("/v1/accounts/me", headers=auth_header(token))
        assert me.json()["user"]["email"] == "ana@x.com"

    def test_malformed_login_body_is_itemized(self, client):
        response = client.post("/v1/auth/login", json={"email": "ana@x.com"})
        assert response.status_code == 400
        assert response.json()["details"] == {"password": "password is required"}

    def test_password_reset_flow(self, client, verified_account, notifier, drain):
        verified_account()

        response = client.post("/v1/auth/forgot-password", json={"email": "ana@x.com"})
        assert response.status_code == 200
        drain()
        _, address, reset_token = notifier.last("password-reset")
        assert address == "ana@x.com"

        reset = client.post(f"/v1/auth/reset-password/{reset_token}", json={"password": "brand-new-pass"})
        assert reset.status_code == 200

        old = client.post("/v1/auth/login", json={"email": "ana@x.com", "password": "secret1234"})
        new = client.post("/v1/auth/login", json={"email": "ana@x.com", "password": "brand-new-pass"})
        assert old.status_code == 401
        assert new.status_code == 200

        reused = client.post(f"/v1/auth/reset-password/{reset_token}", json={"password": "another-pass"})
        assert reused.status_code == 400

    def test_forgot_password_for_unknown_email_looks_the_same(self, client, notifier, drain):
        response = client.post("/v1/auth/forgot-password", json={"email": "ghost@x.com"})
        drain()
        assert response.status_code == 200
        assert notifier.last("password-reset") is None


# ========== Authentication ==========

class TestAuthentication:

    def test_create_requires_bearer_credential(self, client):
        response = client.post("/v1/listings", data=LISTING_FORM, files=png_file())
        assert response.status_code == 401
        assert response.json()["error"] == "Authorization header is required"

    def test_forged_credential_is_rejected(self, client):
        response = client.get("/v1/accounts/me", headers=auth_header("not.a.token"))
        assert response.status_code == 401

    def test_credential_of_deleted_account_stops_working(self, client, verified_account):
        token, user = verified_account()
        assert client.delete(f"/v1/accounts/{user['id']}", headers=auth_header(token)).status_code == 200
        assert client.get("/v1/accounts/me", headers=auth_header(token)).status_code == 401


# ========== Accounts ==========

class TestAccounts:

    def test_update_profile_replaces_avatar(self, client, verified_account, storage, drain):
        token, user = verified_account()
        old_location = user["avatar"]["location"]

        response = client.patch(
            "/v1/accounts/me",
            data={"bio": "Loves <b>fjords</b>"},
            files={"avatar": ("new.png", PNG_BYTES, "image/png")},
            headers=auth_header(token),
        )
        drain()

        assert response.status_code == 200
        updated = response.json()["user"]
        assert updated["bio"] == "Loves &lt;b&gt;fjords&lt;/b&gt;"
        assert updated["avatar"]["location"] != old_location
        assert client.get(f"/uploads/{old_location}").status_code == 404

    def test_cannot_delete_someone_else(self, client, verified_account):
        token, _ = verified_account(email="ana@x.com")
        _, ben = verified_account(email="ben@x.com", name="Ben")
        response = client.delete(f"/v1/accounts/{ben['id']}", headers=auth_header(token))
        assert response.status_code == 403

    def test_delete_cascades_to_owned_entities(self, client, verified_account, store, drain):
        token, user = verified_account()
        headers = auth_header(token)
        client.post("/v1/listings", data=LISTING_FORM, files=png_file(), headers=headers)
        client.post("/v1/posts", data=POST_FORM, files={"video": ("s.mp4", MP4_BYTES, "video/mp4")}, headers=headers)
        client.post("/v1/groups", data={"name": "Hikers", "description": "Trips"}, headers=headers)

        response = client.delete(f"/v1/accounts/{user['id']}", headers=headers)
        drain()

        assert response.json()["deleted"] == {"listings": 1, "posts": 1, "groups": 1, "accounts": 1}
        assert store.listings.documents == {}
        assert store.posts.documents == {}
        assert store.groups.documents == {}


# ========== Listings ==========

class TestListings:

    def test_crud_round(self, client, verified_account, drain):
        token, user = verified_account()
        headers = auth_header(token)

        created = client.post("/v1/listings", data=LISTING_FORM, files=png_file(), headers=headers)
        assert created.status_code == 201
        listing = created.json()["data"]
        assert listing["owner_id"] == user["id"]
        assert listing["price_per_night"] == 120

        fetched = client.get(f"/v1/listings/{listing['id']}")
        assert fetched.json()["data"]["title"] == "Fjord cabin"

        owned = client.get("/v1/listings", params={"owner_id": user["id"]})
        assert [item["id"] for item in owned.json()["data"]] == [listing["id"]]

        updated = client.patch(f"/v1/listings/{listing['id']}", data={"guests": "6"}, headers=headers)
        assert updated.status_code == 200
        assert updated.json()["data"]["guests"] == 6
        assert updated.json()["data"]["image"] == listing["image"]

        deleted = client.delete(f"/v1/listings/{listing['id']}", headers=headers)
        drain()
        assert deleted.status_code == 200
        assert client.get(f"/v1/listings/{listing['id']}").status_code == 404
        assert client.get(f"/uploads/{listing['image']['location']}").status_code == 404

    def test_other_accounts_cannot_modify(self, client, verified_account):
        ana_token, _ = verified_account(email="ana@x.com")
        ben_token, _ = verified_account(email="ben@x.com", name="Ben")
        listing = client.post(
            "/v1/listings", data=LISTING_FORM, files=png_file(), headers=auth_header(ana_token)
        ).json()["data"]

        update = client.patch(f"/v1/listings/{listing['id']}", data={"guests": "1"}, headers=auth_header(ben_token))
        delete = client.delete(f"/v1/listings/{listing['id']}", headers=auth_header(ben_token))

        assert update.status_code == 403
        assert delete.status_code == 403

    def test_invalid_listing_id(self, client):
        response = client.get("/v1/listings/not-an-id")
        assert response.status_code == 400

    def test_unknown_listing(self, client):
        response = client.get(f"/v1/listings/{ObjectId()}")
        assert response.status_code == 404
        assert response.json()["status"] == 404


# ========== Posts ==========

class TestPosts:

    def test_private_posts_are_visible_to_their_owner_only(self, client, verified_account):
        ana_token, _ = verified_account(email="ana@x.com")
        ben_token, _ = verified_account(email="ben@x.com", name="Ben")
        video = {"video": ("s.mp4", MP4_BYTES, "video/mp4")}

        public = client.post("/v1/posts", data=POST_FORM, files=video, headers=auth_header(ana_token))
        private = client.post(
            "/v1/posts", data=dict(POST_FORM, is_private="true"), files=video, headers=auth_header(ana_token)
        )
        assert public.status_code == 201
        assert private.json()["post"]["hashtags"] == ["sea", "sky"]

        anonymous = [post["id"] for post in client.get("/v1/posts").json()["posts"]]
        owner = [post["id"] for post in client.get("/v1/posts", headers=auth_header(ana_token)).json()["posts"]]
        other = [post["id"] for post in client.get("/v1/posts", headers=auth_header(ben_token)).json()["posts"]]

        assert anonymous == [public.json()["post"]["id"]]
        assert set(owner) == {public.json()["post"]["id"], private.json()["post"]["id"]}
        assert other == anonymous

    def test_update_is_json_and_owner_only(self, client, verified_account):
        token, _ = verified_account()
        post = client.post(
            "/v1/posts", data=POST_FORM, files={"video": ("s.mp4", MP4_BYTES, "video/mp4")},
            headers=auth_header(token),
        ).json()["post"]

        response = client.patch(f"/v1/posts/{post['id']}", json={"text": "Golden hour"}, headers=auth_header(token))
        assert response.status_code == 200
        assert response.json()["post"]["text"] == "Golden hour"
        assert response.json()["post"]["video"] == post["video"]

    def test_image_is_not_accepted_as_video(self, client, verified_account):
        token, _ = verified_account()
        response = client.post(
            "/v1/posts", data=POST_FORM, files={"video": ("s.mp4", PNG_BYTES, "video/mp4")},
            headers=auth_header(token),
        )
        assert response.status_code == 400
        assert response.json()["details"] == {"reason": "bad-sniffed-type"}


# ========== Size ceiling ==========

class TestOversizeVideo:

    @pytest.fixture
    def app_settings(self):
        return settings.model_copy(update={"VIDEO_MAX_MB": 1})

    def test_oversize_video_creates_no_post(self, client, verified_account, store):
        token, _ = verified_account()
        big = MP4_BYTES + b"\x00" * (1024 * 1024)

        response = client.post(
            "/v1/posts", data=POST_FORM, files={"video": ("big.mp4", big, "video/mp4")},
            headers=auth_header(token),
        )

        assert response.status_code == 400
        assert response.json()["details"] == {"reason": "oversize"}
        assert client.get("/v1/posts", headers=auth_header(token)).json()["posts"] == []
        assert store.posts.documents == {}


# ========== Groups ==========

class TestGroups:

    def test_group_without_image(self, client, verified_account):
        token, user = verified_account()
        response = client.post("/v1/groups", data={"name": "Hikers", "description": "Trips"}, headers=auth_header(token))
        assert response.status_code == 201
        group = response.json()["group"]
        assert group["image"] is None
        assert group["members"] == [user["id"]]

    def test_group_image_can_be_added_later(self, client, verified_account):
        token, _ = verified_account()
        group = client.post(
            "/v1/groups", data={"name": "Hikers", "description": "Trips"}, headers=auth_header(token)
        ).json()["group"]

        response = client.patch(f"/v1/groups/{group['id']}", files=png_file("cover.png"), headers=auth_header(token))
        assert response.status_code == 200
        assert response.json()["group"]["image"]["location"].startswith("images/")


# ========== Uploads admin ==========

class TestUploadCleanup:

    def test_requires_admin_role(self, client, verified_account):
        token, _ = verified_account()
        response = client.post("/v1/uploads/cleanup", headers=auth_header(token))
        assert response.status_code == 403

    def test_admin_sweep_keeps_referenced_files(self, client, verified_account, store):
        token, user = verified_account()
        store.accounts.update_fields(user["id"], {"roles": ["user", "admin"]})

        response = client.post("/v1/uploads/cleanup", headers=auth_header(token))

        assert response.status_code == 200
        assert response.json()["deleted"] == 0
        assert client.get(f"/uploads/{user['avatar']['location']}").status_code == 200


# ========== Unexpected failures ==========

class TestUnexpectedErrors:

    @staticmethod
    def _explode(*args, **kwargs):
        raise RuntimeError("connection pool exhausted")

    def test_read_handlers_answer_with_the_envelope(self, client, monkeypatch):
        monkeypatch.setattr("routes.v1.listings.get_listing", self._explode)
        monkeypatch.setattr("routes.v1.groups.list_groups", self._explode)

        for path in (f"/v1/listings/{ObjectId()}", "/v1/groups"):
            response = client.get(path)
            assert response.status_code == 500
            assert response.json() == {"error": "Internal server error", "status": 500}

    def test_login_failure_answers_with_the_envelope(self, client, monkeypatch):
        monkeypatch.setattr("routes.v1.auth.login", self._explode)
        response = client.post("/v1/auth/login", json={"email": "ana@x.com", "password": "secret1234"})
        assert response.status_code == 500
        assert response.json()["error"] == "Internal server error"


def test_root(client):
    assert client.get("/").json() == {"message": "Welcome to Vitrine API", "status": 200}
