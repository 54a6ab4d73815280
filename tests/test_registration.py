"""
tests/test_registration.py -- Invitation, hash validation and registration routes.

Coverage:
  - POST /auth/invite: 204 + mail sent + invitation stored; 400 on bad/taken email
  - GET /auth/register/{hash}: 204 for an open invitation, 403 otherwise
  - POST /auth/register/{hash}: 204, user created with default role, invitation
    consumed, user cache cleared; 403 on hash/email mismatch; 400 on taken email
  - Passwords: over 72 UTF-8 bytes -> 400; surrounding whitespace is preserved
  - End-to-end: invite -> validate -> register -> sign in -> hash no longer valid
"""

from __future__ import annotations

import uuid

import pytest

INVITE = "/api/v1/auth/invite"
REGISTER = "/api/v1/auth/register/{hash}"
SIGNIN = "/api/v1/auth/signin"


class TestCreateInvitation:
    def test_invitation_is_stored_and_mailed(self, client, mailer, invitation_store) -> None:
        resp = client.post(INVITE, json={"email": "new@acme.io"})
        assert resp.status_code == 204
        assert resp.content == b""

        mailer.send_user_invitation.assert_called_once()
        email, hash = mailer.send_user_invitation.call_args.args
        assert email == "new@acme.io"
        assert str(uuid.UUID(hash)) == hash

        stored = invitation_store.read_user_invitation({"hash": hash})
        assert stored is not None
        assert stored.email == "new@acme.io"

    def test_each_invitation_gets_a_fresh_hash(self, invite) -> None:
        assert invite("one@acme.io") != invite("one@acme.io")

    @pytest.mark.parametrize("email", ["", "not-an-email", "a@", "@acme.io", "two@@acme.io"])
    def test_invalid_email_rejected(self, client, mailer, email) -> None:
        resp = client.post(INVITE, json={"email": email})
        assert resp.status_code == 400
        assert resp.json() == {"status": 400, "error": "Invalid request"}
        mailer.send_user_invitation.assert_not_called()

    def test_missing_email_rejected(self, client) -> None:
        resp = client.post(INVITE, json={})
        assert resp.status_code == 400

    def test_registered_email_rejected(self, client, make_user, mailer) -> None:
        make_user("taken@acme.io")
        resp = client.post(INVITE, json={"email": "taken@acme.io"})
        assert resp.status_code == 400
        assert resp.json() == {"status": 400, "error": "Email is already taken"}
        mailer.send_user_invitation.assert_not_called()

    def test_inactive_registered_email_also_rejected(self, client, make_user) -> None:
        make_user("sleeper@acme.io", active=False)
        resp = client.post(INVITE, json={"email": "sleeper@acme.io"})
        assert resp.status_code == 400
        assert resp.json()["error"] == "Email is already taken"


class TestValidateHash:
    def test_open_invitation_is_valid(self, client, invite) -> None:
        hash = invite("val@acme.io")
        resp = client.get(REGISTER.format(hash=hash))
        assert resp.status_code == 204
        assert resp.content == b""

    def test_unknown_hash_is_forbidden(self, client) -> None:
        resp = client.get(REGISTER.format(hash=str(uuid.uuid4())))
        assert resp.status_code == 403
        assert resp.json() == {"status": 403, "error": "Invalid hash"}


class TestRegister:
    def _register(self, client, hash: str, **user):
        return client.post(REGISTER.format(hash=hash), json={"user": user})

    def test_registration_creates_user_and_consumes_invitation(
        self, client, invite, user_store, invitation_store
    ) -> None:
        hash = invite("grace@acme.io")
        resp = self._register(
            client, hash, email="grace@acme.io", password="pw-grace", firstname="Grace", lastname="Hopper"
        )
        assert resp.status_code == 204, resp.text

        user = user_store.read({"email": "grace@acme.io"})
        assert user is not None
        assert user.firstname == "Grace"
        assert user.lastname == "Hopper"
        assert user.active is True
        assert user.role is not None and (user.role.id, user.role.name) == (1, "User")
        assert user.password != "pw-grace"

        assert invitation_store.read_user_invitation({"hash": hash}) is None

    def test_unknown_fields_are_ignored(self, client, invite, user_store) -> None:
        hash = invite("extra@acme.io")
        resp = self._register(client, hash, email="extra@acme.io", password="pw", is_admin=True, role="Admin")
        assert resp.status_code == 204
        assert user_store.read({"email": "extra@acme.io"}).role.name == "User"

    def test_hash_for_other_email_is_forbidden(self, client, invite, user_store) -> None:
        hash = invite("invited@acme.io")
        resp = self._register(client, hash, email="intruder@acme.io", password="pw")
        assert resp.status_code == 403
        assert resp.json() == {"status": 403, "error": "Invalid hash"}
        assert user_store.read({"email": "intruder@acme.io"}) is None

    def test_second_registration_with_same_hash_is_forbidden(self, client, invite) -> None:
        hash = invite("twice@acme.io")
        assert self._register(client, hash, email="twice@acme.io", password="pw").status_code == 204
        second = self._register(client, hash, email="twice@acme.io", password="pw")
        assert second.status_code == 403

    def test_taken_email_rejected_even_with_valid_invitation(
        self, client, invite, make_user, invitation_store
    ) -> None:
        hash = invite("race@acme.io")
        make_user("race@acme.io")
        resp = self._register(client, hash, email="race@acme.io", password="pw")
        assert resp.status_code == 400
        assert resp.json() == {"status": 400, "error": "Email is already taken"}
        assert invitation_store.read_user_invitation({"hash": hash}) is not None

    def test_missing_user_payload(self, client, invite) -> None:
        hash = invite("nobody@acme.io")
        resp = client.post(REGISTER.format(hash=hash), json={})
        assert resp.status_code == 400
        assert resp.json()["error"] == "Invalid request"

    def test_missing_email(self, client, invite) -> None:
        hash = invite("noemail@acme.io")
        resp = self._register(client, hash, password="pw")
        assert resp.status_code == 400

    def test_missing_password(self, client, invite, user_store) -> None:
        hash = invite("nopw@acme.io")
        resp = self._register(client, hash, email="nopw@acme.io")
        assert resp.status_code == 400
        assert user_store.read({"email": "nopw@acme.io"}) is None

    def test_registration_clears_user_cache(self, client, invite, cache) -> None:
        cache.set("user", [{"id": 999, "email": "stale@acme.io", "active": True}])
        hash = invite("fresh@acme.io")
        assert self._register(client, hash, email="fresh@acme.io", password="pw").status_code == 204
        assert cache.get("user") is None

    def test_password_over_72_bytes_rejected(self, client, invite, user_store, invitation_store) -> None:
        hash = invite("long@acme.io")
        resp = self._register(client, hash, email="long@acme.io", password="x" * 100)
        assert resp.status_code == 400
        assert resp.json() == {"status": 400, "error": "Invalid request"}
        assert user_store.read({"email": "long@acme.io"}) is None
        assert invitation_store.read_user_invitation({"hash": hash}) is not None

    def test_password_limit_counts_utf8_bytes(self, client, invite) -> None:
        hash = invite("utf8@acme.io")
        # 37 two-byte characters: 37 chars, 74 bytes
        resp = self._register(client, hash, email="utf8@acme.io", password="é" * 37)
        assert resp.status_code == 400

    def test_password_of_exactly_72_bytes_accepted(self, client, invite) -> None:
        hash = invite("edge@acme.io")
        password = "y" * 72
        assert self._register(client, hash, email="edge@acme.io", password=password).status_code == 204
        signin = client.post(SIGNIN, json={"user": {"email": "edge@acme.io", "password": password}})
        assert signin.status_code == 200

    def test_password_whitespace_is_kept(self, client, invite) -> None:
        hash = invite("ws@acme.io")
        resp = self._register(client, hash, email="  ws@acme.io ", password="  p1  ")
        assert resp.status_code == 204

        stripped = client.post(SIGNIN, json={"user": {"email": "ws@acme.io", "password": "p1"}})
        assert stripped.status_code == 401
        exact = client.post(SIGNIN, json={"user": {"email": " ws@acme.io", "password": "  p1  "}})
        assert exact.status_code == 200

    def test_whitespace_only_password_accepted(self, client, invite) -> None:
        hash = invite("blank@acme.io")
        assert self._register(client, hash, email="blank@acme.io", password="   ").status_code == 204
        signin = client.post(SIGNIN, json={"user": {"email": "blank@acme.io", "password": "   "}})
        assert signin.status_code == 200


class TestEndToEnd:
    def test_invite_validate_register_signin(self, client, mailer) -> None:
        assert client.post(INVITE, json={"email": "a@x.com"}).status_code == 204
        hash = mailer.send_user_invitation.call_args.args[1]

        assert client.get(REGISTER.format(hash=hash)).status_code == 204

        resp = client.post(REGISTER.format(hash=hash), json={"user": {"email": "a@x.com", "password": "p1"}})
        assert resp.status_code == 204

        signin = client.post(SIGNIN, json={"user": {"email": "a@x.com", "password": "p1"}})
        assert signin.status_code == 200
        assert signin.json()["data"]["token"]

        assert client.get(REGISTER.format(hash=hash)).status_code == 403
