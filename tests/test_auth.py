"""Tests for password hashing, tokens, registration and startup seeding."""

from datetime import datetime, timedelta, timezone

import jwt
import pytest
from sqlalchemy import func, select

from auth import (
    JWT_ALGORITHM,
    authenticate_user,
    change_password,
    create_token,
    decode_token,
    hash_password,
    register_user,
    update_profile,
    verify_password,
)
from config import Settings
from database import init_db
from errors import DuplicateUser, NotAuthenticated, ValidationError
from schemas import Pet, ShopProduct, User


def test_password_round_trip():
    hashed = hash_password("biscuit", rounds=4)
    assert hashed != "biscuit"
    assert verify_password("biscuit", hashed)
    assert not verify_password("Biscuit", hashed)
    assert not verify_password("biscuit", "not-a-bcrypt-hash")


class TestTokens:
    def test_round_trip(self, settings):
        assert decode_token(create_token(17, settings), settings) == 17

    def test_wrong_secret(self, settings):
        token = create_token(17, settings)
        other = Settings(jwt_secret="another-secret-that-is-long-enough-999")
        assert decode_token(token, other) is None

    def test_expired(self, settings):
        token = jwt.encode(
            {"id": 17, "exp": datetime.now(timezone.utc) - timedelta(minutes=1)},
            settings.jwt_secret, algorithm=JWT_ALGORITHM,
        )
        assert decode_token(token, settings) is None

    def test_non_integer_subject(self, settings):
        token = jwt.encode({"id": "17"}, settings.jwt_secret, algorithm=JWT_ALGORITHM)
        assert decode_token(token, settings) is None


class TestRegistration:
    def test_register_and_login(self, db, settings):
        user, token = register_user(db, settings, "meera", "meera@example.com",
                                    "purrfect", "Meera Iyer", phone="9876543210")
        assert user.id is not None
        assert user.role == "user"
        assert decode_token(token, settings) == user.id

        logged_in, _ = authenticate_user(db, settings, "meera@example.com", "purrfect")
        assert logged_in.id == user.id

    @pytest.mark.parametrize("username,email", [
        ("meera", "other@example.com"),
        ("other", "meera@example.com"),
    ])
    def test_duplicate(self, db, settings, username, email):
        register_user(db, settings, "meera", "meera@example.com", "purrfect", "Meera Iyer")
        with pytest.raises(DuplicateUser):
            register_user(db, settings, username, email, "purrfect", "Someone")

    def test_unknown_email(self, db, settings):
        with pytest.raises(NotAuthenticated):
            authenticate_user(db, settings, "ghost@example.com", "whatever")


class TestInitDb:
    def test_seeds_once(self, engine, db, settings):
        init_db(engine, settings)
        init_db(engine, settings)

        admins = db.scalars(select(User).where(User.role == "admin")).all()
        assert [a.email for a in admins] == [settings.admin_email]
        assert verify_password(settings.admin_password, admins[0].password_hash)

        pets = db.scalar(select(func.count()).select_from(Pet))
        products = db.scalar(select(func.count()).select_from(ShopProduct))
        assert pets > 0
        assert products > 0
        init_db(engine, settings)
        assert db.scalar(select(func.count()).select_from(Pet)) == pets

    def test_without_sample_data(self, engine, db, settings):
        settings.seed_sample_data = False
        init_db(engine, settings)
        assert db.scalar(select(func.count()).select_from(Pet)) == 0
        assert db.scalar(select(func.count()).select_from(User)) == 1


class TestAccount:
    def test_update_profile_ignores_role(self, db, make_user):
        user = make_user()
        update_profile(db, user, full_name="Asha Rao", phone=None, role="admin")

        db.expire_all()
        stored = db.get(User, user.id)
        assert stored.full_name == "Asha Rao"
        assert stored.phone is None
        assert stored.role == "user"

    def test_change_password(self, db, settings, make_user):
        user = make_user(password="old-secret")
        change_password(db, settings, user, "old-secret", "new-secret")

        authenticate_user(db, settings, user.email, "new-secret")
        with pytest.raises(NotAuthenticated):
            authenticate_user(db, settings, user.email, "old-secret")

    def test_change_password_wrong_current(self, db, settings, make_user):
        user = make_user(password="old-secret")
        with pytest.raises(ValidationError, match="Current password is incorrect"):
            change_password(db, settings, user, "guess", "new-secret")
