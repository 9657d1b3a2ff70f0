from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from ahl_allah.db.models import User, StudentProfile, TutorProfile, OtpChallenge, RefreshToken, UserRole
from ahl_allah.infrastructure.persistence.sqlalchemy.repositories.user_repository_sql import SqlUserRepository
from ahl_allah.infrastructure.persistence.sqlalchemy.repositories.otp_repository_sql import SqlOtpRepository
from ahl_allah.infrastructure.persistence.sqlalchemy.repositories.refresh_token_repository_sql import SqlRefreshTokenRepository


def _challenge(destination="+15550001111", **kw):
    now = datetime.now(timezone.utc)
    data = dict(
        channel="phone",
        destination=destination,
        code_hash="x" * 64,
        purpose="login",
        expires_at=now + timedelta(minutes=5),
        last_sent_at=now,
        created_at=now,
    )
    data.update(kw)
    return OtpChallenge(**data)


def test_create_with_profile_links_rows(session):
    repo = SqlUserRepository(session)
    user = repo.create_with_profile(User(email="a@example.com", name="A"), StudentProfile(user_id=""))
    profile = repo.get_student_profile(user.id)
    assert profile is not None and profile.user_id == user.id


def test_registration_rolls_back_user_when_profile_fails(engine, session):
    repo = SqlUserRepository(session)
    broken = TutorProfile(user_id="", ejaza="x")  # summery is NOT NULL
    with pytest.raises(IntegrityError):
        repo.create_with_profile(User(email="t@example.com", name="T"), broken)

    with Session(engine) as fresh:
        assert fresh.exec(select(User).where(User.email == "t@example.com")).first() is None


def test_email_lookup_is_normalized(session):
    repo = SqlUserRepository(session)
    repo.create(User(email="mixed@example.com", name="M"))
    assert repo.get_by_email("  Mixed@Example.COM ") is not None


def test_unique_email_and_phone(session):
    repo = SqlUserRepository(session)
    repo.create(User(email="a@example.com", name="A", phone="+15550001111"))
    with pytest.raises(IntegrityError):
        repo.create(User(email="a@example.com", name="B"))
    with pytest.raises(IntegrityError):
        repo.create(User(email="c@example.com", name="C", phone="+15550001111"))


def test_phone_only_users_share_null_email(session):
    repo = SqlUserRepository(session)
    repo.create(User(name="P1", phone="+15550001111"))
    repo.create(User(name="P2", phone="+15550002222"))
    assert repo.get_by_phone("+15550002222").email is None


def test_delete_cascades_profiles_and_tokens(session):
    repo = SqlUserRepository(session)
    user = repo.create_with_profile(
        User(email="t@example.com", name="T", role_id=int(UserRole.PENDING_TUTOR)),
        TutorProfile(user_id="", summery="s", ejaza="e"),
    )
    SqlRefreshTokenRepository(session).create(user.id, "h" * 64, datetime.now(timezone.utc) + timedelta(days=1))
    repo.delete(user)
    assert repo.get_by_id(user.id) is None
    assert session.exec(select(TutorProfile)).all() == []
    assert session.exec(select(RefreshToken)).all() == []


def test_list_by_role(session):
    repo = SqlUserRepository(session)
    repo.create(User(email="a@example.com", name="A", role_id=int(UserRole.PENDING_TUTOR)))
    repo.create(User(email="b@example.com", name="B"))
    assert [u.email for u in repo.list_by_role(int(UserRole.PENDING_TUTOR))] == ["a@example.com"]


def test_otp_create_supersedes_older_rows(session):
    repo = SqlOtpRepository(session)
    first = repo.create(_challenge())
    second = repo.create(_challenge(purpose="link", created_at=datetime.now(timezone.utc) + timedelta(seconds=1)))
    session.refresh(first)
    assert first.consumed is True
    assert repo.get_active("+15550001111", for_update=True).id == second.id


def test_otp_get_active_ignores_other_destinations(session):
    repo = SqlOtpRepository(session)
    repo.create(_challenge())
    assert repo.get_active("+15559999999") is None


def test_refresh_token_revoke(session):
    repo = SqlRefreshTokenRepository(session)
    rec = repo.create("user-1", "a" * 64, datetime.now(timezone.utc) + timedelta(days=30))
    now = datetime.now(timezone.utc)
    repo.revoke(rec, now)
    stored = repo.get_by_hash("a" * 64)
    assert stored.revoked is True
    assert stored.revoked_at == now


def test_timestamps_come_back_timezone_aware(session):
    repo = SqlOtpRepository(session)
    created = repo.create(_challenge())
    session.expire_all()
    stored = repo.get_active("+15550001111")
    assert stored.expires_at.tzinfo is not None
    assert stored.expires_at == created.expires_at
    assert stored.expires_at > datetime.now(timezone.utc)
