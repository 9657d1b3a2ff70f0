from datetime import datetime, timedelta, timezone
from typing import Optional, List, Dict, Any

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session, create_engine, select

from ahl_allah.db.models import User, StudentProfile, TutorProfile, OtpChallenge, RefreshToken
from ahl_allah.application.ports.user_repo import UserRepository
from ahl_allah.application.ports.otp_repo import OtpRepository
from ahl_allah.application.ports.refresh_token_repo import RefreshTokenRepository
from ahl_allah.application.ports.sms_sender import SmsSender
from ahl_allah.application.ports.mail_sender import MailSender
from ahl_allah.application.ports.audit_logger import AuditLogger
from ahl_allah.application.services.token_service import TokenService
from ahl_allah.application.services.passwords import PasswordHasher
from ahl_allah.application.services.otp_ledger import OtpLedger
from ahl_allah.application.services.auth_service import AuthService


class FakeClock:
    def __init__(self, now: Optional[datetime] = None):
        self.now = now or datetime.now(timezone.utc).replace(microsecond=0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakeSms(SmsSender):
    def __init__(self, ok: bool = True):
        self.ok = ok
        self.sent = []

    def send(self, to: str, message: str) -> bool:
        self.sent.append((to, message))
        return self.ok

    @property
    def last_code(self) -> str:
        # "Your verification code is NNNNNN. It expires in 5 minutes."
        return self.sent[-1][1].split("code is ")[1][:6]


class FakeMail(MailSender):
    def __init__(self, ok: bool = True):
        self.ok = ok
        self.sent = []

    def send(self, to: str, subject: str, html: str, text: Optional[str] = None) -> bool:
        self.sent.append((to, subject, html, text))
        return self.ok

    @property
    def last_code(self) -> str:
        return self.sent[-1][3].split("code is ")[1][:6]


class FakeAudit(AuditLogger):
    def __init__(self):
        self.entries = []

    def log(self, action, subject=None, user_id=None, request_id=None, ip_address=None, success=True, details=None):
        self.entries.append({"action": action, "user_id": user_id, "success": success, "details": details or {}})

    def actions(self, success: bool = True) -> List[str]:
        return [e["action"] for e in self.entries if e["success"] is success]


class FakeUserRepo(UserRepository):
    def __init__(self):
        self.users: Dict[str, User] = {}
        self.students: Dict[str, StudentProfile] = {}
        self.tutors: Dict[str, TutorProfile] = {}

    def get_by_id(self, user_id):
        return self.users.get(user_id)

    def get_by_email(self, email):
        return next((u for u in self.users.values() if u.email == email), None)

    def get_by_phone(self, phone):
        return next((u for u in self.users.values() if u.phone == phone), None)

    def get_by_provider(self, provider, provider_id):
        return next(
            (u for u in self.users.values() if u.provider == provider and u.provider_id == provider_id), None
        )

    def create(self, user):
        self.users[user.id] = user
        return user

    def create_with_profile(self, user, profile):
        self.users[user.id] = user
        profile.user_id = user.id
        if isinstance(profile, TutorProfile):
            self.tutors[user.id] = profile
        else:
            self.students[user.id] = profile
        return user

    def update(self, user, fields):
        for key, value in fields.items():
            setattr(user, key, value)
        return user

    def delete(self, user):
        self.users.pop(user.id, None)
        self.students.pop(user.id, None)
        self.tutors.pop(user.id, None)

    def list_by_role(self, role_id):
        return [u for u in self.users.values() if u.role_id == role_id]

    def get_student_profile(self, user_id):
        return self.students.get(user_id)

    def create_student_profile(self, profile):
        self.students[profile.user_id] = profile
        return profile

    def get_tutor_profile(self, user_id):
        return self.tutors.get(user_id)


class FakeOtpRepo(OtpRepository):
    def __init__(self):
        self.rows: List[OtpChallenge] = []

    def get_active(self, destination, for_update=False):
        live = [c for c in self.rows if c.destination == destination and not c.consumed]
        return live[-1] if live else None

    def create(self, challenge):
        for row in self.rows:
            if row.destination == challenge.destination:
                row.consumed = True
        challenge.id = len(self.rows) + 1
        self.rows.append(challenge)
        return challenge

    def save(self, challenge):
        return challenge


class FakeRefreshRepo(RefreshTokenRepository):
    def __init__(self):
        self.rows: Dict[str, RefreshToken] = {}

    def create(self, user_id, token_hash, expires_at):
        rec = RefreshToken(id=len(self.rows) + 1, user_id=user_id, token_hash=token_hash, expires_at=expires_at)
        self.rows[token_hash] = rec
        return rec

    def get_by_hash(self, token_hash):
        return self.rows.get(token_hash)

    def revoke(self, record, revoked_at):
        record.revoked = True
        record.revoked_at = revoked_at


# =========================
# Fixtures
# =========================
@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def audit():
    return FakeAudit()


@pytest.fixture
def sms():
    return FakeSms()


@pytest.fixture
def mail():
    return FakeMail()


@pytest.fixture
def passwords():
    # minimum bcrypt cost keeps the suite fast
    return PasswordHasher(rounds=4)


@pytest.fixture
def tokens(clock):
    return TokenService(
        secret_key="test-secret",
        algorithm="HS256",
        issuer="http://localhost:60772",
        audience="http://localhost:4200",
        expire_minutes=60,
        clock=clock,
    )


@pytest.fixture
def user_repo():
    return FakeUserRepo()


@pytest.fixture
def otp_repo():
    return FakeOtpRepo()


@pytest.fixture
def refresh_repo():
    return FakeRefreshRepo()


@pytest.fixture
def ledger(otp_repo, clock):
    return OtpLedger(repo=otp_repo, clock=clock)


@pytest.fixture
def auth_service(user_repo, refresh_repo, tokens, passwords, audit, clock):
    return AuthService(
        user_repo=user_repo,
        refresh_repo=refresh_repo,
        tokens=tokens,
        passwords=passwords,
        audit=audit,
        clock=clock,
    )


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def client(engine, clock, sms, mail, audit):
    from fastapi.testclient import TestClient

    from ahl_allah.main import app
    from ahl_allah.database import get_session
    from ahl_allah import dependencies

    def _session():
        with Session(engine) as s:
            yield s

    app.dependency_overrides[get_session] = _session
    app.dependency_overrides[dependencies.get_clock] = lambda: clock
    app.dependency_overrides[dependencies.get_sms_sender] = lambda: sms
    app.dependency_overrides[dependencies.get_mail_sender] = lambda: mail
    app.dependency_overrides[dependencies.get_audit_logger] = lambda: audit
    app.dependency_overrides[dependencies.get_password_hasher] = lambda: PasswordHasher(rounds=4)
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def db_user(engine):
    """Fetch a user row straight from the test database."""
    def _get(**filters) -> Optional[User]:
        with Session(engine) as s:
            stmt = select(User)
            for key, value in filters.items():
                stmt = stmt.where(getattr(User, key) == value)
            return s.exec(stmt).first()
    return _get


@pytest.fixture
def set_role(engine):
    def _set(user_id: str, role) -> None:
        with Session(engine) as s:
            user = s.get(User, user_id)
            user.role_id = int(role)
            s.add(user)
            s.commit()
    return _set
