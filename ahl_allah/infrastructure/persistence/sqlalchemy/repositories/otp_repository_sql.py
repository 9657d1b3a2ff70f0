from typing import Optional
from sqlmodel import Session, select

from .....db.models import OtpChallenge
from .....application.ports.otp_repo import OtpRepository


class SqlOtpRepository(OtpRepository):
    def __init__(self, session: Session):
        self.session = session

    def get_active(self, destination: str, for_update: bool = False) -> Optional[OtpChallenge]:
        stmt = (
            select(OtpChallenge)
            .where(OtpChallenge.destination == destination, OtpChallenge.consumed == False)  # noqa: E712
            .order_by(OtpChallenge.created_at.desc(), OtpChallenge.id.desc())
        )
        if for_update:
            # Row lock on Postgres; SQLite ignores FOR UPDATE and serialises writers itself
            stmt = stmt.with_for_update()
        return self.session.exec(stmt).first()

    def create(self, challenge: OtpChallenge) -> OtpChallenge:
        try:
            stale = self.session.exec(
                select(OtpChallenge).where(
                    OtpChallenge.destination == challenge.destination,
                    OtpChallenge.consumed == False,  # noqa: E712
                )
            ).all()
            for row in stale:
                row.consumed = True
                self.session.add(row)
            self.session.add(challenge)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        self.session.refresh(challenge)
        return challenge

    def save(self, challenge: OtpChallenge) -> OtpChallenge:
        try:
            self.session.add(challenge)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        self.session.refresh(challenge)
        return challenge
