from typing import Protocol, Optional

from ...db.models import OtpChallenge


class OtpRepository(Protocol):
    def get_active(self, destination: str, for_update: bool = False) -> Optional[OtpChallenge]:
        """Most recent non-consumed challenge for a destination."""
        ...

    def create(self, challenge: OtpChallenge) -> OtpChallenge:
        """Insert a challenge, superseding older non-consumed ones for the same destination."""
        ...

    def save(self, challenge: OtpChallenge) -> OtpChallenge:
        ...
