from typing import Protocol, Optional


class MailSender(Protocol):
    def send(self, to: str, subject: str, html: str, text: Optional[str] = None) -> bool:
        ...
