from typing import Protocol


class SmsSender(Protocol):
    def send(self, to: str, message: str) -> bool:
        ...
