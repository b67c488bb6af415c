"""Narrow contracts of the external collaborators the sagas drive.

Payloads are plain dicts with snake_case keys. Implementations report a
failed remote call by raising ``ServiceError(code, message, name)`` (or
letting ``aiohttp.ClientResponseError`` through); the sagas normalise both.
"""
import typing
from abc import ABCMeta, abstractmethod

from saga_ledger.seedwork.domain.session.interfaces import ISession

__all__ = (
    "ITransactionRepository",
    "IEventService",
    "IReserveService",
    "IMoneyTransferService",
    "IEmailSender",
    "IWebhookSender",
)


class ITransactionRepository(typing.Protocol, metaclass=ABCMeta):

    @abstractmethod
    async def find_in_progress_by_id(self, session: ISession, transaction_id: str) -> dict:
        """Returns ``{id, type_of, agent, seller, project}`` of an in-progress
        PlaceOrder transaction, raises ``NotFound('Transaction')`` otherwise."""
        raise NotImplementedError


class IEventService(typing.Protocol, metaclass=ABCMeta):

    @abstractmethod
    async def find_by_id(self, event_id: str) -> dict:
        raise NotImplementedError

    @abstractmethod
    async def search_ticket_offers(self, event_id: str) -> list[dict]:
        raise NotImplementedError

    @abstractmethod
    async def search_offers(self, event_id: str) -> list[dict]:
        """Screening room sections with ``contains_place`` seats and their
        availability."""
        raise NotImplementedError

    @abstractmethod
    async def aggregate_reservations(self, event_id: str) -> None:
        raise NotImplementedError


class IReserveService(typing.Protocol, metaclass=ABCMeta):

    @abstractmethod
    async def start(self, params: dict) -> dict:
        raise NotImplementedError

    @abstractmethod
    async def add_reservations(self, transaction_id: str, object_: dict) -> dict:
        raise NotImplementedError

    @abstractmethod
    async def cancel(self, transaction_id: str) -> None:
        raise NotImplementedError

    @abstractmethod
    async def confirm(self, transaction_id: str, potential_actions: dict | None = None) -> None:
        raise NotImplementedError


class IMoneyTransferService(typing.Protocol, metaclass=ABCMeta):

    @abstractmethod
    async def publish_transaction_number(self, project_id: str) -> str:
        raise NotImplementedError

    @abstractmethod
    async def start(self, params: dict) -> dict:
        raise NotImplementedError

    @abstractmethod
    async def confirm(self, transaction_number: str) -> None:
        raise NotImplementedError

    @abstractmethod
    async def cancel(self, transaction_number: str) -> None:
        raise NotImplementedError


class IEmailSender(typing.Protocol, metaclass=ABCMeta):

    @abstractmethod
    async def send(self, message: dict, custom_args: dict) -> dict:
        """Sends ``message`` (``{to_recipient, sender, about, text, identifier}``)
        and returns the provider's acknowledgement."""
        raise NotImplementedError


class IWebhookSender(typing.Protocol, metaclass=ABCMeta):

    @abstractmethod
    async def post(self, url: str, body: dict) -> tuple[int, typing.Any]:
        """POSTs ``body`` as JSON and returns ``(status, response_body)``."""
        raise NotImplementedError
