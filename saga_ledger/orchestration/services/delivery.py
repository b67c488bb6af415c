import datetime
import functools
import typing

from saga_ledger.action.domain.model import Action, ActionAttributes
from saga_ledger.lock.domain.register_service_in_progress import ProgressKey
from saga_ledger.orchestration.errors import is_benign, raise_normalized
from saga_ledger.orchestration.services.base import BaseService
from saga_ledger.saga.compensation import Compensator
from saga_ledger.seedwork.domain.exceptions import ArgumentNull
from saga_ledger.seedwork.domain.session.interfaces import ISession
from saga_ledger.task.domain.model import Task, TaskName

__all__ = ('DeliveryService',)


def _name_of(party: typing.Mapping[str, typing.Any]) -> str:
    name = party.get('name')
    if isinstance(name, str):
        return name
    if isinstance(name, dict) and isinstance(name.get('ja'), str):
        return name['ja']
    if isinstance(party.get('given_name'), str):
        return '%s %s' % (party['given_name'], party.get('family_name', ''))
    return ''


def _products_of(order: dict) -> list[tuple[str, str]]:
    """``(owner id, product id)`` of every registered service in the order."""
    customer_id = (order.get('customer') or {}).get('id')
    pairs = []
    for offer in order.get('accepted_offers') or ():
        product_id = ((offer.get('item_offered') or {}).get('issued_through') or {}).get('id')
        if isinstance(product_id, str) and customer_id:
            pairs.append((customer_id, product_id))
    return pairs


class DeliveryService(BaseService):
    """Order delivery and the point awards that follow it."""

    async def send_order(self, session: ISession, attributes: ActionAttributes) -> Action:
        action_repository = self._settings.action_repository
        order = attributes.object
        if not attributes.purpose or not attributes.purpose.get('id'):
            raise ArgumentNull('purpose')
        transaction_id = attributes.purpose['id']

        action = await action_repository.start(session, attributes)
        released = []
        try:
            register_service_in_progress = self._settings.require('register_service_in_progress')
            for agent_id, product_id in _products_of(order):
                progress_key = ProgressKey(agent_id=agent_id, product_id=product_id)
                if await register_service_in_progress.release(session, progress_key, transaction_id):
                    released.append(product_id)
        except Exception as e:
            await self._give_up(session, action, e)
            raise

        result = {'order_number': order.get('order_number'), 'released_products': released}
        action = await action_repository.complete(session, action.type_of, action.id, result)
        await self.on_send(session, attributes, order)
        return action

    async def on_send(self, session: ISession, attributes: ActionAttributes, order: dict) -> list[Task]:
        """Queues what has to happen once the order is delivered."""
        potential_actions = attributes.potential_actions or {}
        tasks = []
        for a in potential_actions.get('send_email_message') or ():
            tasks.append(await self._enqueue(
                session, TaskName.SEND_EMAIL_MESSAGE, {'action_attributes': a}, 3, project=a.get('project')
            ))

        inform_order = list(potential_actions.get('inform_order') or ())
        for url in self._settings.config.inform_order_urls:
            inform_order.append({
                'project': attributes.project,
                'type_of': 'InformAction',
                'agent': attributes.agent,
                'recipient': {'type_of': 'Person', 'url': url},
                'purpose': attributes.purpose,
            })
        for a in inform_order:
            tasks.append(await self._enqueue(
                session, TaskName.TRIGGER_WEBHOOK, {**a, 'object': order}, 10, project=a.get('project')
            ))
        return tasks

    async def give_point_award(self, session: ISession, attributes: ActionAttributes) -> Action:
        action_repository = self._settings.action_repository
        action = await action_repository.start(session, attributes)
        compensator = Compensator()
        try:
            money_transfer_service = self._settings.require('money_transfer_service')
            obj = attributes.object
            transaction_number = await money_transfer_service.publish_transaction_number(attributes.project['id'])
            agent = {
                'type_of': attributes.agent.get('type_of'),
                'id': attributes.agent.get('id'),
                'name': _name_of(attributes.agent),
                'url': attributes.agent.get('url'),
            }
            await money_transfer_service.start({
                'transaction_number': transaction_number,
                'project': attributes.project,
                'type_of': 'MoneyTransfer',
                'agent': agent,
                'expires': (self._clock() + datetime.timedelta(minutes=1)).isoformat(),
                'recipient': {
                    'type_of': attributes.recipient.get('type_of'),
                    'id': attributes.recipient.get('id'),
                    'name': _name_of(attributes.recipient),
                },
                'object': {
                    'amount': {'value': obj['amount']},
                    'description': obj.get('description') or (attributes.purpose or {}).get('type_of'),
                    'from_location': agent,
                    'to_location': {
                        'type_of': obj['to_location']['account_type'],
                        'identifier': obj['to_location']['account_number'],
                    },
                    'pending_transaction': {'type_of': 'Deposit'},
                },
            })
            compensator.push(
                'cancel money transfer %s' % transaction_number,
                functools.partial(self._cancel_money_transfer, transaction_number)
            )
            await money_transfer_service.confirm(transaction_number)
        except Exception as e:
            await self._give_up(session, action, e)
            await compensator.compensate()
            raise_normalized(e)
        return await action_repository.complete(session, action.type_of, action.id, {})

    async def return_point_award(self, session: ISession, attributes: ActionAttributes) -> Action:
        """Withdraws what a give point award action deposited.

        ``attributes.object`` is that give action, its purpose the order.
        """
        action_repository = self._settings.action_repository
        give_action = attributes.object
        order = give_action['purpose']
        give_object = give_action['object']
        action = await action_repository.start(session, attributes)
        compensator = Compensator()
        try:
            money_transfer_service = self._settings.require('money_transfer_service')
            transaction_number = await money_transfer_service.publish_transaction_number(attributes.project['id'])
            recipient = {
                'type_of': attributes.recipient.get('type_of'),
                'id': attributes.recipient.get('id'),
                'name': _name_of(order.get('seller') or {}),
                'url': attributes.recipient.get('url'),
            }
            point_transaction = await money_transfer_service.start({
                'transaction_number': transaction_number,
                'project': order.get('project') or attributes.project,
                'type_of': 'MoneyTransfer',
                'agent': {
                    'type_of': attributes.agent.get('type_of'),
                    'id': attributes.agent.get('id'),
                    'name': _name_of(order.get('customer') or {}),
                    'url': attributes.agent.get('url'),
                },
                'expires': (self._clock() + datetime.timedelta(minutes=1)).isoformat(),
                'recipient': recipient,
                'object': {
                    'amount': {'value': give_object['amount']},
                    'from_location': {
                        'type_of': 'Account',
                        'account_number': give_object['to_location']['account_number'],
                        'account_type': give_object['to_location']['account_type'],
                    },
                    'to_location': recipient,
                    'description': '%s (canceled)' % give_object.get('description', ''),
                    'pending_transaction': {'type_of': 'Withdraw'},
                },
            })
            compensator.push(
                'cancel money transfer %s' % transaction_number,
                functools.partial(self._cancel_money_transfer, transaction_number)
            )
            await money_transfer_service.confirm(transaction_number)
        except Exception as e:
            await self._give_up(session, action, e)
            await compensator.compensate()
            raise_normalized(e)
        return await action_repository.complete(
            session, action.type_of, action.id, {'point_transaction': point_transaction}
        )

    async def _cancel_money_transfer(self, transaction_number: str) -> None:
        money_transfer_service = self._settings.require('money_transfer_service')
        try:
            await money_transfer_service.cancel(transaction_number)
        except Exception as e:
            if not is_benign(e):
                raise_normalized(e)
            self._logger.info("Money transfer %s is already canceled", transaction_number)
