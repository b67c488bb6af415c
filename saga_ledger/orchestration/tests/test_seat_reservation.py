import datetime
import json
import unittest
from unittest import mock

from saga_ledger.action.domain.model import ActionStatus, ActionType
from saga_ledger.action.infrastructure.in_memory_action_repository import InMemoryActionRepository
from saga_ledger.config import Settings
from saga_ledger.lock.domain.rate_limit import RateLimitKey, TicketTypeCategoryRateLimit
from saga_ledger.lock.infrastructure.in_memory_lock_store import InMemoryLockStore
from saga_ledger.orchestration.services.seat_reservation import SeatReservationService, validate_offers
from saga_ledger.orchestration.tests.fakes import (
    FakeEventService, FakeReserveService, FakeTransactionRepository, make_section_offers, make_ticket_offers,
    make_transaction,
)
from saga_ledger.seedwork.domain.exceptions import (
    AlreadyInUse, Forbidden, NotFound, RateLimitExceeded, ServiceError, ServiceUnavailable,
)
from saga_ledger.seedwork.domain.tests.clock import FakeClock
from saga_ledger.seedwork.infrastructure.session import InMemorySessionPool
from saga_ledger.task.domain.model import TaskName
from saga_ledger.task.domain.settings import TaskSettings
from saga_ledger.task.infrastructure.in_memory_task_repository import InMemoryTaskRepository


# logging.basicConfig(level="DEBUG")


ADULT = {'ticket_type': 'ADULT', 'watcher_name': 'Alice'}
WHEELCHAIR = {'ticket_type': 'WHEELCHAIR', 'watcher_name': 'Bob'}
PURPOSE = {'type_of': 'PlaceOrder', 'id': 'T1'}


class SeatReservationServiceTestCase(unittest.IsolatedAsyncioTestCase):

    async def asyncSetUp(self):
        self.clock = FakeClock()
        self.session_pool = InMemorySessionPool()
        self.action_repository = InMemoryActionRepository(clock=self.clock)
        self.task_repository = InMemoryTaskRepository(clock=self.clock)
        self.event_service = FakeEventService()
        self.reserve_service = FakeReserveService()
        self.rate_limit_key = RateLimitKey(
            'Wheelchair', datetime.datetime(2024, 5, 1, 10, tzinfo=datetime.timezone.utc), 3600
        )
        self.rate_limit = TicketTypeCategoryRateLimit(InMemoryLockStore(clock=self.clock))
        self.settings = TaskSettings(
            session_pool=self.session_pool,
            action_repository=self.action_repository,
            task_repository=self.task_repository,
            ticket_type_category_rate_limit=self.rate_limit,
            transaction_repository=FakeTransactionRepository(make_transaction('T1'), make_transaction('T2')),
            event_service=self.event_service,
            reserve_service=self.reserve_service,
            config=Settings(),
        )
        self.service = SeatReservationService(self.settings, clock=self.clock)

    async def _authorize(self, offers, transaction_id='T1', agent_id='agent-1'):
        async with self.session_pool.session() as session:
            return await self.service.authorize(session, agent_id, transaction_id, 'event-1', offers)

    async def _actions(self, transaction_id='T1'):
        async with self.session_pool.session() as session:
            return await self.action_repository.search_by_purpose(session, 'PlaceOrder', transaction_id)

    async def _claim_aggregation(self):
        async with self.session_pool.session() as session:
            return await self.task_repository.execute_one_by_name(session, TaskName.AGGREGATE_EVENT_RESERVATIONS)

    async def _holders(self):
        async with self.session_pool.session() as session:
            return await self.rate_limit.get_holders(session, self.rate_limit_key)

    async def test_authorize_normal_offer(self):
        action = await self._authorize([ADULT])

        self.assertEqual(action.action_status, ActionStatus.COMPLETED)
        self.assertEqual(action.type_of, ActionType.AUTHORIZE.value)
        self.assertEqual(action.purpose, PURPOSE)
        self.assertEqual(action.agent['id'], 'seller-1')
        self.assertEqual(action.recipient, {'type_of': 'Person', 'id': 'agent-1'})
        self.assertEqual(action.object['type_of'], 'SeatReservation')
        self.assertEqual(action.object['pending_transaction']['id'], 'reserve-1')
        self.assertEqual(action.object['offers'], [ADULT])

        result = action.result
        self.assertEqual(result['price'], 1800)
        self.assertEqual(result['price_currency'], 'JPY')
        self.assertEqual(result['point'], 0)
        self.assertEqual(result['response_body']['id'], 'reserve-1')
        self.assertEqual(result['request_body']['expires'], '2024-06-01T12:00:00+00:00')
        self.assertEqual(result['request_body']['agent'], {'type_of': 'Person', 'name': 'agent-1'})
        self.assertEqual(len(result['tmp_reservations']), 1)
        self.assertEqual(result['tmp_reservations'][0]['id'], 'reserve-1-A-1')
        self.assertEqual(result['tmp_reservations'][0]['additional_ticket_text'], 'Alice')

        self.assertIsNone(await self._claim_aggregation())
        self.clock.advance(5)
        task = await self._claim_aggregation()
        self.assertEqual(task.data, {'project': {'type_of': 'Project', 'id': 'project-1'}, 'id': 'event-1'})
        self.assertEqual(task.remaining_number_of_tries, 2)

    async def test_authorize_enqueues_aggregation_after_completion(self):
        with mock.patch.object(self.action_repository, 'complete', side_effect=ConnectionError('db down')):
            with self.assertRaises(ConnectionError):
                await self._authorize([ADULT])
        self.clock.advance(5)
        self.assertIsNone(await self._claim_aggregation())

    async def test_authorize_wheelchair_offer_takes_extra_seats(self):
        action = await self._authorize([WHEELCHAIR])

        _, added = self.reserve_service.added[0]
        seat_numbers = [o['ticketed_seat']['seat_number'] for o in added['accepted_offer']]
        self.assertEqual(seat_numbers, ['W-1', 'A-1', 'A-2', 'A-3', 'A-4', 'A-5', 'A-6'])

        result = action.result
        self.assertEqual(result['price'], 1000)
        self.assertEqual(len(result['tmp_reservations']), 1)
        properties = {p['name']: p['value'] for p in result['tmp_reservations'][0]['additional_property']}
        self.assertEqual(json.loads(properties['extraSeatNumbers']), ['A-1', 'A-2', 'A-3', 'A-4', 'A-5', 'A-6'])
        self.assertEqual(len(json.loads(properties['extraReservationIds'])), 6)
        self.assertEqual(properties['transaction'], 'T1')
        self.assertEqual(await self._holders(), ['T1'])

    async def test_wheelchair_rate_limit_exceeded(self):
        await self._authorize([WHEELCHAIR], 'T1')
        with self.assertRaises(RateLimitExceeded):
            await self._authorize([WHEELCHAIR], 'T2')

        failed, = await self._actions('T2')
        self.assertEqual(failed.action_status, ActionStatus.FAILED)
        self.assertEqual(failed.error['name'], 'RateLimitExceeded')
        self.assertEqual(self.reserve_service.canceled, ['reserve-2'])
        self.assertEqual(len(self.reserve_service.added), 1)
        self.assertEqual(await self._holders(), ['T1'])

    async def test_authorize_forbidden_for_other_agent(self):
        with self.assertRaises(Forbidden):
            await self._authorize([ADULT], agent_id='agent-2')
        self.assertEqual(await self._actions(), [])
        self.assertEqual(self.reserve_service.started, [])

    async def test_authorize_unknown_transaction(self):
        with self.assertRaises(NotFound):
            await self._authorize([ADULT], transaction_id='T9')

    async def test_authorize_without_collaborators(self):
        self.settings.reserve_service = None
        with self.assertRaises(ServiceUnavailable):
            await self._authorize([ADULT])

    async def test_authorize_no_seats_left(self):
        self.event_service.section_offers = make_section_offers(normal=1, out_of_stock=('A-1',))
        with self.assertRaises(AlreadyInUse) as cm:
            await self._authorize([ADULT])
        self.assertEqual(cm.exception.message, 'No available seats.')
        self.assertEqual(await self._actions(), [])
        self.assertEqual(self.reserve_service.started, [])

    async def test_reservation_network_error(self):
        self.reserve_service.add_reservations_error = ConnectionError('connection reset')
        with self.assertRaises(ConnectionError):
            await self._authorize([WHEELCHAIR])

        failed, = await self._actions()
        self.assertEqual(failed.action_status, ActionStatus.FAILED)
        self.assertEqual(failed.error['name'], 'ConnectionError')
        self.assertIsNone(failed.result)
        self.assertEqual(self.reserve_service.canceled, ['reserve-1'])
        self.assertEqual(await self._holders(), [None])
        self.clock.advance(60)
        self.assertIsNone(await self._claim_aggregation())

    async def test_reservation_conflict_is_normalized(self):
        self.reserve_service.add_reservations_error = ServiceError(409, 'seats taken', 'ReserveError')
        with self.assertRaises(AlreadyInUse) as cm:
            await self._authorize([ADULT])
        self.assertEqual(cm.exception.message, 'ReserveError:seats taken')
        failed, = await self._actions()
        self.assertEqual(failed.error['code'], 409)

    async def test_failing_compensation_does_not_mask_error(self):
        self.reserve_service.add_reservations_error = ConnectionError('connection reset')
        self.reserve_service.cancel_error = ServiceError(500, 'down')
        with self.assertRaises(ConnectionError):
            await self._authorize([ADULT])

    async def test_void_transaction(self):
        action = await self._authorize([ADULT])
        async with self.session_pool.session() as session:
            canceled = await self.service.void_transaction(session, PURPOSE)
            self.assertEqual([a.id for a in canceled], [action.id])
            found = await self.action_repository.find_by_id(session, ActionType.AUTHORIZE, action.id)
            self.assertEqual(found.action_status, ActionStatus.CANCELED)
            self.assertEqual(found.result['response_body']['id'], 'reserve-1')

            self.assertEqual(await self.service.void_transaction(session, PURPOSE), [])
        self.assertEqual(self.reserve_service.canceled, ['reserve-1'])

    async def test_void_transaction_without_actions(self):
        async with self.session_pool.session() as session:
            self.assertEqual(await self.service.void_transaction(session, {'type_of': 'PlaceOrder', 'id': 'none'}), [])
        self.assertEqual(self.reserve_service.canceled, [])

    async def test_void_transaction_skips_failed(self):
        self.reserve_service.add_reservations_error = ConnectionError('connection reset')
        with self.assertRaises(ConnectionError):
            await self._authorize([ADULT])
        async with self.session_pool.session() as session:
            self.assertEqual(await self.service.void_transaction(session, PURPOSE), [])

    async def test_void_transaction_already_canceled_externally(self):
        await self._authorize([ADULT])
        self.reserve_service.cancel_error = ServiceError(404, 'gone')
        async with self.session_pool.session() as session:
            canceled = await self.service.void_transaction(session, PURPOSE)
        self.assertEqual(len(canceled), 1)

    async def test_cancel_releases_rate_limit(self):
        action = await self._authorize([WHEELCHAIR], 'T1')
        async with self.session_pool.session() as session:
            canceled = await self.service.cancel(session, 'agent-1', 'T1', action.id)
        self.assertEqual(canceled.action_status, ActionStatus.CANCELED)
        self.assertEqual(self.reserve_service.canceled, ['reserve-1'])
        self.assertEqual(await self._holders(), [None])

        again = await self._authorize([WHEELCHAIR], 'T2')
        self.assertEqual(again.action_status, ActionStatus.COMPLETED)

    async def test_cancel_checks_ownership(self):
        action = await self._authorize([ADULT])
        async with self.session_pool.session() as session:
            with self.assertRaises(Forbidden):
                await self.service.cancel(session, 'agent-2', 'T1', action.id)
            found = await self.action_repository.find_by_id(session, ActionType.AUTHORIZE, action.id)
        self.assertEqual(found.action_status, ActionStatus.COMPLETED)

    async def test_cancel_twice(self):
        action = await self._authorize([ADULT])
        async with self.session_pool.session() as session:
            await self.service.cancel(session, 'agent-1', 'T1', action.id)
            with self.assertRaises(NotFound):
                await self.service.cancel(session, 'agent-1', 'T1', action.id)


class ValidateOffersTestCase(unittest.TestCase):

    def _validate(self, offers, section_offers=None, num_additional_stocks=6):
        return validate_offers(
            make_ticket_offers(),
            section_offers or make_section_offers(),
            offers,
            'T1',
            num_additional_stocks,
        )

    def _seat_numbers(self, accepted):
        return [o['item_offered']['reserved_ticket']['ticketed_seat']['seat_number'] for o in accepted]

    def test_skips_out_of_stock_seats(self):
        accepted = self._validate([ADULT], make_section_offers(out_of_stock=('A-1', 'A-2')))
        self.assertEqual(self._seat_numbers(accepted), ['A-3'])
        self.assertEqual(accepted[0]['price'], 1800)

    def test_offers_do_not_share_seats(self):
        accepted = self._validate([ADULT, ADULT])
        self.assertEqual(self._seat_numbers(accepted), ['A-1', 'A-2'])

    def test_normal_offer_never_takes_wheelchair_seat(self):
        with self.assertRaises(AlreadyInUse):
            self._validate([ADULT], make_section_offers(normal=0, wheelchair=2))

    def test_wheelchair_needs_additional_stocks(self):
        with self.assertRaises(AlreadyInUse):
            self._validate([WHEELCHAIR], make_section_offers(normal=5))

    def test_wheelchair_extras_are_free(self):
        accepted = self._validate([WHEELCHAIR], num_additional_stocks=2)
        self.assertEqual(self._seat_numbers(accepted), ['W-1', 'A-1', 'A-2'])
        extra = accepted[1]['item_offered']
        self.assertEqual(extra['reserved_ticket']['ticket_type']['price_specification']['price'], 0)
        self.assertIn({'name': 'extra', 'value': '1'}, extra['additional_property'])

    def test_unknown_ticket_type(self):
        with self.assertRaises(NotFound) as cm:
            self._validate([{'ticket_type': 'CHILD', 'watcher_name': ''}])
        self.assertEqual(cm.exception.entity_name, 'Offer')

    def test_no_section(self):
        with self.assertRaises(NotFound):
            validate_offers(make_ticket_offers(), [], [ADULT], 'T1', 6)


if __name__ == '__main__':
    unittest.main()
