import unittest

from saga_ledger.action.domain.model import ActionStatus, ActionType
from saga_ledger.action.infrastructure.in_memory_action_repository import InMemoryActionRepository
from saga_ledger.lock.domain.rate_limit import TicketTypeCategoryRateLimit
from saga_ledger.lock.infrastructure.in_memory_lock_store import InMemoryLockStore
from saga_ledger.orchestration.services.seat_reservation import SeatReservationService
from saga_ledger.orchestration.tasks import make_registry
from saga_ledger.orchestration.tests.fakes import (
    PROJECT, FakeEventService, FakeReserveService, FakeTransactionRepository, FakeWebhookSender, make_transaction,
)
from saga_ledger.seedwork.domain.tests.clock import FakeClock
from saga_ledger.seedwork.infrastructure.session import InMemorySessionPool
from saga_ledger.task.domain.executor import TaskExecutor
from saga_ledger.task.domain.model import TaskAttributes, TaskName, TaskStatus
from saga_ledger.task.domain.settings import TaskSettings
from saga_ledger.task.infrastructure.in_memory_task_repository import InMemoryTaskRepository


# logging.basicConfig(level="DEBUG")


class MakeRegistryTestCase(unittest.TestCase):

    def test_every_task_name_has_a_handler(self):
        registry = make_registry()
        for name in TaskName:
            self.assertIn(name, registry)


class TaskHandlersTestCase(unittest.IsolatedAsyncioTestCase):

    async def asyncSetUp(self):
        self.clock = FakeClock()
        self.session_pool = InMemorySessionPool()
        self.action_repository = InMemoryActionRepository(clock=self.clock)
        self.task_repository = InMemoryTaskRepository(clock=self.clock)
        self.event_service = FakeEventService()
        self.reserve_service = FakeReserveService()
        self.webhook_sender = FakeWebhookSender()
        self.settings = TaskSettings(
            session_pool=self.session_pool,
            action_repository=self.action_repository,
            task_repository=self.task_repository,
            ticket_type_category_rate_limit=TicketTypeCategoryRateLimit(InMemoryLockStore(clock=self.clock)),
            transaction_repository=FakeTransactionRepository(make_transaction('T1')),
            event_service=self.event_service,
            reserve_service=self.reserve_service,
            webhook_sender=self.webhook_sender,
        )
        self.executor = TaskExecutor(
            self.session_pool, self.task_repository, make_registry(), self.settings, clock=self.clock
        )

    async def _enqueue(self, name, data, tries=3):
        async with self.session_pool.session() as session:
            return await self.task_repository.save(session, TaskAttributes(
                name=name,
                runs_at=self.clock(),
                remaining_number_of_tries=tries,
                data=data,
                project=PROJECT,
            ))

    async def test_cancel_seat_reservation_voids_authorization(self):
        service = SeatReservationService(self.settings, clock=self.clock)
        async with self.session_pool.session() as session:
            action = await service.authorize(session, 'agent-1', 'T1', 'event-1', [{'ticket_type': 'ADULT'}])

        await self._enqueue(TaskName.CANCEL_SEAT_RESERVATION, {
            'project': PROJECT,
            'purpose': {'type_of': 'PlaceOrder', 'id': 'T1'},
        })
        task = await self.executor.execute_by_name(TaskName.CANCEL_SEAT_RESERVATION)

        self.assertEqual(task.status, TaskStatus.EXECUTED)
        self.assertEqual(self.reserve_service.canceled, ['reserve-1'])
        async with self.session_pool.session() as session:
            found = await self.action_repository.find_by_id(session, ActionType.AUTHORIZE, action.id)
        self.assertEqual(found.action_status, ActionStatus.CANCELED)

    async def test_aggregate_event_reservations(self):
        await self._enqueue(TaskName.AGGREGATE_EVENT_RESERVATIONS, {'project': PROJECT, 'id': 'event-1'})
        task = await self.executor.execute_by_name(TaskName.AGGREGATE_EVENT_RESERVATIONS)
        self.assertEqual(task.status, TaskStatus.EXECUTED)
        self.assertEqual(self.event_service.aggregated, ['event-1'])

    async def test_trigger_webhook_failure_is_recorded_on_task(self):
        self.webhook_sender = self.settings.webhook_sender = FakeWebhookSender(status=500, body='boom')
        await self._enqueue(TaskName.TRIGGER_WEBHOOK, {
            'project': PROJECT,
            'type_of': ActionType.SEND.value,
            'agent': PROJECT,
            'recipient': {'type_of': 'WebAPI', 'url': 'https://hooks.example.com'},
            'object': {'type_of': 'Order', 'order_number': 'ORD-1'},
        }, tries=10)
        task = await self.executor.execute_by_name(TaskName.TRIGGER_WEBHOOK)

        self.assertEqual(task.status, TaskStatus.RUNNING)
        self.assertEqual(task.remaining_number_of_tries, 9)
        self.assertEqual(task.execution_results[-1].error['name'], 'ServiceUnavailable')
        self.assertEqual(len(self.webhook_sender.posted), 1)

    async def test_missing_collaborator_fails_the_attempt(self):
        self.settings.event_service = None
        await self._enqueue(TaskName.AGGREGATE_EVENT_RESERVATIONS, {'project': PROJECT, 'id': 'event-1'})
        task = await self.executor.execute_by_name(TaskName.AGGREGATE_EVENT_RESERVATIONS)
        self.assertEqual(task.execution_results[-1].error['code'], 503)


if __name__ == '__main__':
    unittest.main()
