"""Seat reservation authorization saga.

``authorize`` picks seats, opens a reserve transaction with the event
catalog and records the whole exchange on an AuthorizeAction, so that a
later ``cancel`` or ``void_transaction`` can undo exactly the call made.

Wheelchair offers take a wheelchair seat plus a block of normal seats held
back as extra room, and are rate limited per performance start time.
"""
import datetime
import enum
import functools
import json
import typing

from dateutil import parser as date_parser
from dateutil.relativedelta import relativedelta

from saga_ledger.action.domain.model import Action, ActionAttributes, ActionStatus, ActionType
from saga_ledger.lock.domain.rate_limit import RateLimitKey
from saga_ledger.orchestration.errors import handle_service_error, is_benign, raise_normalized
from saga_ledger.orchestration.services.base import BaseService
from saga_ledger.saga.compensation import Compensator
from saga_ledger.seedwork.domain.exceptions import AlreadyInUse, Forbidden, NotFound, ServiceUnavailable
from saga_ledger.seedwork.domain.session.interfaces import ISession
from saga_ledger.task.domain.model import TaskName

__all__ = (
    "TicketTypeCategory",
    "SeatingType",
    "SeatReservationService",
    "validate_offers",
    "make_tmp_reservations",
)


OBJECT_TYPE = 'SeatReservation'
PRICE_CURRENCY = 'JPY'
OUT_OF_STOCK = 'OutOfStock'
UNIT_PRICE_SPECIFICATION = 'UnitPriceSpecification'


class TicketTypeCategory(str, enum.Enum):
    NORMAL = 'Normal'
    WHEELCHAIR = 'Wheelchair'


class SeatingType(str, enum.Enum):
    NORMAL = 'Normal'
    WHEELCHAIR = 'Wheelchair'


class IAcceptedOffer(typing.TypedDict, total=False):
    ticket_type: str
    watcher_name: str
    seat_code: str


def _find_property(properties: typing.Iterable[dict] | None, name: str) -> typing.Any:
    for p in properties or ():
        if p.get('name') == name:
            return p.get('value')
    return None


def _category_of(additional_property: typing.Iterable[dict] | None) -> TicketTypeCategory:
    value = _find_property(additional_property, 'category')
    try:
        return TicketTypeCategory(value)
    except ValueError:
        return TicketTypeCategory.NORMAL


def _is_extra(item_offered: dict) -> bool:
    return _find_property(item_offered.get('additional_property'), 'extra') == '1'


def _seating_type_of(seat: dict) -> str | None:
    return (seat.get('seating_type') or {}).get('type_of')


def _as_datetime(value: typing.Any) -> datetime.datetime:
    if isinstance(value, datetime.datetime):
        return value
    return date_parser.isoparse(value)


def _make_item_offered(
        offer: IAcceptedOffer,
        section: dict,
        seat: dict,
        ticket_type: dict,
        additional_property: list[dict]
) -> dict:
    return {
        'id': '',
        'reservation_number': '',
        'additional_ticket_text': offer.get('watcher_name', ''),
        'reserved_ticket': {
            'type_of': 'Ticket',
            'price_currency': PRICE_CURRENCY,
            'ticketed_seat': {
                'seat_section': section.get('branch_code'),
                'seat_number': seat['branch_code'],
                'seat_row': '',
                'seating_type': seat.get('seating_type'),
                'type_of': 'Seat',
            },
            'ticket_type': ticket_type,
        },
        'additional_property': additional_property,
    }


def validate_offers(
        ticket_offers: list[dict],
        section_offers: list[dict],
        accepted_offers: typing.Iterable[IAcceptedOffer],
        transaction_id: str,
        num_additional_stocks: int
) -> list[dict]:
    """Selects a free seat for every accepted offer.

    A wheelchair offer is granted only while ``num_additional_stocks``
    normal seats are free as well; those are reserved along with it at
    price 0 and flagged ``extra``.
    """
    if not section_offers:
        raise NotFound('ScreeningRoomSection')
    section = section_offers[0]
    seats = section.get('contains_place') or []
    unavailable = {
        s['branch_code'] for s in seats
        if s.get('offers') and s['offers'][0].get('availability') == OUT_OF_STOCK
    }

    accepted = []
    for offer in accepted_offers:
        ticket_offer = next((t for t in ticket_offers if t.get('identifier') == offer.get('ticket_type')), None)
        if ticket_offer is None:
            raise NotFound('Offer', 'Offer %s not found' % offer.get('ticket_type'))
        price_components = (ticket_offer.get('price_specification') or {}).get('price_component') or []
        unit_price_spec = next((c for c in price_components if c.get('type_of') == UNIT_PRICE_SPECIFICATION), None)
        if unit_price_spec is None:
            raise NotFound('Unit Price Specification')
        unit_price = unit_price_spec.get('price')
        if unit_price is None:
            raise NotFound('Unit Price')

        category = _category_of(ticket_offer.get('additional_property'))
        free = [s for s in seats if s['branch_code'] not in unavailable]
        if category is TicketTypeCategory.WHEELCHAIR:
            candidates = [s for s in free if _seating_type_of(s) == SeatingType.WHEELCHAIR.value]
            extras = [s for s in free if _seating_type_of(s) == SeatingType.NORMAL.value]
            if len(extras) < num_additional_stocks:
                candidates = []
        else:
            candidates = [s for s in free if _seating_type_of(s) == SeatingType.NORMAL.value]
            extras = []
        if not candidates:
            raise AlreadyInUse('action.object', ['offers'], 'No available seats.')
        selected = candidates[0]
        unavailable.add(selected['branch_code'])
        extras = [s for s in extras if s['branch_code'] not in unavailable][:num_additional_stocks]
        unavailable.update(s['branch_code'] for s in extras)

        ticket_type = {
            'project': (ticket_offer.get('price_specification') or {}).get('project'),
            'type_of': ticket_offer.get('type_of'),
            'id': ticket_offer.get('id'),
            'identifier': ticket_offer.get('identifier'),
            'name': ticket_offer.get('name'),
            'price_specification': unit_price_spec,
            'price_currency': ticket_offer.get('price_currency'),
            'additional_property': ticket_offer.get('additional_property'),
        }
        main_properties = [{'name': 'transaction', 'value': transaction_id}]
        if extras:
            main_properties.append({
                'name': 'extraSeatNumbers',
                'value': json.dumps([s['branch_code'] for s in extras]),
            })
        common = {
            **offer,
            'additional_property': ticket_offer.get('additional_property'),
            'price': unit_price,
            'price_currency': PRICE_CURRENCY,
        }
        accepted.append({
            **common,
            'item_offered': _make_item_offered(offer, section, selected, ticket_type, main_properties),
        })
        extra_ticket_type = {**ticket_type, 'price_specification': {**unit_price_spec, 'price': 0}}
        for seat in extras:
            accepted.append({
                **common,
                'item_offered': _make_item_offered(offer, section, seat, extra_ticket_type, [
                    {'name': 'extra', 'value': '1'},
                    {'name': 'transaction', 'value': transaction_id},
                ]),
            })
    return accepted


def _seat_number_of(reservation: dict) -> str | None:
    return ((reservation.get('reserved_ticket') or {}).get('ticketed_seat') or {}).get('seat_number')


def make_tmp_reservations(accepted: list[dict], response_body: dict) -> list[dict]:
    """Pairs every non-extra accepted offer with the reservation made for its
    seat, and links the extra seats' reservation ids to it."""
    reservations = (response_body.get('object') or {}).get('reservations') or []
    by_seat = {_seat_number_of(r): r for r in reservations}

    tmp_reservations = []
    for o in accepted:
        item = o['item_offered']
        if _is_extra(item):
            continue
        seat_number = item['reserved_ticket']['ticketed_seat']['seat_number']
        reservation = by_seat.get(seat_number)
        if reservation is None:
            raise ServiceUnavailable('Reservation not found for an accepted offer')

        additional_property = list(item.get('additional_property') or [])
        extra_seat_numbers = _find_property(additional_property, 'extraSeatNumbers')
        if extra_seat_numbers:
            extra_ids = []
            for extra_seat_number in json.loads(extra_seat_numbers):
                extra = by_seat.get(extra_seat_number)
                if extra is None:
                    raise ServiceUnavailable('Unexpected extra seat numbers: %s' % extra_seat_number)
                extra_ids.append(extra['id'])
            if extra_ids:
                additional_property.append({'name': 'extraReservationIds', 'value': json.dumps(extra_ids)})

        tmp_reservations.append({
            **item,
            'additional_property': additional_property,
            'id': reservation['id'],
            'reservation_number': reservation.get('reservation_number', ''),
            'reserved_ticket': reservation['reserved_ticket'],
        })
    return tmp_reservations


def _price_of(tmp_reservation: dict) -> int:
    spec = (tmp_reservation.get('reserved_ticket') or {}).get('ticket_type', {}).get('price_specification') or {}
    return spec.get('price') or 0


class SeatReservationService(BaseService):

    async def authorize(
            self,
            session: ISession,
            agent_id: str,
            transaction_id: str,
            event_id: str,
            accepted_offers: list[IAcceptedOffer]
    ) -> Action:
        action_repository = self._settings.action_repository
        event_service = self._settings.require('event_service')
        reserve_service = self._settings.require('reserve_service')
        rate_limit = self._settings.require('ticket_type_category_rate_limit')
        config = self._settings.config

        transaction = await self._find_own_transaction(session, agent_id, transaction_id)
        try:
            event = await event_service.find_by_id(event_id)
            accepted = validate_offers(
                await event_service.search_ticket_offers(event['id']),
                await event_service.search_offers(event['id']),
                accepted_offers,
                transaction['id'],
                config.wheel_chair_num_additional_stocks,
            )
            request_body = {
                'project': transaction.get('project'),
                'type_of': 'Reserve',
                'agent': {
                    'type_of': transaction['agent'].get('type_of'),
                    'name': transaction['agent']['id'],
                },
                'object': {},
                'expires': (_as_datetime(event['end_date']) + relativedelta(months=1)).isoformat(),
            }
            reserve_transaction = await reserve_service.start(request_body)
        except Exception as e:
            raise_normalized(e)

        action = await action_repository.start(session, ActionAttributes(
            project=transaction.get('project'),
            type_of=ActionType.AUTHORIZE,
            object={
                'type_of': OBJECT_TYPE,
                'event': event,
                'accepted_offer': [
                    {
                        'id': o['item_offered']['reserved_ticket']['ticket_type']['id'],
                        'ticketed_seat': o['item_offered']['reserved_ticket']['ticketed_seat'],
                    }
                    for o in accepted
                ],
                'pending_transaction': reserve_transaction,
                'offers': list(accepted_offers),
            },
            agent=transaction.get('seller') or {},
            recipient={'type_of': 'Person', 'id': transaction['agent']['id']},
            purpose={'type_of': transaction.get('type_of', 'PlaceOrder'), 'id': transaction['id']},
        ))

        compensator = Compensator()
        compensator.push(
            'cancel reserve transaction %s' % reserve_transaction['id'],
            functools.partial(self._cancel_reserve_transaction, reserve_transaction['id'])
        )
        start_date = _as_datetime(event['start_date'])
        wheelchair_offers = [
            o for o in accepted
            if not _is_extra(o['item_offered'])
            and _category_of(o.get('additional_property')) is TicketTypeCategory.WHEELCHAIR
        ]
        try:
            for _ in wheelchair_offers:
                key = self._rate_limit_key(start_date)
                await rate_limit.lock(session, key, transaction['id'])
                compensator.push(
                    'release wheelchair rate limit',
                    functools.partial(rate_limit.release, session, key, transaction['id'])
                )

            response_body = await reserve_service.add_reservations(reserve_transaction['id'], {
                'event': {'id': event['id']},
                'accepted_offer': [
                    {
                        'id': o['item_offered']['reserved_ticket']['ticket_type']['id'],
                        'ticketed_seat': {
                            'type_of': 'Seat',
                            'seat_section': o['item_offered']['reserved_ticket']['ticketed_seat']['seat_section'],
                            'seat_number': o['item_offered']['reserved_ticket']['ticketed_seat']['seat_number'],
                            'seat_row': '',
                        },
                    }
                    for o in accepted
                ],
            })
            tmp_reservations = make_tmp_reservations(accepted, response_body)
        except Exception as e:
            error = handle_service_error(e)
            await self._give_up(session, action, error)
            await compensator.compensate()
            raise_normalized(e)

        result = {
            'point': 0,
            'price': sum(_price_of(r) for r in tmp_reservations),
            'price_currency': PRICE_CURRENCY,
            'tmp_reservations': tmp_reservations,
            'request_body': request_body,
            'response_body': response_body,
        }
        action = await action_repository.complete(session, action.type_of, action.id, result)
        await self._enqueue_aggregation(session, event['id'], transaction.get('project'))
        return action

    async def cancel(self, session: ISession, agent_id: str, transaction_id: str, action_id: str) -> Action:
        """Withdraws one authorization of the caller's own transaction.

        The action is canceled before the seats are released, so it can
        never read Completed while its seats are back on sale.
        """
        transaction = await self._find_own_transaction(session, agent_id, transaction_id)
        action = await self._settings.action_repository.cancel(
            session, ActionType.AUTHORIZE.value, action_id, allow_completed=True
        )
        await self._reverse(session, action, transaction['id'])
        return action

    async def void_transaction(self, session: ISession, purpose: dict) -> list[Action]:
        """Withdraws every seat reservation authorized for ``purpose``.

        Safe to call speculatively: nothing to cancel is not an error.
        """
        action_repository = self._settings.action_repository
        actions = await action_repository.search_by_purpose(
            session, purpose['type_of'], purpose['id'], type_of=ActionType.AUTHORIZE.value
        )
        canceled = []
        for action in actions:
            if (action.object or {}).get('type_of') != OBJECT_TYPE:
                continue
            if action.action_status not in (ActionStatus.ACTIVE, ActionStatus.COMPLETED):
                continue
            try:
                action = await action_repository.cancel(session, action.type_of, action.id, allow_completed=True)
            except NotFound:
                self._logger.info("Authorization %s was already settled", action.id)
                continue
            await self._reverse(session, action, purpose['id'])
            canceled.append(action)
        return canceled

    async def _reverse(self, session: ISession, action: Action, holder: str) -> None:
        result = action.result or {}
        obj = action.object or {}
        reserve_transaction_id = (result.get('response_body') or {}).get('id') \
            or (obj.get('pending_transaction') or {}).get('id')
        if reserve_transaction_id:
            await self._cancel_reserve_transaction(reserve_transaction_id)

        event = obj.get('event') or {}
        if event.get('start_date'):
            rate_limit = self._settings.require('ticket_type_category_rate_limit')
            wheelchair = any(
                _category_of(((r.get('reserved_ticket') or {}).get('ticket_type') or {}).get('additional_property'))
                is TicketTypeCategory.WHEELCHAIR
                for r in result.get('tmp_reservations') or ()
            )
            if wheelchair or not result:
                await rate_limit.release(session, self._rate_limit_key(_as_datetime(event['start_date'])), holder)
        if event.get('id'):
            await self._enqueue_aggregation(session, event['id'], action.project)

    async def _cancel_reserve_transaction(self, reserve_transaction_id: str) -> None:
        reserve_service = self._settings.require('reserve_service')
        try:
            await reserve_service.cancel(reserve_transaction_id)
        except Exception as e:
            if not is_benign(e):
                raise_normalized(e)
            self._logger.info("Reserve transaction %s is already canceled", reserve_transaction_id)

    async def _find_own_transaction(self, session: ISession, agent_id: str, transaction_id: str) -> dict:
        transaction_repository = self._settings.require('transaction_repository')
        transaction = await transaction_repository.find_in_progress_by_id(session, transaction_id)
        if transaction['agent']['id'] != agent_id:
            raise Forbidden('A specified transaction is not yours.')
        return transaction

    def _rate_limit_key(self, start_date: datetime.datetime) -> RateLimitKey:
        return RateLimitKey(
            ticket_type_category=TicketTypeCategory.WHEELCHAIR.value,
            performance_start_date=start_date,
            unit_in_seconds=self._settings.config.wheel_chair_rate_limit_unit_in_seconds,
        )

    async def _enqueue_aggregation(self, session: ISession, event_id: str, project: dict | None) -> None:
        # Inventory is released asynchronously on the catalog side.
        await self._enqueue_best_effort(
            session,
            TaskName.AGGREGATE_EVENT_RESERVATIONS,
            {'project': project, 'id': event_id},
            3,
            project=project,
            delay=5,
        )
