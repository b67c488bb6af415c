from saga_ledger.action.domain.model import Action, ActionAttributes
from saga_ledger.orchestration.errors import raise_normalized
from saga_ledger.orchestration.services.base import BaseService
from saga_ledger.seedwork.domain.exceptions import ServiceError
from saga_ledger.seedwork.domain.session.interfaces import ISession

__all__ = ('NotificationService',)


ACCEPTED_WEBHOOK_STATUSES = frozenset((200, 201, 202, 204))


class NotificationService(BaseService):

    async def send_email_message(self, session: ISession, attributes: ActionAttributes) -> Action:
        action_repository = self._settings.action_repository
        action = await action_repository.start(session, attributes)
        try:
            email_sender = self._settings.require('email_sender')
            message = attributes.object
            result = await email_sender.send(message, {
                'email_message': message.get('identifier'),
                'action_id': action.id,
                'project_id': (attributes.project or {}).get('id'),
            })
        except Exception as e:
            await self._give_up(session, action, e)
            raise_normalized(e)
        return await action_repository.complete(session, action.type_of, action.id, result or {})

    async def trigger_webhook(self, session: ISession, attributes: ActionAttributes) -> Action:
        """POSTs ``{data: object}`` to ``recipient.url``; without a url the
        action completes with an empty result."""
        action_repository = self._settings.action_repository
        action = await action_repository.start(session, attributes)
        result = {}
        try:
            url = (attributes.recipient or {}).get('url')
            if isinstance(url, str) and url:
                webhook_sender = self._settings.require('webhook_sender')
                status, body = await webhook_sender.post(url, {'data': attributes.object})
                if status not in ACCEPTED_WEBHOOK_STATUSES:
                    raise ServiceError(status, str(body), 'WebhookError')
                result = {'status_code': status}
        except Exception as e:
            await self._give_up(session, action, e)
            raise_normalized(e)
        return await action_repository.complete(session, action.type_of, action.id, result)
