import unittest

import aiohttp

from saga_ledger.orchestration.errors import handle_service_error, is_benign, raise_normalized
from saga_ledger.seedwork.domain.exceptions import (
    AlreadyInUse, Argument, Forbidden, NotFound, RateLimitExceeded, ServiceError, ServiceUnavailable, Unauthorized,
)


class HandleServiceErrorTestCase(unittest.TestCase):

    def test_status_mapping(self):
        cases = (
            (400, Argument),
            (401, Unauthorized),
            (403, Forbidden),
            (404, NotFound),
            (409, AlreadyInUse),
            (429, RateLimitExceeded),
            (500, ServiceUnavailable),
            (502, ServiceUnavailable),
            (503, ServiceUnavailable),
        )
        for code, error_class in cases:
            with self.subTest(code=code):
                handled = handle_service_error(ServiceError(code, 'reason', 'ChevreError'))
                self.assertIsInstance(handled, error_class)
                self.assertEqual(handled.message, 'ChevreError:reason')

    def test_default_names(self):
        self.assertEqual(handle_service_error(ServiceError(400, 'x')).argument_name, 'ServiceArgument')
        self.assertEqual(handle_service_error(ServiceError(404, 'x')).entity_name, 'Resource')
        self.assertEqual(handle_service_error(ServiceError(409, 'x')).entity_name, 'ServiceArgument')

    def test_client_response_error(self):
        error = aiohttp.ClientResponseError(request_info=None, history=(), status=403, message='denied')
        handled = handle_service_error(error)
        self.assertIsInstance(handled, Forbidden)
        self.assertEqual(handled.message, 'ClientResponseError:denied')

    def test_other_errors_pass_through(self):
        for error in (NotFound('Event'), ValueError('bad'), RateLimitExceeded()):
            with self.subTest(error=error):
                self.assertIs(handle_service_error(error), error)

    def test_raise_normalized(self):
        original = ServiceError(503, 'down')
        with self.assertRaises(ServiceUnavailable) as ctx:
            raise_normalized(original)
        self.assertIs(ctx.exception.__cause__, original)

        unchanged = NotFound('Event')
        with self.assertRaises(NotFound) as ctx:
            raise_normalized(unchanged)
        self.assertIs(ctx.exception, unchanged)

    def test_is_benign(self):
        self.assertTrue(is_benign(NotFound('Reserve')))
        self.assertTrue(is_benign(ServiceError(409, 'already canceled')))
        self.assertTrue(is_benign(aiohttp.ClientResponseError(request_info=None, history=(), status=404)))
        self.assertFalse(is_benign(ServiceError(500, 'boom')))
        self.assertFalse(is_benign(ValueError('bad')))


if __name__ == '__main__':
    unittest.main()
