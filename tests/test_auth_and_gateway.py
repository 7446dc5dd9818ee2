import asyncio
import json
import unittest
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

import httpx

from portal.clients.commitment_api import HttpCommitmentGateway
from portal.core.time_provider import TimeProvider
from portal.domain.commitment_board import CommitmentBoard, CommitmentStatus, SendFailed
from portal.domain.stores import StoreUnavailableError
from portal.services.auth_service import clear_session_token, issue_session_token, validate_session_token


DAY = date(2026, 3, 10)


class FixedTimeProvider(TimeProvider):
    def __init__(self, frozen_dt: datetime):
        self._frozen_dt = frozen_dt

    def now(self) -> datetime:
        return self._frozen_dt


class SessionTokenTests(unittest.TestCase):
    def setUp(self):
        self.issued_at = datetime(2026, 3, 10, 9, 0, tzinfo=ZoneInfo('Asia/Seoul'))

    def test_issue_and_validate(self):
        issued = issue_session_token('user-1', time_provider=FixedTimeProvider(self.issued_at))
        session = validate_session_token(issued['token'], time_provider=FixedTimeProvider(self.issued_at + timedelta(hours=1)))
        self.assertEqual(session['user_id'], 'user-1')

    def test_expired_tampered_and_revoked_tokens_fail(self):
        issued = issue_session_token('user-2', time_provider=FixedTimeProvider(self.issued_at))
        token = issued['token']
        self.assertIsNone(validate_session_token(token, time_provider=FixedTimeProvider(self.issued_at + timedelta(days=30))))

        header, payload, signature = token.split('.')
        self.assertIsNone(validate_session_token(f'{header}.{payload}.{signature[::-1]}', time_provider=FixedTimeProvider(self.issued_at)))
        self.assertIsNone(validate_session_token('not-a-token'))
        self.assertIsNone(validate_session_token(None))

        clear_session_token(token)
        self.assertIsNone(validate_session_token(token, time_provider=FixedTimeProvider(self.issued_at)))

    def test_blank_user_rejected(self):
        with self.assertRaises(ValueError):
            issue_session_token('  ')


BOARD_PAYLOAD = {
    'class_id': 4,
    'date': '2026-03-10',
    'students': [
        {'id': 1, 'student_name': 'Kim', 'english_first_name': 'Amy', 'campus': 'Main', 'class_id': 4},
        {'id': 2, 'student_name': 'Lee', 'english_first_name': '', 'campus': 'Main', 'class_id': 4},
    ],
    'items': [{'id': 10, 'name': 'Phonics'}],
    'commitments': [
        {'student_id': 1, 'book_id': 10, 'date': '2026-03-10', 'status': 'partial', 'note': ''},
        {'student_id': 2, 'book_id': 10, 'date': 'garbage', 'status': 'done', 'note': ''},
    ],
    'send_statuses': {'1': 'sent'},
}


class HttpCommitmentGatewayTests(unittest.TestCase):
    def _gateway(self, handler):
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return client, HttpCommitmentGateway('token-abc', base_url='http://portal.test/', client=client)

    def test_board_round_trip_through_http(self):
        seen: list[tuple[str, str, dict]] = []

        def handler(request: httpx.Request) -> httpx.Response:
            body = json.loads(request.content) if request.content else {}
            seen.append((request.method, request.url.path, body))
            self.assertEqual(request.headers['authorization'], 'Bearer token-abc')
            if request.method == 'GET':
                self.assertEqual(request.url.params['date'], '2026-03-10')
                return httpx.Response(200, json=BOARD_PAYLOAD)
            return httpx.Response(200, json={'ok': True})

        async def _run():
            client, gateway = self._gateway(handler)
            try:
                board = CommitmentBoard(gateway)
                await board.load(4, DAY)
                status = await board.advance_cell(1, 10)
                await board.send_to_parents()
                return board, status
            finally:
                await client.aclose()

        board, status = asyncio.run(_run())
        self.assertEqual(status, CommitmentStatus.NOT_DONE)
        self.assertEqual(board.status_of(2, 10), CommitmentStatus.UNCHECKED)
        self.assertTrue(board.is_all_sent())
        self.assertEqual(
            [(method, path) for method, path, _ in seen],
            [
                ('GET', '/api/teacher/commitments'),
                ('POST', '/api/teacher/commitments'),
                ('POST', '/api/teacher/commitments/send'),
            ],
        )
        self.assertEqual(seen[1][2], {'class_id': 4, 'student_id': 1, 'book_id': 10, 'date': '2026-03-10', 'status': 'not_done'})

    def test_http_errors_become_store_unavailable(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == 'GET':
                return httpx.Response(200, json=BOARD_PAYLOAD)
            return httpx.Response(500, json={'detail': 'boom'})

        async def _run():
            client, gateway = self._gateway(handler)
            try:
                with self.assertRaises(StoreUnavailableError):
                    await gateway.upsert_status(4, 1, 10, DAY, 'done')
                board = CommitmentBoard(gateway)
                await board.load(4, DAY)
                with self.assertRaises(SendFailed):
                    await board.send_to_parents()
            finally:
                await client.aclose()

        asyncio.run(_run())

    def test_transport_failure_becomes_store_unavailable(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError('refused', request=request)

        async def _run():
            client, gateway = self._gateway(handler)
            try:
                with self.assertRaises(StoreUnavailableError):
                    await gateway.fetch_board(4, DAY)
            finally:
                await client.aclose()

        asyncio.run(_run())


if __name__ == '__main__':
    unittest.main()
