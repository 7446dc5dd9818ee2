import asyncio
import unittest
from datetime import date

from portal.domain.commitment_board import (
    NEXT_STATUS,
    BoardNotLoadedError,
    CommitmentBoard,
    CommitmentSaveError,
    CommitmentStatus,
    SendFailed,
    SendRejected,
    UnknownCellError,
)
from portal.domain.records import BoardSnapshot, CommitmentEntryRecord, CurriculumItemRecord, StudentRecord
from portal.domain.stores import StoreUnavailableError


DAY = date(2026, 3, 10)


class FakeGateway:
    def __init__(self, snapshot: BoardSnapshot):
        self.snapshot = snapshot
        self.upserts: list[tuple] = []
        self.sent: list[tuple] = []
        self.fail_upserts = False
        self.fail_send = False
        self.upsert_gate: asyncio.Event | None = None
        self.in_flight = 0
        self.max_in_flight = 0

    async def fetch_board(self, class_id, day):
        await asyncio.sleep(0)
        return self.snapshot

    async def upsert_status(self, class_id, student_id, item_id, day, status):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.upsert_gate is not None:
                await self.upsert_gate.wait()
            await asyncio.sleep(0)
            if self.fail_upserts:
                raise StoreUnavailableError('write failed')
            self.upserts.append((class_id, student_id, item_id, day, status))
        finally:
            self.in_flight -= 1

    async def mark_class_sent(self, class_id, day):
        await asyncio.sleep(0)
        if self.fail_send:
            raise StoreUnavailableError('send failed')
        self.sent.append((class_id, day))


def _snapshot(entries=None, send_statuses=None, students=None) -> BoardSnapshot:
    return BoardSnapshot(
        class_id=4,
        day=DAY,
        students=students if students is not None else [StudentRecord(id=1, student_name='Kim'), StudentRecord(id=2, student_name='Lee')],
        items=[CurriculumItemRecord(id=10, name='Phonics'), CurriculumItemRecord(id=11, name='Reading')],
        entries=entries or [],
        send_statuses=send_statuses or {},
    )


class CommitmentBoardTests(unittest.TestCase):
    def test_load_fills_every_cell_and_ignores_foreign_entries(self):
        async def _run():
            gateway = FakeGateway(
                _snapshot(
                    entries=[
                        CommitmentEntryRecord(student_id=1, item_id=10, entry_date=DAY, status='done', note='p.12'),
                        CommitmentEntryRecord(student_id=99, item_id=10, entry_date=DAY, status='done'),
                        CommitmentEntryRecord(student_id=2, item_id=11, entry_date=date(2026, 3, 9), status='partial'),
                    ]
                )
            )
            board = CommitmentBoard(gateway)
            await board.load(4, DAY)
            return board

        board = asyncio.run(_run())
        cells = board.cells()
        self.assertEqual(len(cells), 4)
        self.assertEqual(cells[(1, 10)], CommitmentStatus.DONE)
        self.assertEqual(cells[(2, 11)], CommitmentStatus.UNCHECKED)
        self.assertNotIn((99, 10), cells)
        self.assertEqual(board.note_of(1, 10), 'p.12')
        self.assertEqual(board.summary(), {'unchecked': 3, 'done': 1, 'partial': 0, 'not_done': 0})

    def test_four_advances_return_to_start(self):
        async def _run():
            gateway = FakeGateway(_snapshot())
            board = CommitmentBoard(gateway)
            await board.load(4, DAY)
            seen = [await board.advance_cell(1, 10) for _ in range(4)]
            return board, gateway, seen

        board, gateway, seen = asyncio.run(_run())
        self.assertEqual(
            seen,
            [CommitmentStatus.DONE, CommitmentStatus.PARTIAL, CommitmentStatus.NOT_DONE, CommitmentStatus.UNCHECKED],
        )
        self.assertEqual(board.status_of(1, 10), CommitmentStatus.UNCHECKED)
        self.assertEqual([row[4] for row in gateway.upserts], ['done', 'partial', 'not_done', 'unchecked'])
        self.assertEqual(len(NEXT_STATUS), 4)

    def test_failed_write_restores_previous_status(self):
        async def _run():
            gateway = FakeGateway(
                _snapshot(entries=[CommitmentEntryRecord(student_id=2, item_id=11, entry_date=DAY, status='partial')])
            )
            board = CommitmentBoard(gateway)
            await board.load(4, DAY)
            gateway.fail_upserts = True
            with self.assertRaises(CommitmentSaveError) as ctx:
                await board.advance_cell(2, 11)
            return board, ctx.exception

        board, error = asyncio.run(_run())
        self.assertEqual(board.status_of(2, 11), CommitmentStatus.PARTIAL)
        self.assertEqual(error.key, (2, 11))
        self.assertEqual(error.restored, CommitmentStatus.PARTIAL)
        self.assertIsInstance(error.__cause__, StoreUnavailableError)

    def test_optimistic_value_is_visible_while_write_in_flight(self):
        async def _run():
            gateway = FakeGateway(_snapshot())
            gateway.upsert_gate = asyncio.Event()
            board = CommitmentBoard(gateway)
            await board.load(4, DAY)
            task = asyncio.create_task(board.advance_cell(1, 11))
            await asyncio.sleep(0)
            during = board.status_of(1, 11)
            gateway.upsert_gate.set()
            await task
            return during, board.status_of(1, 11)

        during, after = asyncio.run(_run())
        self.assertEqual(during, CommitmentStatus.DONE)
        self.assertEqual(after, CommitmentStatus.DONE)

    def test_same_cell_advances_are_serialized(self):
        async def _run():
            gateway = FakeGateway(_snapshot())
            board = CommitmentBoard(gateway)
            await board.load(4, DAY)
            results = await asyncio.gather(board.advance_cell(1, 10), board.advance_cell(1, 10))
            return gateway, results, board

        gateway, results, board = asyncio.run(_run())
        self.assertEqual(results, [CommitmentStatus.DONE, CommitmentStatus.PARTIAL])
        self.assertEqual(gateway.max_in_flight, 1)
        self.assertEqual(board.status_of(1, 10), CommitmentStatus.PARTIAL)

    def test_different_cells_do_not_wait_on_each_other(self):
        async def _run():
            gateway = FakeGateway(_snapshot())
            gateway.upsert_gate = asyncio.Event()
            board = CommitmentBoard(gateway)
            await board.load(4, DAY)
            tasks = [asyncio.create_task(board.advance_cell(1, 10)), asyncio.create_task(board.advance_cell(2, 11))]
            await asyncio.sleep(0)
            await asyncio.sleep(0)
            in_flight = gateway.in_flight
            gateway.upsert_gate.set()
            await asyncio.gather(*tasks)
            return in_flight

        self.assertEqual(asyncio.run(_run()), 2)

    def test_unknown_cell_and_unloaded_board(self):
        async def _run():
            board = CommitmentBoard(FakeGateway(_snapshot()))
            with self.assertRaises(BoardNotLoadedError):
                await board.advance_cell(1, 10)
            await board.load(4, DAY)
            with self.assertRaises(UnknownCellError):
                await board.advance_cell(1, 999)

        asyncio.run(_run())

    def test_send_rejected_when_nothing_checked(self):
        async def _run():
            gateway = FakeGateway(_snapshot())
            board = CommitmentBoard(gateway)
            await board.load(4, DAY)
            with self.assertRaises(SendRejected):
                await board.send_to_parents()
            return gateway

        gateway = asyncio.run(_run())
        self.assertEqual(gateway.sent, [])

    def test_send_rejected_without_students(self):
        async def _run():
            gateway = FakeGateway(_snapshot(students=[]))
            board = CommitmentBoard(gateway)
            await board.load(4, DAY)
            with self.assertRaises(SendRejected):
                await board.send_to_parents()
            return gateway

        self.assertEqual(asyncio.run(_run()).sent, [])

    def test_send_once_then_rejected(self):
        async def _run():
            gateway = FakeGateway(
                _snapshot(entries=[CommitmentEntryRecord(student_id=1, item_id=10, entry_date=DAY, status='not_done')])
            )
            board = CommitmentBoard(gateway)
            await board.load(4, DAY)
            await board.send_to_parents()
            self.assertTrue(board.is_all_sent())
            with self.assertRaises(SendRejected):
                await board.send_to_parents()
            return gateway

        gateway = asyncio.run(_run())
        self.assertEqual(gateway.sent, [(4, DAY)])

    def test_partially_sent_class_can_send_again(self):
        async def _run():
            gateway = FakeGateway(
                _snapshot(
                    entries=[CommitmentEntryRecord(student_id=1, item_id=10, entry_date=DAY, status='done')],
                    send_statuses={1: 'sent'},
                )
            )
            board = CommitmentBoard(gateway)
            await board.load(4, DAY)
            await board.send_to_parents()
            return gateway

        self.assertEqual(len(asyncio.run(_run()).sent), 1)

    def test_send_failure_keeps_local_state(self):
        async def _run():
            gateway = FakeGateway(
                _snapshot(entries=[CommitmentEntryRecord(student_id=1, item_id=10, entry_date=DAY, status='done')])
            )
            gateway.fail_send = True
            board = CommitmentBoard(gateway)
            await board.load(4, DAY)
            with self.assertRaises(SendFailed):
                await board.send_to_parents()
            return board

        board = asyncio.run(_run())
        self.assertFalse(board.is_all_sent())
        self.assertEqual(board.send_statuses, {})

    def test_disposed_board_ignores_late_failure(self):
        async def _run():
            gateway = FakeGateway(_snapshot())
            gateway.upsert_gate = asyncio.Event()
            gateway.fail_upserts = True
            board = CommitmentBoard(gateway)
            await board.load(4, DAY)
            task = asyncio.create_task(board.advance_cell(1, 10))
            await asyncio.sleep(0)
            board.dispose()
            gateway.upsert_gate.set()
            with self.assertRaises(CommitmentSaveError):
                await task
            return board

        board = asyncio.run(_run())
        self.assertEqual(board.status_of(1, 10), CommitmentStatus.DONE)

    def test_reload_during_failed_write_keeps_reloaded_status(self):
        async def _run():
            gateway = FakeGateway(_snapshot())
            gateway.upsert_gate = asyncio.Event()
            gateway.fail_upserts = True
            board = CommitmentBoard(gateway)
            await board.load(4, DAY)
            task = asyncio.create_task(board.advance_cell(1, 10))
            await asyncio.sleep(0)
            gateway.snapshot = _snapshot(
                entries=[CommitmentEntryRecord(student_id=1, item_id=10, entry_date=DAY, status='not_done')]
            )
            await board.load(4, DAY)
            gateway.upsert_gate.set()
            with self.assertRaises(CommitmentSaveError):
                await task
            return board

        board = asyncio.run(_run())
        self.assertEqual(board.status_of(1, 10), CommitmentStatus.NOT_DONE)
        self.assertEqual(board.summary()['unchecked'], 3)


if __name__ == '__main__':
    unittest.main()
