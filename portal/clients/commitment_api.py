from __future__ import annotations

import logging
from datetime import date
from typing import Any

import httpx

from portal.config import settings
from portal.core.clock import parse_iso_date
from portal.domain.records import BoardSnapshot, CommitmentEntryRecord, CurriculumItemRecord, StudentRecord
from portal.domain.stores import StoreUnavailableError


logger = logging.getLogger(__name__)


def parse_board_payload(payload: dict[str, Any], class_id: int, day: date) -> BoardSnapshot:
    students = [
        StudentRecord(
            id=int(row['id']),
            student_name=row.get('student_name') or '',
            english_first_name=row.get('english_first_name') or '',
            campus=row.get('campus') or '',
            class_id=row.get('class_id'),
        )
        for row in payload.get('students') or []
    ]
    items = [CurriculumItemRecord(id=int(row['id']), name=row.get('name') or '') for row in payload.get('items') or []]
    entries = []
    for row in payload.get('commitments') or []:
        entry_date = parse_iso_date(row.get('date'))
        if entry_date is None:
            logger.warning('commitment_payload_bad_date class_id=%s value=%s', class_id, row.get('date'))
            continue
        entries.append(
            CommitmentEntryRecord(
                student_id=int(row['student_id']),
                item_id=int(row['book_id']),
                entry_date=entry_date,
                status=row.get('status') or '',
                note=row.get('note') or '',
            )
        )
    send_statuses = {int(key): value for key, value in (payload.get('send_statuses') or {}).items()}
    return BoardSnapshot(
        class_id=class_id,
        day=day,
        students=students,
        items=items,
        entries=entries,
        send_statuses=send_statuses,
    )


class HttpCommitmentGateway:
    """Commitment gateway backed by the portal HTTP API."""

    def __init__(
        self,
        token: str,
        *,
        base_url: str | None = None,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = (base_url or settings.api_base_url).rstrip('/')
        self.timeout = timeout if timeout is not None else settings.api_timeout_seconds
        self.headers = {'Authorization': f'Bearer {token}'}
        self._client = client

    async def _request(self, method: str, path: str, **kwargs) -> dict[str, Any]:
        try:
            if self._client is not None:
                res = await self._client.request(method, f'{self.base_url}{path}', headers=self.headers, **kwargs)
            else:
                async with httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout, headers=self.headers) as client:
                    res = await client.request(method, path, **kwargs)
            res.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning('commitment_api_failed method=%s path=%s error=%s', method, path, exc)
            raise StoreUnavailableError(f'Commitment API {method} {path} failed') from exc
        if not res.content:
            return {}
        return res.json()

    async def fetch_board(self, class_id: int, day: date) -> BoardSnapshot:
        payload = await self._request(
            'GET',
            '/api/teacher/commitments',
            params={'class_id': class_id, 'date': day.isoformat()},
        )
        return parse_board_payload(payload, class_id, day)

    async def upsert_status(self, class_id: int, student_id: int, item_id: int, day: date, status: str) -> None:
        await self._request(
            'POST',
            '/api/teacher/commitments',
            json={
                'class_id': class_id,
                'student_id': student_id,
                'book_id': item_id,
                'date': day.isoformat(),
                'status': status,
            },
        )

    async def mark_class_sent(self, class_id: int, day: date) -> None:
        await self._request(
            'POST',
            '/api/teacher/commitments/send',
            json={'class_id': class_id, 'date': day.isoformat()},
        )
