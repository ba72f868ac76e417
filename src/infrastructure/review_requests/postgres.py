import json
from contextlib import closing
from datetime import datetime, timezone
from importlib.util import find_spec
from typing import Optional

from src.core.review_requests.delta import RequestDelta
from src.core.review_requests.errors import ReviewRequestNotFoundError
from src.core.review_requests.models import ActionReceipt, ReviewRequest
from src.infrastructure.postgres_migrations import apply_postgres_migrations


class PostgresReviewRequestRepository:
    """Stores each review request as one JSON document row.

    ``apply_delta`` locks the row, patches the document and commits in one
    transaction, so a delta is never partially visible.
    """

    def __init__(self, *, dsn: str) -> None:
        if not dsn:
            raise RuntimeError("REVIEW_REQUEST_POSTGRES_DSN_REQUIRED")
        if find_spec("psycopg") is None:
            raise RuntimeError("REVIEW_REQUEST_POSTGRES_DRIVER_MISSING")
        self._dsn = dsn
        self._init_db()

    def create_request(self, request: ReviewRequest) -> None:
        query = """
            INSERT INTO review_requests (
                request_id,
                status,
                created_by,
                created_at,
                updated_at,
                document_json
            ) VALUES (%s, %s, %s, %s, %s, %s)
        """
        with closing(self._connect()) as connection:
            connection.execute(
                query,
                (
                    request.request_id,
                    request.status,
                    request.created_by,
                    request.created_at.isoformat(),
                    request.created_at.isoformat(),
                    request.model_dump_json(),
                ),
            )
            connection.commit()

    def get_request(self, *, request_id: str) -> Optional[ReviewRequest]:
        query = """
            SELECT document_json
            FROM review_requests
            WHERE request_id = %s
        """
        with closing(self._connect()) as connection:
            row = connection.execute(query, (request_id,)).fetchone()
        if row is None:
            return None
        return _to_request(row)

    def apply_delta(self, *, request_id: str, delta: RequestDelta) -> None:
        select_query = """
            SELECT document_json
            FROM review_requests
            WHERE request_id = %s
            FOR UPDATE
        """
        update_query = """
            UPDATE review_requests
            SET status = %s,
                updated_at = %s,
                document_json = %s
            WHERE request_id = %s
        """
        with closing(self._connect()) as connection:
            try:
                row = connection.execute(select_query, (request_id,)).fetchone()
                if row is None:
                    raise ReviewRequestNotFoundError("REVIEW_REQUEST_NOT_FOUND")
                updated = delta.apply_to(_to_request(row))
                connection.execute(
                    update_query,
                    (
                        updated.status,
                        datetime.now(timezone.utc).isoformat(),
                        updated.model_dump_json(),
                        request_id,
                    ),
                )
                connection.commit()
            except Exception:
                connection.rollback()
                raise

    def get_action_receipt(self, *, idempotency_key: str) -> Optional[ActionReceipt]:
        query = """
            SELECT receipt_json
            FROM review_request_action_receipts
            WHERE idempotency_key = %s
        """
        with closing(self._connect()) as connection:
            row = connection.execute(query, (idempotency_key,)).fetchone()
        if row is None:
            return None
        return ActionReceipt.model_validate(_load_json(row["receipt_json"]))

    def save_action_receipt(self, receipt: ActionReceipt) -> None:
        query = """
            INSERT INTO review_request_action_receipts (
                idempotency_key,
                request_hash,
                request_id,
                recorded_at,
                receipt_json
            ) VALUES (%s, %s, %s, %s, %s)
            ON CONFLICT (idempotency_key) DO UPDATE SET
                request_hash=excluded.request_hash,
                request_id=excluded.request_id,
                recorded_at=excluded.recorded_at,
                receipt_json=excluded.receipt_json
        """
        with closing(self._connect()) as connection:
            connection.execute(
                query,
                (
                    receipt.idempotency_key,
                    receipt.request_hash,
                    receipt.request_id,
                    receipt.recorded_at.isoformat(),
                    receipt.model_dump_json(),
                ),
            )
            connection.commit()

    def _connect(self):
        psycopg, dict_row = _import_psycopg()
        return psycopg.connect(self._dsn, row_factory=dict_row)

    def _init_db(self) -> None:
        with closing(self._connect()) as connection:
            apply_postgres_migrations(connection=connection, namespace="review_requests")


def _import_psycopg():
    import psycopg
    from psycopg.rows import dict_row

    return psycopg, dict_row


def _to_request(row) -> ReviewRequest:
    return ReviewRequest.model_validate(_load_json(row["document_json"]))


def _load_json(value):
    # JSONB columns arrive decoded; TEXT columns arrive as str
    if isinstance(value, (str, bytes)):
        return json.loads(value)
    return value
