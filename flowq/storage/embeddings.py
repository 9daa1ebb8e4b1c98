"""
Outcome Embedding Repository - semantic anchors and similarity search.

Vectors are stored as JSON arrays. Search loads the tenant's rows plus the
global seeds (company_id IS NULL) and ranks them by cosine similarity.
"""

from __future__ import annotations

import json

import numpy as np

from flowq.infrastructure.database import db_transaction, get_db_connection, retry_on_db_lock
from flowq.observability.logging import get_logger
from flowq.outcomes.models import (
    EmbeddingMatch,
    MetricKey,
    OutcomeEmbeddingEntry,
    utc_now_iso,
)

logger = get_logger(__name__)


def cosine_similarities(query: np.ndarray, matrix: np.ndarray) -> np.ndarray:
    """Cosine similarity of query against every row of matrix (zero rows score 0)."""
    query_norm = np.linalg.norm(query)
    row_norms = np.linalg.norm(matrix, axis=1)
    denom = row_norms * query_norm
    dots = matrix @ query
    with np.errstate(divide="ignore", invalid="ignore"):
        scores = np.where(denom > 0, dots / denom, 0.0)
    return scores


class EmbeddingRepository:
    @staticmethod
    @retry_on_db_lock()
    def add(entry: OutcomeEmbeddingEntry) -> int:
        with db_transaction() as conn:
            cursor = conn.execute(
                """
                INSERT INTO outcome_embeddings (
                    company_id, description, embedding, metric_key, language,
                    source, usage_count, average_similarity, last_used_at, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    entry.company_id,
                    entry.description,
                    json.dumps(entry.embedding),
                    MetricKey(entry.metric_key).value,
                    entry.language,
                    entry.source,
                    entry.usage_count,
                    entry.average_similarity,
                    entry.last_used_at,
                    utc_now_iso(),
                ),
            )
            return int(cursor.lastrowid)

    @staticmethod
    def get(embedding_id: int) -> OutcomeEmbeddingEntry | None:
        with get_db_connection() as conn:
            row = conn.execute(
                "SELECT * FROM outcome_embeddings WHERE id = ?", (embedding_id,)
            ).fetchone()

        if not row:
            return None
        data = dict(row)
        data["embedding"] = json.loads(data["embedding"])
        return OutcomeEmbeddingEntry.model_validate(data)

    @staticmethod
    def exists(description: str, company_id: str | None) -> bool:
        with get_db_connection() as conn:
            row = conn.execute(
                """
                SELECT 1 FROM outcome_embeddings
                WHERE description = ? AND company_id IS ?
                LIMIT 1
                """,
                (description, company_id),
            ).fetchone()
        return row is not None

    @staticmethod
    def search(
        query_vector: list[float],
        company_id: str,
        similarity_floor: float,
        match_count: int,
    ) -> list[EmbeddingMatch]:
        """
        Ranked matches at or above similarity_floor, at most match_count.

        Only the tenant's own anchors and global seeds are considered.
        """
        with get_db_connection() as conn:
            rows = conn.execute(
                """
                SELECT id, description, embedding, metric_key, usage_count, average_similarity
                FROM outcome_embeddings
                WHERE company_id = ? OR company_id IS NULL
                """,
                (company_id,),
            ).fetchall()

        query = np.asarray(query_vector, dtype=float)
        candidates = []
        vectors = []
        for row in rows:
            vector = json.loads(row["embedding"])
            if len(vector) != len(query):
                logger.warning("Skipping embedding %s with dimension %d", row["id"], len(vector))
                continue
            candidates.append(row)
            vectors.append(vector)

        if not candidates:
            return []

        scores = cosine_similarities(query, np.asarray(vectors, dtype=float))
        order = np.argsort(-scores, kind="stable")

        matches: list[EmbeddingMatch] = []
        for index in order:
            similarity = float(scores[index])
            if similarity < similarity_floor:
                break
            row = candidates[index]
            matches.append(
                EmbeddingMatch(
                    id=row["id"],
                    metric_key=MetricKey(row["metric_key"]),
                    description=row["description"],
                    similarity=similarity,
                    usage_count=row["usage_count"],
                    average_similarity=row["average_similarity"],
                )
            )
            if len(matches) >= match_count:
                break
        return matches

    @staticmethod
    @retry_on_db_lock()
    def record_usage(embedding_id: int, similarity: float) -> None:
        """
        Fold one more similarity into the entry's running statistics.

        The running mean and the count are updated in a single statement so
        concurrent matches never lose an update.
        """
        with db_transaction() as conn:
            conn.execute(
                """
                UPDATE outcome_embeddings SET
                    average_similarity =
                        (average_similarity * usage_count + ?) / (usage_count + 1),
                    usage_count = usage_count + 1,
                    last_used_at = ?
                WHERE id = ?
                """,
                (similarity, utc_now_iso(), embedding_id),
            )
