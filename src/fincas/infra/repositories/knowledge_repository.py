"""Knowledge base repository - policy/FAQ snippets for reply context.

Uses raw SQL with psycopg2 (no ORM).
"""

from psycopg2.extensions import cursor as PgCursor


def search_knowledge(cur: PgCursor, query: str, limit: int = 5) -> list[str]:
    """Most relevant knowledge chunks for `query` (content only)."""
    query = query.strip()
    if not query:
        return []

    cur.execute(
        """
        SELECT content
        FROM knowledge_chunks
        WHERE tsv @@ replace(plainto_tsquery('spanish', %s)::text, '&', '|')::tsquery
        ORDER BY ts_rank(tsv, replace(plainto_tsquery('spanish', %s)::text, '&', '|')::tsquery) DESC
        LIMIT %s
        """,
        (query, query, limit),
    )
    return [row[0] for row in cur.fetchall()]
