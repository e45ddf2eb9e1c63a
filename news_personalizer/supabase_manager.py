"""
Supabase manager for the personalized news feed core.

This module backs the vector similarity index (through a pgvector database
function) and the relational datastore (interaction log, preference records,
article lookups) with the Supabase REST API.
"""

import asyncio
import functools
import logging
from datetime import datetime
from typing import List, Optional, Dict, Any

from supabase import create_client, Client

from .config import SupabaseConfig
from .interfaces import ArticleStore, InteractionStore, PreferenceStore, VectorIndex
from .models import (
    DateRange,
    InteractionRecord,
    NewsArticle,
    SearchFilters,
    SearchResult,
    TextChunk,
    UserInteraction,
    UserPreferences,
    parse_timestamp,
)

logger = logging.getLogger(__name__)


class SupabaseManager(VectorIndex, InteractionStore, PreferenceStore, ArticleStore):
    """
    Manages index and datastore operations using Supabase REST API.

    Features:
    - Vector similarity search with metadata filters through a database function
    - Append/query/delete on the per-user interaction log
    - Read/write of per-user preference records
    - Article lookups by id

    The supabase client is synchronous; every call runs in the default
    executor so the async services can await it.
    """

    def __init__(self, config: SupabaseConfig, client: Optional[Client] = None):
        """
        Initialize Supabase manager.

        Args:
            config: Supabase configuration (url, key, table names)
            client: Pre-built client, mainly for tests
        """
        if client is None:
            if not config.url or not config.key:
                raise ValueError("Both supabase url and key are required")
            client = create_client(config.url, config.key)

        self.client: Client = client
        self.config = config

        logger.info("SupabaseManager initialized successfully")

    async def _run(self, func, *args, **kwargs):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(func, *args, **kwargs))

    def schema_sql(self) -> str:
        """
        SQL for the tables and the similarity function this manager expects.
        Provisioning is done outside this package (Supabase SQL editor or migrations).
        """
        dim = self.config.vector_dimension
        return f"""
        CREATE EXTENSION IF NOT EXISTS vector;

        CREATE TABLE IF NOT EXISTS {self.config.chunks_table} (
            id TEXT PRIMARY KEY,
            article_id TEXT NOT NULL,
            content TEXT NOT NULL,
            embedding vector({dim}),
            metadata JSONB NOT NULL,
            category TEXT,
            source TEXT,
            published_at TIMESTAMPTZ NOT NULL
        );

        CREATE TABLE IF NOT EXISTS {self.config.interactions_table} (
            id BIGSERIAL PRIMARY KEY,
            user_id TEXT NOT NULL,
            article_id TEXT NOT NULL REFERENCES {self.config.articles_table}(id),
            action TEXT NOT NULL,
            timestamp TIMESTAMPTZ NOT NULL DEFAULT NOW()
        );

        CREATE OR REPLACE FUNCTION match_article_chunks (
            query_embedding vector({dim}),
            match_threshold float DEFAULT 0.3,
            match_count int DEFAULT 50,
            filter_categories text[] DEFAULT NULL,
            filter_sources text[] DEFAULT NULL,
            filter_start timestamptz DEFAULT NULL,
            filter_end timestamptz DEFAULT NULL
        )
        RETURNS TABLE (id text, article_id text, content text, metadata jsonb, similarity float)
        LANGUAGE sql STABLE
        AS $$
            SELECT c.id, c.article_id, c.content, c.metadata,
                   1 - (c.embedding <=> query_embedding) AS similarity
            FROM {self.config.chunks_table} c
            WHERE c.embedding IS NOT NULL
              AND 1 - (c.embedding <=> query_embedding) >= match_threshold
              AND (filter_categories IS NULL OR lower(c.category) = ANY(filter_categories))
              AND (filter_sources IS NULL OR lower(c.source) = ANY(filter_sources))
              AND (filter_start IS NULL OR c.published_at >= filter_start)
              AND (filter_end IS NULL OR c.published_at <= filter_end)
            ORDER BY c.embedding <=> query_embedding
            LIMIT match_count;
        $$;
        """

    # Vector index

    async def query(self, embedding: List[float], filters: SearchFilters,
                    limit: Optional[int] = None) -> List[SearchResult]:
        params: Dict[str, Any] = {
            'query_embedding': list(embedding),
            'match_threshold': filters.min_relevance_score if filters.min_relevance_score is not None else 0.0,
            'match_count': limit or self.config.match_count,
            'filter_categories': [c.lower() for c in filters.categories] if filters.categories else None,
            'filter_sources': [s.lower() for s in filters.sources] if filters.sources is not None else None,
            'filter_start': filters.date_range.start.isoformat() if filters.date_range else None,
            'filter_end': filters.date_range.end.isoformat() if filters.date_range else None,
        }
        try:
            result = await self._run(self.client.rpc('match_article_chunks', params).execute)
        except Exception as e:
            logger.error(f"Vector similarity search failed: {e}")
            raise

        rows = result.data or []
        return [SearchResult(chunk=TextChunk.from_dict(row), relevance_score=float(row['similarity']))
                for row in rows]

    async def get_chunks_by_article(self, article_id: str) -> List[TextChunk]:
        try:
            result = await self._run(
                self.client.table(self.config.chunks_table)
                .select('id, article_id, content, metadata, embedding')
                .eq('article_id', article_id)
                .execute
            )
        except Exception as e:
            logger.error(f"Failed to get chunks for article {article_id}: {e}")
            raise

        chunks = [TextChunk.from_dict(row) for row in result.data or []]
        return sorted(chunks, key=lambda chunk: chunk.metadata.chunk_index)

    async def get_chunks_in_range(self, date_range: DateRange) -> List[TextChunk]:
        try:
            result = await self._run(
                self.client.table(self.config.chunks_table)
                .select('id, article_id, content, metadata')
                .gte('published_at', date_range.start.isoformat())
                .lte('published_at', date_range.end.isoformat())
                .execute
            )
        except Exception as e:
            logger.error(f"Failed to get chunks in range: {e}")
            raise

        return [TextChunk.from_dict(row) for row in result.data or []]

    # Interaction log

    async def insert_interaction(self, interaction: UserInteraction) -> None:
        try:
            await self._run(
                self.client.table(self.config.interactions_table).insert(interaction.to_dict()).execute
            )
            logger.debug(f"Inserted interaction {interaction.action} for user {interaction.user_id}")
        except Exception as e:
            logger.error(f"Failed to insert interaction: {e}")
            raise

    async def fetch_interactions(self, user_id: str, limit: Optional[int] = None,
                                 offset: int = 0) -> List[InteractionRecord]:
        query = (
            self.client.table(self.config.interactions_table)
            .select(f'user_id, article_id, action, timestamp, {self.config.articles_table}(source, category, tags)')
            .eq('user_id', user_id)
            .order('timestamp', desc=True)
        )
        if limit:
            # range() bounds are inclusive
            query = query.range(offset, offset + limit - 1)

        try:
            result = await self._run(query.execute)
        except Exception as e:
            logger.error(f"Failed to fetch interactions for user {user_id}: {e}")
            raise

        records = []
        for row in result.data or []:
            article = row.get(self.config.articles_table) or {}
            records.append(InteractionRecord(
                user_id=row['user_id'],
                article_id=str(row['article_id']),
                action=row['action'],
                timestamp=parse_timestamp(row['timestamp']),
                category=article.get('category'),
                source=article.get('source'),
                tags=list(article.get('tags') or []),
            ))
        return records

    async def delete_interactions_before(self, user_id: str, cutoff: datetime) -> None:
        try:
            await self._run(
                self.client.table(self.config.interactions_table)
                .delete()
                .eq('user_id', user_id)
                .lt('timestamp', cutoff.isoformat())
                .execute
            )
        except Exception as e:
            logger.error(f"Failed to delete interactions before {cutoff} for user {user_id}: {e}")
            raise

    async def delete_user_interactions(self, user_id: str) -> None:
        try:
            await self._run(
                self.client.table(self.config.interactions_table).delete().eq('user_id', user_id).execute
            )
            logger.info(f"Deleted interaction log for user {user_id}")
        except Exception as e:
            logger.error(f"Failed to delete interactions for user {user_id}: {e}")
            raise

    # Preferences

    async def get_preferences(self, user_id: str) -> Optional[UserPreferences]:
        try:
            result = await self._run(
                self.client.table(self.config.preferences_table).select('*').eq('user_id', user_id).limit(1).execute
            )
        except Exception as e:
            logger.error(f"Failed to load preferences for user {user_id}: {e}")
            raise

        if not result.data:
            return None
        return UserPreferences.from_dict(result.data[0])

    async def save_preferences(self, preferences: UserPreferences) -> None:
        try:
            await self._run(
                self.client.table(self.config.preferences_table).upsert(preferences.to_dict()).execute
            )
        except Exception as e:
            logger.error(f"Failed to save preferences for user {preferences.user_id}: {e}")
            raise

    # Articles

    async def get_articles(self, article_ids: List[str]) -> List[NewsArticle]:
        if not article_ids:
            return []
        try:
            result = await self._run(
                self.client.table(self.config.articles_table).select('*').in_('id', list(article_ids)).execute
            )
        except Exception as e:
            logger.error(f"Failed to load articles: {e}")
            raise

        by_id = {str(row['id']): NewsArticle.from_dict(row) for row in result.data or []}
        return [by_id[article_id] for article_id in article_ids if article_id in by_id]
