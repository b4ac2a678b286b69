"""Database initialization.

This module provides the DDL for the document table and the trigger that
announces every change on the ``document_changes`` channel.
"""
import logging

from .connection import DatabaseConnection

logger = logging.getLogger(__name__)

CHANGE_CHANNEL = "document_changes"


class DatabaseInitializer:
    """Creates and checks the document store schema."""

    def __init__(self, db: DatabaseConnection):
        self.db = db

    async def create_tables(self) -> None:
        """Create the documents table, triggers and indexes."""
        await self._create_documents_table()
        await self._create_triggers()
        await self._create_indexes()

        logger.info("Document store schema ready")

    async def _create_documents_table(self) -> None:
        ddl = """
        CREATE TABLE IF NOT EXISTS documents (
            collection VARCHAR(100) NOT NULL,
            id VARCHAR(40) NOT NULL,
            data JSONB NOT NULL DEFAULT '{}'::JSONB,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            PRIMARY KEY (collection, id)
        );
        """

        await self.db.execute(ddl)
        logger.info("Created documents table")

    async def _create_triggers(self) -> None:
        """Keep updated_at current and notify listeners of each change."""
        function_ddl = f"""
        CREATE OR REPLACE FUNCTION documents_changed()
        RETURNS TRIGGER AS $$
        BEGIN
            IF TG_OP = 'UPDATE' THEN
                NEW.updated_at = NOW();
            END IF;
            PERFORM pg_notify('{CHANGE_CHANNEL}', NEW.collection);
            RETURN NEW;
        END;
        $$ LANGUAGE plpgsql;
        """

        await self.db.execute(function_ddl)

        trigger_ddl = """
        DROP TRIGGER IF EXISTS documents_changed ON documents;
        CREATE TRIGGER documents_changed
            BEFORE INSERT OR UPDATE ON documents
            FOR EACH ROW
            EXECUTE FUNCTION documents_changed();
        """

        await self.db.execute(trigger_ddl)
        logger.info("Created documents change trigger")

    async def _create_indexes(self) -> None:
        indexes = [
            "CREATE INDEX IF NOT EXISTS idx_documents_collection_created ON documents(collection, created_at);",
            "CREATE INDEX IF NOT EXISTS idx_documents_data ON documents USING GIN (data);",
        ]

        for index_ddl in indexes:
            await self.db.execute(index_ddl)

        logger.info("Created document indexes")

    async def check_table_exists(self, table_name: str) -> bool:
        query = """
        SELECT EXISTS (
            SELECT FROM information_schema.tables
            WHERE table_schema = 'public'
            AND table_name = $1
        );
        """

        return await self.db.fetchval(query, table_name)

    async def validate_schema(self) -> list[str]:
        """Return a list of missing schema objects."""
        errors = []

        if not await self.check_table_exists("documents"):
            errors.append("Missing table: documents")

        function_query = """
        SELECT EXISTS (
            SELECT FROM pg_proc
            WHERE proname = 'documents_changed'
        );
        """

        if not await self.db.fetchval(function_query):
            errors.append("Missing function: documents_changed")

        if errors:
            logger.error(f"Schema validation failed: {errors}")
        else:
            logger.info("Schema validation passed")

        return errors
