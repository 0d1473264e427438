from .db import get_db_connection
import logging

logger = logging.getLogger(__name__)

async def create_tables():
    """Create tables backing the incident, chat and reward endpoints"""
    schema_sql = """
        -- Users table: Stores user information
        CREATE TABLE IF NOT EXISTS users (
            id UUID PRIMARY KEY,
            username VARCHAR(50) UNIQUE NOT NULL,
            email VARCHAR(255) UNIQUE,
            password_hash VARCHAR(255) NOT NULL,
            role VARCHAR(20) NOT NULL CHECK (role IN ('user', 'manager', 'admin')) DEFAULT 'user',
            created_at TIMESTAMP WITH TIME ZONE DEFAULT NOW(),
            last_login_at TIMESTAMP WITH TIME ZONE
        );

        -- Incidents table: Stores reported incidents with location and severity
        CREATE TABLE IF NOT EXISTS incidents (
            id UUID PRIMARY KEY,
            title VARCHAR(255) NOT NULL,
            description TEXT,
            latitude NUMERIC(9,6) NOT NULL,
            longitude NUMERIC(9,6) NOT NULL,
            severity VARCHAR(20) NOT NULL CHECK (severity IN ('low', 'medium', 'high', 'critical')) DEFAULT 'medium',
            status VARCHAR(20) NOT NULL CHECK (status IN ('active', 'resolved', 'closed')) DEFAULT 'active',
            reported_by UUID REFERENCES users(id) ON DELETE SET NULL,
            created_at TIMESTAMP WITH TIME ZONE DEFAULT NOW(),
            updated_at TIMESTAMP WITH TIME ZONE
        );

        -- Chat messages table: One discussion per incident
        CREATE TABLE IF NOT EXISTS chat_messages (
            id UUID PRIMARY KEY,
            incident_id UUID NOT NULL REFERENCES incidents(id) ON DELETE CASCADE,
            user_id UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            message TEXT NOT NULL,
            created_at TIMESTAMP WITH TIME ZONE DEFAULT NOW()
        );

        -- Reward points ledger: one row per rewarded action
        CREATE TABLE IF NOT EXISTS user_points (
            id UUID PRIMARY KEY,
            user_id UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            action_type VARCHAR(50) NOT NULL,
            points INTEGER NOT NULL,
            created_at TIMESTAMP WITH TIME ZONE DEFAULT NOW()
        );

        CREATE INDEX IF NOT EXISTS idx_incidents_location ON incidents (latitude, longitude);
        CREATE INDEX IF NOT EXISTS idx_incidents_status ON incidents (status);
        CREATE INDEX IF NOT EXISTS idx_chat_messages_incident ON chat_messages (incident_id, created_at);
        CREATE INDEX IF NOT EXISTS idx_user_points_user_id ON user_points (user_id);
    """
    try:
        async with get_db_connection() as conn:
            async with conn.transaction():
                await conn.execute(schema_sql)
                logger.info("Database tables and indexes created successfully.")
    except Exception as e:
        logger.error(f"Error creating tables: {str(e)}")
        raise
