import json
from contextlib import asynccontextmanager
from typing import Optional

import asyncpg

_pool: Optional[asyncpg.Pool] = None


async def _init_connection(conn: asyncpg.Connection):
    """Decode JSONB columns into Python objects."""
    await conn.set_type_codec(
        "jsonb",
        encoder=json.dumps,
        decoder=json.loads,
        schema="pg_catalog",
    )


async def init_pool(database_url: str):
    """Initialize the connection pool."""
    global _pool
    if _pool is None:
        _pool = await asyncpg.create_pool(
            database_url,
            min_size=2,
            max_size=10,
            init=_init_connection,
        )
    return _pool


async def get_pool() -> asyncpg.Pool:
    """Get the existing connection pool."""
    global _pool
    if _pool is None:
        raise RuntimeError("Database pool not initialized. Call init_pool first.")
    return _pool


async def close_pool():
    """Close the connection pool."""
    global _pool
    if _pool:
        await _pool.close()
        _pool = None


@asynccontextmanager
async def get_connection():
    """Get a database connection from the pool."""
    pool = await get_pool()
    async with pool.acquire() as conn:
        yield conn


async def init_db():
    """Create tables if they don't exist."""
    async with get_connection() as conn:
        await conn.execute("""
            CREATE TABLE IF NOT EXISTS onboardings (
                id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
                subsidiary VARCHAR(2) NOT NULL CHECK (subsidiary IN ('IN', 'CA', 'US')),
                method VARCHAR(10) NOT NULL CHECK (method IN ('digital', 'manual')),
                first_name VARCHAR(100) NOT NULL,
                last_name VARCHAR(100) NOT NULL,
                email VARCHAR(255) NOT NULL,
                status VARCHAR(30) NOT NULL CHECK (status IN (
                    'InviteGenerated', 'ManualPDFSent', 'ModificationRequested',
                    'Submitted', 'Resubmitted', 'Approved', 'Terminated'
                )),
                invite_token_hash VARCHAR(128),
                invite_token_encrypted TEXT,
                invite_expires_at TIMESTAMPTZ,
                invite_last_sent_at TIMESTAMPTZ,
                otp_hash VARCHAR(128),
                otp_expires_at TIMESTAMPTZ,
                otp_attempts INTEGER NOT NULL DEFAULT 0,
                otp_locked_at TIMESTAMPTZ,
                otp_last_sent_at TIMESTAMPTZ,
                termination_type VARCHAR(30) CHECK (termination_type IN ('company_terminated', 'resigned')),
                termination_reason TEXT,
                terminated_at TIMESTAMPTZ,
                form_data JSONB,
                location_at_submit JSONB,
                is_form_complete BOOLEAN NOT NULL DEFAULT false,
                is_completed BOOLEAN NOT NULL DEFAULT false,
                submitted_at TIMESTAMPTZ,
                completed_at TIMESTAMPTZ,
                approved_at TIMESTAMPTZ,
                modification_request_message TEXT,
                modification_requested_at TIMESTAMPTZ,
                employee_number VARCHAR(50),
                created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            )
        """)

        # One active onboarding per (subsidiary, email); the race arbiter for concurrent creates
        await conn.execute("""
            CREATE UNIQUE INDEX IF NOT EXISTS uq_onboardings_active_email
            ON onboardings (subsidiary, lower(email))
            WHERE status <> 'Terminated'
        """)
        await conn.execute("""
            CREATE UNIQUE INDEX IF NOT EXISTS uq_onboardings_employee_number
            ON onboardings (subsidiary, employee_number)
            WHERE employee_number IS NOT NULL
        """)
        await conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_onboardings_invite_token_hash
            ON onboardings (invite_token_hash)
            WHERE invite_token_hash IS NOT NULL
        """)
        await conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_onboardings_subsidiary_status
            ON onboardings (subsidiary, status, created_at DESC)
        """)

        await conn.execute("""
            CREATE TABLE IF NOT EXISTS onboarding_audit_logs (
                id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
                onboarding_id UUID NOT NULL,
                action VARCHAR(40) NOT NULL,
                message TEXT NOT NULL,
                actor_type VARCHAR(20) NOT NULL CHECK (actor_type IN ('HR', 'EMPLOYEE', 'SYSTEM')),
                actor_id VARCHAR(255),
                actor_name VARCHAR(255) NOT NULL,
                actor_email VARCHAR(255) NOT NULL,
                metadata JSONB NOT NULL DEFAULT '{}'::jsonb,
                created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            )
        """)
        await conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_onboarding_audit_logs_onboarding_created
            ON onboarding_audit_logs (onboarding_id, created_at DESC)
        """)
