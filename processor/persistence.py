"""Shared transaction scope: commit on success, rollback + error mapping on failure."""

from contextlib import asynccontextmanager

from loguru import logger
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from processor.errors import PersistenceError, ReportAIError, ValidationError


@asynccontextmanager
async def write_scope(session: AsyncSession, action: str):
    """Run the block as one transaction.

    Domain errors propagate unchanged after rollback; IntegrityError becomes
    ValidationError, any other SQLAlchemyError becomes PersistenceError.
    """
    try:
        yield session
        await session.commit()
    except ReportAIError:
        await session.rollback()
        raise
    except IntegrityError as exc:
        await session.rollback()
        logger.info("[db] {} rejected by constraint: {}", action, exc.orig)
        raise ValidationError(f"{action}: duplicate value or invalid reference") from exc
    except SQLAlchemyError as exc:
        await session.rollback()
        logger.error("[db] {} failed: {}", action, exc)
        raise PersistenceError(f"{action} failed") from exc
    except Exception:
        await session.rollback()
        raise
