from typing import Generic, TypeVar, Type, Optional, Callable, Awaitable, Tuple
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from driver_locator.utils.logging import get_logger

# Define a generic type for SQLAlchemy models
ModelType = TypeVar("ModelType")

LOGGER = get_logger(__name__)


class BaseRepository(Generic[ModelType]):
    """Base repository implementing common persistence operations.

    Repositories only flush. Committing is left to the service that owns
    the unit of work, so one conversation or one staged driver is
    persisted atomically.
    """

    def __init__(self, session: AsyncSession, model: Type[ModelType]):
        """Initialize the repository.

        Args:
            session: SQLAlchemy async session
            model: The SQLAlchemy model class this repository manages
        """
        self.session = session
        self.model = model
        self.logger = LOGGER

    async def get_by_id(self, id: UUID) -> Optional[ModelType]:
        """Get a record by its primary key.

        Args:
            id: Primary key of the record

        Returns:
            The record if found, None otherwise
        """
        try:
            return await self.session.get(self.model, id)
        except SQLAlchemyError as e:
            self.logger.error(
                f"Error retrieving {self.model.__name__} by ID {id}: {str(e)}",
                exc_info=True
            )
            raise

    async def create(self, **kwargs) -> ModelType:
        """Create a new record and flush it.

        Args:
            **kwargs: Fields and values for the new record

        Returns:
            The created record
        """
        try:
            instance = self.model(**kwargs)
            self.session.add(instance)
            await self.session.flush()
            return instance
        except SQLAlchemyError as e:
            self.logger.error(
                f"Error creating {self.model.__name__}: {str(e)}",
                exc_info=True
            )
            raise

    async def create_or_get(
        self,
        lookup: Callable[[], Awaitable[Optional[ModelType]]],
        **kwargs,
    ) -> Tuple[ModelType, bool]:
        """Insert a row inside a SAVEPOINT, falling back to a re-read on conflict.

        A unique violation means a concurrent writer created the row first;
        it is treated as "already exists", never as a failure.

        Args:
            lookup: Coroutine factory that re-reads the existing row
            **kwargs: Fields and values for the new record

        Returns:
            Tuple of (instance, created)
        """
        try:
            async with self.session.begin_nested():
                instance = self.model(**kwargs)
                self.session.add(instance)
                await self.session.flush()
            return instance, True
        except IntegrityError:
            self.logger.info(
                f"{self.model.__name__} already exists, using existing row",
                extra={"fields": list(kwargs)}
            )
            existing = await lookup()
            if existing is None:
                raise
            return existing, False
