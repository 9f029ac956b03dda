"""
Base service layer patterns for business logic encapsulation.

Services encapsulate business logic separate from models. Every write
that spans more than one row goes through a service method that wraps
it in ``atomic()``.

Usage:
    from core.services import BaseService

    class TransferService(BaseService):
        @classmethod
        def create_transfer(cls, owner_id, params):
            with cls.atomic():
                out_leg = Transaction.objects.create(...)
                in_leg = Transaction.objects.create(...)

            cls.get_logger().info("Transfer recorded")
            return out_leg, in_leg
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import TYPE_CHECKING

from django.db import transaction

if TYPE_CHECKING:
    from collections.abc import Callable, Generator


class BaseService:
    """
    Base class for service layer classes.

    Provides:
    - Logging setup per service
    - Database transaction management
    - After-commit scheduling

    Design Notes:
        - Use @staticmethod or @classmethod (no instance state)
        - Raise exceptions from core.exceptions for expected failures
    """

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """
        Get logger for this service.

        Returns a logger named after the service class for
        easy filtering in logs.
        """
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    @classmethod
    @contextmanager
    def atomic(cls) -> Generator[None, None, None]:
        """
        Execute operations in a database transaction.

        All database operations within this context manager are
        wrapped in a transaction. If any operation fails, all
        changes are rolled back. Nested blocks become savepoints.
        """
        with transaction.atomic():
            yield

    @staticmethod
    def after_commit(func: Callable[[], None]) -> None:
        """
        Run ``func`` once the enclosing transaction commits.

        Runs immediately in autocommit mode and is dropped if the
        transaction rolls back.
        """
        transaction.on_commit(func)
