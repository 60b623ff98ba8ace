"""Acting-user context for log records.

The lifecycle manager and the preferences store act on behalf of one
dashboard user at a time. ``bound_user`` scopes that user to a block of
work; tasks created inside the block inherit it, so the confirmation of an
optimistic change logs under the same user as its dispatch.

Usage:
    from tourdesk.logging_context import bound_user, get_user_logger

    logger = get_user_logger(__name__)
    with bound_user(7):
        logger.info("Approving booking")  # record.user_id == "7"
"""

import logging
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator, Union

NO_USER = "-"

USER_LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s user=%(user_id)s: %(message)s"

_user_id: ContextVar[str] = ContextVar("user_id", default=NO_USER)


def set_user_id(user_id: Union[int, str]) -> None:
    """Set the acting user for the rest of the current context."""
    _user_id.set(str(user_id))


def get_user_id() -> str:
    return _user_id.get()


@contextmanager
def bound_user(user_id: Union[int, str]) -> Iterator[None]:
    """Act as user_id inside the block, restoring the previous user after."""
    token = _user_id.set(str(user_id))
    try:
        yield
    finally:
        _user_id.reset(token)


class UserIdFilter(logging.Filter):
    """Stamps the acting user on records that do not already carry one."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "user_id"):
            record.user_id = _user_id.get()  # type: ignore[attr-defined]
        return True


def install_user_filter(handlers: list[logging.Handler]) -> None:
    """Attach a UserIdFilter to each handler so USER_LOG_FORMAT always resolves."""
    for handler in handlers:
        if not any(isinstance(f, UserIdFilter) for f in handler.filters):
            handler.addFilter(UserIdFilter())


def get_user_logger(name: str) -> logging.Logger:
    logger = logging.getLogger(name)
    if not any(isinstance(f, UserIdFilter) for f in logger.filters):
        logger.addFilter(UserIdFilter())
    return logger
