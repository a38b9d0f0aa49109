"""Custom exception hierarchy for pypersistedstate."""

from __future__ import annotations


class PersistError(Exception):
    """Base exception for all pypersistedstate errors."""


class PersistConfigError(PersistError):
    """Invalid persistence options."""


class PersistStorageError(PersistError):
    """Storage backend is unusable or an operation on it failed."""

    def __init__(
        self,
        message: str,
        *,
        key: str = "",
        status_code: int | None = None,
    ) -> None:
        self.key = key
        self.status_code = status_code
        super().__init__(message)


class PersistDecodeError(PersistError):
    """A persisted snapshot could not be turned back into state.

    Raised during rehydration when the ``after_load`` hook fails or the
    transformed value is not valid JSON.  Activation is aborted: the
    state container is left untouched and no subscription is registered.
    """


class PersistEncodeError(PersistError):
    """A single write attempt failed to serialize or transform its snapshot.

    Only that write is affected; later mutations are still persisted.
    """
