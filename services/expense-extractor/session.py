"""Extraction session: the state machine for one upload-to-form cycle.

empty -> submitting -> populated | failed, with reset back to empty from
any state. Every submission and every reset bumps a generation counter;
results are applied only when they carry the current generation, so a
response that arrives after a reset or a newer upload is dropped.
"""

import datetime as dt
import logging
import threading

from catalog import ExtractionModel, default_model, resolve_model
from models import (
    ExpenseFields,
    ExtractionResult,
    SessionState,
    SessionStatus,
    Timings,
    UploadedDocument,
)

logger = logging.getLogger(__name__)

FAILURE_MESSAGE = "Processing failed, please retry."

EDITABLE_FIELDS = frozenset(ExpenseFields.model_fields)


class SessionBusyError(Exception):
    """Fields cannot be edited while a submission is in flight."""


class UnknownFieldError(ValueError):
    """Field name is not part of the expense record."""


class ExtractionSession:
    """Owns the file, model, fields and status of one document upload.

    Thread-safe: transitions are serialized with a lock so the HTTP shell
    may call them from worker threads. The network call itself happens
    outside the session.
    """

    def __init__(self, model: str | ExtractionModel | None = None):
        self._lock = threading.Lock()
        self._generation = 0
        self._default_model = resolve_model(model) if model is not None else default_model()
        self._clear()

    def _clear(self) -> None:
        self._file: UploadedDocument | None = None
        self._model = self._default_model
        self._status = SessionStatus.EMPTY
        self._fields = ExpenseFields()
        self._timings: Timings | None = None
        self._round_trip_seconds: float | None = None
        self._dirty = False
        self._error: str | None = None

    @property
    def status(self) -> SessionStatus:
        return self._status

    @property
    def model(self) -> ExtractionModel:
        return self._model

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def selected_file(self) -> UploadedDocument | None:
        return self._file

    @property
    def fields(self) -> ExpenseFields:
        return self._fields.model_copy()

    def select_file(self, document: UploadedDocument) -> tuple[int, ExtractionModel]:
        """Take ownership of a document and enter submitting.

        Returns (generation, model): the token the eventual result must carry
        and the model the request must use, read under the same lock.
        Supersedes any submission already in flight.
        """
        with self._lock:
            self._generation += 1
            self._file = document
            self._status = SessionStatus.SUBMITTING
            self._timings = None
            self._round_trip_seconds = None
            self._error = None
            logger.info(
                "Submitting %s (%d bytes), generation=%d model=%s",
                document.filename,
                document.size,
                self._generation,
                self._model.value,
            )
            return self._generation, self._model

    def on_response(self, generation: int, result: ExtractionResult) -> bool:
        """Apply a successful extraction. Returns False if the result is stale."""
        with self._lock:
            if not self._is_current(generation):
                logger.debug(
                    "Dropping stale response for generation %d (current %d)",
                    generation,
                    self._generation,
                )
                return False

            self._fields = result.fields.model_copy()
            self._timings = result.timings
            self._round_trip_seconds = result.round_trip_seconds
            self._status = SessionStatus.POPULATED
            self._dirty = False
            self._error = None
            return True

    def on_error(self, generation: int, error: Exception | None = None) -> bool:
        """Record a failed extraction without touching fields.

        Returns False if the failure belongs to a superseded submission.
        """
        with self._lock:
            if not self._is_current(generation):
                logger.debug(
                    "Dropping stale failure for generation %d (current %d): %s",
                    generation,
                    self._generation,
                    error,
                )
                return False

            self._timings = None
            self._round_trip_seconds = None
            self._status = SessionStatus.FAILED
            self._error = FAILURE_MESSAGE
            return True

    def edit_field(self, name: str, value: str | dt.date | None) -> None:
        """Overwrite one expense field with a user-supplied value."""
        self.edit_fields({name: value})

    def edit_fields(self, changes: dict) -> None:
        """Apply several field edits at once; either all of them land or none.

        Membership of category and currency is checked by the caller.
        """
        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise UnknownFieldError(f"Unknown expense field: {', '.join(sorted(unknown))}")
        update = {name: _coerce(name, value) for name, value in changes.items()}

        with self._lock:
            if self._status is SessionStatus.SUBMITTING:
                raise SessionBusyError("Cannot edit fields while a document is being processed")

            self._fields = self._fields.model_copy(update=update)
            self._dirty = True

    def set_model(self, model: str | ExtractionModel) -> None:
        resolved = resolve_model(model)
        with self._lock:
            self._model = resolved

    def reset(self) -> None:
        """Return to empty with all defaults, invalidating any in-flight result."""
        with self._lock:
            self._generation += 1
            self._clear()
            logger.info("Session reset (generation=%d)", self._generation)

    def snapshot(self) -> SessionState:
        with self._lock:
            return SessionState(
                status=self._status,
                model=self._model,
                file_name=self._file.filename if self._file is not None else None,
                fields=self._fields.model_copy(),
                timings=self._timings,
                round_trip_seconds=self._round_trip_seconds,
                dirty=self._dirty,
                error=self._error,
                generation=self._generation,
            )

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation and self._status is SessionStatus.SUBMITTING


def _coerce(name: str, value: str | dt.date | None):
    # Clearing a field puts it back to its default
    if value is None:
        return ExpenseFields.model_fields[name].default
    if name == "date":
        if not isinstance(value, dt.date):
            raise TypeError("date must be a datetime.date or None")
        return value
    return str(value)
