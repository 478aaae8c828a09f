"""
Form validation engine.

Form state is an immutable snapshot; every change goes through
``form_reducer(state, action)``. ``FormValidationEngine`` owns one snapshot,
dispatches actions against it and defers field validation until the update
that triggered it has been applied.
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, FrozenSet, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from domain.enums import RuleType
from services.validation_rules import FieldConfig, first_failure


logger = logging.getLogger(__name__)

SERVER_ERROR_TYPE = RuleType.CUSTOM.value


class FormConfigurationError(ValueError):
    """Raised when a form's field declarations are inconsistent."""
    pass


@dataclass(frozen=True)
class FieldError:
    """The single error currently reported for a field."""
    field: str
    message: str
    type: str


@dataclass(frozen=True)
class FormState:
    """Snapshot of a form: values, errors, touched fields and flags."""
    values: Mapping[str, Any]
    errors: Tuple[FieldError, ...] = ()
    touched: FrozenSet[str] = frozenset()
    is_submitting: bool = False
    is_dirty: bool = False

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0

    @classmethod
    def initial(cls, values: Optional[Mapping[str, Any]] = None) -> "FormState":
        return cls(values=dict(values or {}))

    def error_for(self, field_name: str) -> Optional[FieldError]:
        for error in self.errors:
            if error.field == field_name:
                return error
        return None


# ============================================================================
# Reducer
# ============================================================================

class FormActionType(Enum):
    """Kinds of form state transitions."""
    SET_VALUE = "set_value"
    MARK_TOUCHED = "mark_touched"
    TOUCH_ALL = "touch_all"
    SET_FIELD_ERROR = "set_field_error"
    REPLACE_ERRORS = "replace_errors"
    CLEAR_ERROR = "clear_error"
    CLEAR_ALL_ERRORS = "clear_all_errors"
    SUBMIT_STARTED = "submit_started"
    SUBMIT_FINISHED = "submit_finished"
    RESET = "reset"


@dataclass(frozen=True)
class FormAction:
    """A state transition request. Unused payload slots stay None."""
    type: FormActionType
    field: Optional[str] = None
    value: Any = None
    error: Optional[FieldError] = None
    errors: Tuple[FieldError, ...] = ()
    fields: Tuple[str, ...] = ()
    state: Optional[FormState] = None


def _without_field(errors: Iterable[FieldError], field_name: str) -> Tuple[FieldError, ...]:
    return tuple(e for e in errors if e.field != field_name)


def form_reducer(state: FormState, action: FormAction) -> FormState:
    """
    Apply one action to a form state and return the new state.

    Pure: ``state`` is never modified and nothing outside it is read.
    """
    kind = action.type

    if kind == FormActionType.SET_VALUE:
        values = dict(state.values)
        values[action.field] = action.value
        return replace(state, values=values, is_dirty=True)

    if kind == FormActionType.MARK_TOUCHED:
        return replace(state, touched=state.touched | {action.field})

    if kind == FormActionType.TOUCH_ALL:
        return replace(state, touched=frozenset(action.fields))

    if kind == FormActionType.SET_FIELD_ERROR:
        # Replaces the field's previous entry; error=None just removes it
        errors = _without_field(state.errors, action.field)
        if action.error is not None:
            errors = errors + (action.error,)
        return replace(state, errors=errors)

    if kind == FormActionType.REPLACE_ERRORS:
        return replace(state, errors=tuple(action.errors))

    if kind == FormActionType.CLEAR_ERROR:
        return replace(state, errors=_without_field(state.errors, action.field))

    if kind == FormActionType.CLEAR_ALL_ERRORS:
        return replace(state, errors=())

    if kind == FormActionType.SUBMIT_STARTED:
        return replace(state, is_submitting=True, touched=frozenset(action.fields))

    if kind == FormActionType.SUBMIT_FINISHED:
        return replace(state, is_submitting=False)

    if kind == FormActionType.RESET:
        return action.state

    raise ValueError(f"Unknown form action: {kind}")


def compute_field_error(config: FieldConfig, values: Mapping[str, Any]) -> Optional[FieldError]:
    """Run a field's rules against ``values`` and return its first failure."""
    failure = first_failure(values.get(config.name), config.rules, values)
    if failure is None:
        return None
    rule, message = failure
    return FieldError(field=config.name, message=message, type=rule.type.value)


def compute_form_errors(fields: Sequence[FieldConfig], values: Mapping[str, Any]) -> Tuple[FieldError, ...]:
    """Full pass over every declared field, in declaration order."""
    errors = []
    for config in fields:
        error = compute_field_error(config, values)
        if error is not None:
            errors.append(error)
    return tuple(errors)


# ============================================================================
# Engine
# ============================================================================

SubmitCallback = Callable[[Dict[str, Any]], Union[Awaitable[Any], Any]]
StateListener = Callable[[FormState], None]


class FormValidationEngine:
    """
    Owns the state of one form and the operations that change it.

    Validation triggered by ``set_value`` and ``mark_field_as_touched`` is
    queued rather than run inline. With a running asyncio loop the queue
    drains on the next loop iteration; otherwise call
    ``flush_pending_validations()`` (or ``await settle()``).
    """

    def __init__(
        self,
        fields: Sequence[FieldConfig],
        initial_values: Optional[Mapping[str, Any]] = None,
        on_submit: Optional[SubmitCallback] = None,
        validate_on_change: bool = True,
        validate_on_blur: bool = True,
    ):
        """
        Initialize the engine.

        Args:
            fields: Field declarations; immutable for the engine's lifetime
            initial_values: Starting values, restored by reset_form()
            on_submit: Called with the values when a submitted form is valid
            validate_on_change: Validate a field whenever set_value() changes it
            validate_on_blur: Validate a field when it is marked as touched

        Raises:
            FormConfigurationError: On duplicate names or references to undeclared fields
        """
        self._fields: Tuple[FieldConfig, ...] = tuple(fields)
        self._field_map: Dict[str, FieldConfig] = {}
        for config in self._fields:
            if config.name in self._field_map:
                raise FormConfigurationError(f"Duplicate field: {config.name}")
            self._field_map[config.name] = config
        self._dependents = self._build_dependents()

        self._initial_state = FormState.initial(initial_values)
        self._state = self._initial_state
        self.on_submit = on_submit
        self.validate_on_change = validate_on_change
        self.validate_on_blur = validate_on_blur
        self.submit_error: Optional[BaseException] = None

        self._pending: List[str] = []
        self._flush_handle: Optional[asyncio.Handle] = None
        self._listeners: List[StateListener] = []

    def _build_dependents(self) -> Dict[str, Tuple[str, ...]]:
        """Map each field to the fields that must re-validate when it changes."""
        dependents: Dict[str, List[str]] = {name: [] for name in self._field_map}
        for config in self._fields:
            for dep in config.dependencies:
                if dep not in self._field_map:
                    raise FormConfigurationError(
                        f"Field {config.name} depends on undeclared field {dep}"
                    )
                if dep not in dependents[config.name]:
                    dependents[config.name].append(dep)
            for other in config.matched_fields():
                if other not in self._field_map:
                    raise FormConfigurationError(
                        f"Field {config.name} must match undeclared field {other}"
                    )
                if config.name not in dependents[other]:
                    dependents[other].append(config.name)
        return {name: tuple(names) for name, names in dependents.items()}

    # ------------------------------------------------------------------
    # State access
    # ------------------------------------------------------------------

    @property
    def fields(self) -> Tuple[FieldConfig, ...]:
        return self._fields

    @property
    def state(self) -> FormState:
        return self._state

    @property
    def values(self) -> Dict[str, Any]:
        return dict(self._state.values)

    @property
    def errors(self) -> Tuple[FieldError, ...]:
        return self._state.errors

    @property
    def is_valid(self) -> bool:
        return self._state.is_valid

    @property
    def is_submitting(self) -> bool:
        return self._state.is_submitting

    @property
    def is_dirty(self) -> bool:
        return self._state.is_dirty

    @property
    def has_pending_validations(self) -> bool:
        return bool(self._pending)

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register a callback run with the new state after every change."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def dispatch(self, action: FormAction) -> FormState:
        """Apply an action through the reducer and notify listeners."""
        new_state = form_reducer(self._state, action)
        if new_state is not self._state:
            self._state = new_state
            for listener in list(self._listeners):
                listener(new_state)
        return self._state

    # ------------------------------------------------------------------
    # Deferred validation
    # ------------------------------------------------------------------

    def _schedule_validation(self, field_name: str) -> None:
        if field_name not in self._pending:
            self._pending.append(field_name)

        if self._flush_handle is not None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop: the caller drains the queue explicitly
            return
        self._flush_handle = loop.call_soon(self._flush_from_loop)

    def _flush_from_loop(self) -> None:
        self._flush_handle = None
        self.flush_pending_validations()

    def flush_pending_validations(self) -> int:
        """
        Run every queued field validation against the current state.

        Returns:
            Number of fields validated
        """
        count = 0
        while self._pending:
            field_name = self._pending.pop(0)
            self.validate_field(field_name)
            count += 1
        return count

    async def settle(self) -> None:
        """Let queued validations run, then drain anything still pending."""
        await asyncio.sleep(0)
        self.flush_pending_validations()

    # ------------------------------------------------------------------
    # Field operations
    # ------------------------------------------------------------------

    def set_value(self, field_name: str, value: Any) -> None:
        """Set a field value and queue the validations it triggers."""
        self.dispatch(FormAction(FormActionType.SET_VALUE, field=field_name, value=value))

        for dependent in self._dependents.get(field_name, ()):
            self._schedule_validation(dependent)

        if self.validate_on_change:
            self._schedule_validation(field_name)

    def mark_field_as_touched(self, field_name: str) -> None:
        """Record that a field was blurred; queue its validation if enabled."""
        self.dispatch(FormAction(FormActionType.MARK_TOUCHED, field=field_name))

        if self.validate_on_blur:
            self._schedule_validation(field_name)

    def validate_field(self, field_name: str) -> bool:
        """
        Validate one field against the current values.

        Replaces the field's previous error, if any. Undeclared fields are
        left alone; a declared field without rules is valid and loses any
        error set on it.

        Returns:
            Whether the field is valid now
        """
        config = self._field_map.get(field_name)
        if config is None:
            return True

        error = compute_field_error(config, self._state.values) if config.rules else None
        self.dispatch(FormAction(FormActionType.SET_FIELD_ERROR, field=field_name, error=error))
        if error is not None:
            logger.debug(f"Field {field_name} failed {error.type}: {error.message}")
        return error is None

    def validate_form(self) -> bool:
        """
        Validate every declared field in a single pass.

        The resulting error list replaces the previous one entirely,
        including errors injected with set_error().

        Returns:
            Whether the whole form is valid
        """
        errors = compute_form_errors(self._fields, self._state.values)
        self.dispatch(FormAction(FormActionType.REPLACE_ERRORS, errors=errors))
        return len(errors) == 0

    def set_error(self, field_name: str, message: str) -> None:
        """Attach an externally produced error (e.g. from the server) to a field."""
        error = FieldError(field=field_name, message=message, type=SERVER_ERROR_TYPE)
        self.dispatch(FormAction(FormActionType.SET_FIELD_ERROR, field=field_name, error=error))

    def clear_error(self, field_name: str) -> None:
        self.dispatch(FormAction(FormActionType.CLEAR_ERROR, field=field_name))

    def clear_all_errors(self) -> None:
        self.dispatch(FormAction(FormActionType.CLEAR_ALL_ERRORS))

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_field_error(self, field_name: str) -> Optional[str]:
        error = self._state.error_for(field_name)
        return error.message if error else None

    def has_field_error(self, field_name: str) -> bool:
        return self._state.error_for(field_name) is not None

    def is_field_touched(self, field_name: str) -> bool:
        return field_name in self._state.touched

    # ------------------------------------------------------------------
    # Submission & reset
    # ------------------------------------------------------------------

    async def handle_submit(self) -> bool:
        """
        Validate the whole form and hand the values to ``on_submit``.

        A call made while a previous submission is still running returns
        immediately. Failures raised by ``on_submit`` are logged and kept
        in ``submit_error``; values and touched fields are left as they were.

        Returns:
            True when the form was valid and on_submit completed
        """
        if self._state.is_submitting:
            logger.debug("Submit ignored: a submission is already in progress")
            return False

        self.submit_error = None
        all_fields = tuple(config.name for config in self._fields)
        self.dispatch(FormAction(FormActionType.SUBMIT_STARTED, fields=all_fields))

        try:
            if not self.validate_form():
                logger.debug(f"Submit blocked by {len(self._state.errors)} invalid field(s)")
                return False

            if self.on_submit is not None:
                result = self.on_submit(dict(self._state.values))
                if inspect.isawaitable(result):
                    await result
            return True
        except Exception as e:
            self.submit_error = e
            logger.exception(f"Form submission error: {e}")
            return False
        finally:
            self.dispatch(FormAction(FormActionType.SUBMIT_FINISHED))

    def reset_form(self) -> None:
        """Restore the state exactly as it was constructed."""
        self._pending.clear()
        if self._flush_handle is not None:
            self._flush_handle.cancel()
            self._flush_handle = None
        self.submit_error = None
        self.dispatch(FormAction(FormActionType.RESET, state=self._initial_state))
