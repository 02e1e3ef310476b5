"""Input-request protocol between the run-loop and a human prompt.

At most one request is outstanding at a time. The run-loop offers a
request when a step needs input and takes it back when the user answers
(or dismisses the prompt). Prompt collaborators only ever ``peek``.
"""

from __future__ import annotations

from .models import BuildStep, InputRequest

PASSWORD_MASK = "********"


class InputSlotBusyError(Exception):
    """Raised when offering a request while another one is outstanding."""


class NoPendingInputError(Exception):
    """Raised when submitting input while no request is outstanding."""


class InputSlot:
    """Single-slot mailbox holding the outstanding InputRequest."""

    def __init__(self) -> None:
        self._request: InputRequest | None = None

    @property
    def is_empty(self) -> bool:
        return self._request is None

    def offer(self, request: InputRequest) -> None:
        """Place a request in the slot.

        Raises:
            InputSlotBusyError: If a request is already outstanding.
        """
        if self._request is not None:
            raise InputSlotBusyError(
                f"Input already requested for step {self._request.step_id!r}"
            )
        self._request = request

    def peek(self) -> InputRequest | None:
        """Return the outstanding request without consuming it."""
        return self._request

    def take(self) -> InputRequest:
        """Consume and return the outstanding request.

        Raises:
            NoPendingInputError: If the slot is empty.
        """
        if self._request is None:
            raise NoPendingInputError("No input request is outstanding")
        request, self._request = self._request, None
        return request

    def clear(self) -> None:
        self._request = None


def build_input_request(step: BuildStep) -> InputRequest:
    """Derive the prompt for a step that requires input."""
    if step.is_password_step:
        user = "root" if "root" in step.id else "lfs"
        return InputRequest(
            type="password",
            message=f"Enter password for {user} user:",
            required=True,
            step_id=step.id,
        )
    if "disk" in step.id:
        message = "Enter target disk device (e.g., /dev/sdb):"
        default: str | None = "/dev/sdb"
        kind = "text"
    elif "sources" in step.id:
        message = "Enter path to LFS sources:"
        default = None
        kind = "path"
    else:
        message = f"Input required for {step.name}:"
        default = None
        kind = "text"
    return InputRequest(type=kind, message=message, default=default, required=True, step_id=step.id)


def normalize_confirm(value: bool | str) -> str:
    """Map a confirm answer to the literal strings "true" / "false"."""
    if isinstance(value, bool):
        return "true" if value else "false"
    return "true" if value.strip().lower() in ("true", "yes", "y", "1") else "false"


def loggable_input(step: BuildStep | None, value: str) -> str:
    """Log line for a submitted value, masking password answers."""
    if step is not None and step.is_password_step:
        return f"Password entered: {PASSWORD_MASK}"
    return f"Input provided: {value}"
