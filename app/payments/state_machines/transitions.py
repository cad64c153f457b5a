"""
Domain errors for illegal django-fsm transitions.

Model transition methods raise django-fsm's TransitionNotAllowed. Services
call them through ``run_transition`` so callers see the same
ConflictError-based error as every other business rule violation.

Usage:
    from payments.state_machines import run_transition

    run_transition(payment, "complete", transaction_id="pi_123")
    payment.save()
"""

from __future__ import annotations

from typing import Any

from django_fsm import TransitionNotAllowed

from payments.exceptions import InvalidStateTransitionError


def run_transition(instance: Any, transition: str, *args: Any, **kwargs: Any) -> None:
    """
    Call the FSM transition method ``transition`` on ``instance``.

    Raises:
        InvalidStateTransitionError: the current status does not allow it
    """
    current = instance.status
    try:
        getattr(instance, transition)(*args, **kwargs)
    except TransitionNotAllowed as e:
        raise InvalidStateTransitionError(
            f"Cannot {transition} {instance.__class__.__name__} {instance.pk} from '{current}'",
            details={
                "id": str(instance.pk),
                "current_state": current,
                "transition": transition,
            },
        ) from e
