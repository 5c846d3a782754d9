"""Status reducer: folds one remote status payload into the last known job state.

Both functions are pure. They never touch the registry; the poller writes the
returned job back through `JobRegistryPort.update`.
"""

from tunedeck.core.exceptions import InvalidTransitionError
from tunedeck.core.models.job import Job, JobPatch, StatusPayload, is_allowed_transition


def reduce(previous: Job, payload: StatusPayload) -> Job:
    """Return the job state that results from applying `payload` to `previous`.

    - status: replaced by the payload's status; backward moves and any change
      out of a terminal status raise InvalidTransitionError.
    - logs: the payload carries the full accumulated log, so it replaces the
      stored one unless it is shorter (an out-of-order response).
    - result: written once; a stored result is never overwritten.
    """
    if not is_allowed_transition(previous.status, payload.status):
        raise InvalidTransitionError(previous.id, previous.status, payload.status)

    logs = payload.logs if len(payload.logs) >= len(previous.logs) else previous.logs
    result = previous.result if previous.result is not None else payload.result

    return previous.model_copy(
        update={"status": payload.status, "logs": list(logs), "result": result},
        deep=True,
    )


def result_conflict(previous: Job, payload: StatusPayload) -> bool:
    """True when the payload carries a result different from the one already stored."""
    return (
        previous.result is not None
        and payload.result is not None
        and payload.result != previous.result
    )


def as_patch(job: Job) -> JobPatch:
    """The registry patch that writes a reduced job back."""
    return JobPatch(status=job.status, logs=job.logs, result=job.result)
