"""Error taxonomy shared by the intent executor, actions and the agent loop."""


class ValidationError(ValueError):
    """An intent or tool payload is missing fields or references unknown ids.

    The whole intent is rejected before any area math runs.
    """

    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors) or "Invalid intent")


class OracleError(RuntimeError):
    """The external language model could not be reached or rejected the request.

    Terminal for the current turn. There is no retry.
    """

    def __init__(self, message: str, transient: bool = False):
        self.transient = transient
        super().__init__(message)


class OracleCancelled(Exception):
    """The outstanding oracle call was abandoned because the run was cancelled."""


class ToolExecutionError(RuntimeError):
    """A single tool call failed. Reported as a failed tool result; the loop continues."""
