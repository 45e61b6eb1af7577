from typing import Optional


class AutofillError(Exception):
    pass


class DetectionAmbiguous(AutofillError):
    """Page or section state could not be determined."""


class FieldUnresolved(AutofillError):
    """No value, or no valid option, could be applied to a field.

    `assigned` holds whatever was committed anyway (e.g. the first option of a
    select with no valid choices), so the record still reflects page state.
    """

    def __init__(self, reason: str, assigned: Optional[str] = None):
        super().__init__(reason)
        self.reason = reason
        self.assigned = assigned


class InteractionFailed(AutofillError):
    """A click, fill or selection raised in the browser."""


class NavigationStalled(AutofillError):
    """No evidence of advancement after a next-step attempt."""


class SessionLost(AutofillError):
    """The browser, context or tab is gone. Fatal for the run."""
