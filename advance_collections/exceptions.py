"""Collections engine exceptions"""


class CollectionsError(ValueError):
    """Base exception for the collections engine"""

    pass


class AdvanceNotFoundError(CollectionsError):
    """Advance does not exist"""

    def __init__(self, advance_id: str):
        self.advance_id = advance_id
        super().__init__(f"Advance {advance_id} not found")


class InvalidAdvanceStateError(CollectionsError):
    """Advance status does not allow the requested operation"""

    pass


class InvalidPaymentAmountError(CollectionsError):
    """Payment amount is not positive or exceeds the total due"""

    pass


class InvalidDueDateError(CollectionsError):
    """New due date does not move the current due date forward"""

    pass


class MissingCollectionRuleError(CollectionsError):
    """No collection rule is configured for a computed stage"""

    pass


class ConcurrentModificationError(CollectionsError):
    """A record changed between read and write"""

    pass


class RunInProgressError(CollectionsError):
    """A daily collection run for the same date is already executing"""

    pass
