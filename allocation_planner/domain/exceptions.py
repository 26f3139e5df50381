"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class BankAPIError(DomainException):
    """Banking provider returned an error or is unavailable"""

    pass


class InvalidTransactionDataError(BankAPIError):
    """Provider payload is malformed as a whole (not a single bad record)"""

    pass


class SnapshotNotFoundError(DomainException):
    """No financial snapshot has been computed for the user"""

    pass


class PlanNotFoundError(DomainException):
    """No allocation plan exists for the user"""

    pass


class BucketNotFoundError(DomainException):
    """Edit targets a bucket id that is not in the plan"""

    pass


class AccountLinkError(DomainException):
    """Account cannot be linked to the requested bucket"""

    pass
