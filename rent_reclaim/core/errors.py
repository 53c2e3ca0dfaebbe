class ReclaimError(Exception):
    """Base class for failures the caller can act on."""

    stage: str = "compose"

    def __init__(self, message: str, *, identifier: str | None = None, stage: str | None = None):
        super().__init__(message)
        self.identifier = identifier
        if stage is not None:
            self.stage = stage

    def to_dict(self) -> dict:
        return {
            "error": type(self).__name__,
            "message": str(self),
            "identifier": self.identifier,
            "stage": self.stage,
        }


class InvalidIdentifier(ReclaimError):
    stage = "validate"

    def __init__(self, value: object, *, stage: str | None = None):
        super().__init__(f"Invalid public key format: {value}", identifier=str(value), stage=stage)


class InvalidCloseRequest(ReclaimError):
    stage = "validate"


class AccountNotFound(ReclaimError):
    stage = "close"

    def __init__(self, account: str):
        super().__init__(f"Account not found for {account}", identifier=account)


class OwnershipMismatch(ReclaimError):
    stage = "burn"

    def __init__(self, owner: str, account: str):
        super().__init__(
            f"Permission denied. User {owner} is not the owner of token account {account}",
            identifier=account,
        )


class MissingAssociatedAccount(ReclaimError):
    stage = "burn"

    def __init__(self, associated: str):
        super().__init__(
            f"Associated token account {associated} doesn't exist. Please create it first.",
            identifier=associated,
        )


class ReferralResolutionFailed(ReclaimError):
    stage = "referral"

    def __init__(self, code: str):
        super().__init__(f"No affiliated wallet found for the referral code: {code}", identifier=code)


class NoValidAccounts(ReclaimError):
    stage = "batch"

    def __init__(self, failed: int):
        super().__init__(f"No valid accounts to process ({failed} failed)")


class SplitInvariantError(RuntimeError):
    """Shares of a split do not add up to the reclaimed total. Always a bug."""


class OperatorKeyError(RuntimeError):
    pass
