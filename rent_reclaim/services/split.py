from dataclasses import dataclass

from ..core.config import Settings
from ..core.constants import BPS_DENOMINATOR
from ..core.errors import SplitInvariantError


@dataclass(frozen=True, slots=True)
class SplitPolicy:
    """Revenue split knobs. Shares are basis points, the subsidy is lamports."""
    owner_share_bps: int = 6500
    subsidized_owner_share_bps: int = 7500
    referral_share_bps: int = 3000
    charity_subsidy_lamports: int = 5000

    @classmethod
    def from_settings(cls, settings: Settings) -> "SplitPolicy":
        return cls(
            owner_share_bps=settings.owner_share_bps,
            subsidized_owner_share_bps=settings.subsidized_owner_share_bps,
            referral_share_bps=settings.referral_share_bps,
            charity_subsidy_lamports=settings.charity_subsidy_lamports,
        )


@dataclass(frozen=True, slots=True)
class RevenueSplit:
    total_reclaimed: int
    owner_share_bps: int
    owner_share: int
    treasury_remainder: int
    charity_subsidy: int
    referral_share: int


def _floor_bps(amount: int, bps: int) -> int:
    return amount * bps // BPS_DENOMINATOR


def split_revenue(
    total_reclaimed: int,
    owner_native_balance: int,
    referral_eligible: bool = False,
    policy: SplitPolicy = SplitPolicy(),
) -> RevenueSplit:
    """
    Divide reclaimed rent between owner, treasury and referral.

    An owner with an empty wallet gets the larger share, minus the subsidy the
    operator advanced to cover fees; the subsidy goes back to the treasury.
    The referral takes its cut of what is left for the treasury, and only when
    the referral wallet exists and holds lamports. Every division floors, so
    rounding residue always lands in the treasury remainder.
    """
    if total_reclaimed < 0 or owner_native_balance < 0:
        raise ValueError("lamport amounts must be non-negative")

    subsidy = policy.charity_subsidy_lamports if owner_native_balance == 0 else 0
    share_bps = policy.subsidized_owner_share_bps if subsidy else policy.owner_share_bps

    owner_share = _floor_bps(total_reclaimed, share_bps)
    remainder = total_reclaimed - owner_share

    if subsidy:
        owner_share -= subsidy
        remainder += subsidy

    referral_share = 0
    if referral_eligible:
        referral_share = _floor_bps(remainder, policy.referral_share_bps)
        remainder -= referral_share

    if owner_share + remainder + referral_share != total_reclaimed:
        raise SplitInvariantError(
            f"split of {total_reclaimed} does not balance: "
            f"owner={owner_share} treasury={remainder} referral={referral_share}"
        )

    return RevenueSplit(
        total_reclaimed=total_reclaimed,
        owner_share_bps=share_bps,
        owner_share=owner_share,
        treasury_remainder=remainder,
        charity_subsidy=subsidy,
        referral_share=referral_share,
    )
