from fastapi import Request

from ..services.referral import ReferralDirectory

def get_referrals(request: Request) -> ReferralDirectory:
    """Safe FastAPI dependency to extract the referral directory from app state."""
    return request.app.state.referrals
