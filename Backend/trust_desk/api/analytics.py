from fastapi import APIRouter, Depends

from trust_desk.api.deps import get_desk
from trust_desk.services.desk import TrustDesk

router = APIRouter()


@router.get("/analytics/balance")
def balance_series(desk: TrustDesk = Depends(get_desk)):
    return desk.balance_series()


@router.get("/analytics/categories")
def category_breakdown(desk: TrustDesk = Depends(get_desk)):
    return desk.category_breakdown()


@router.get("/analytics/monthly")
def monthly_trend(desk: TrustDesk = Depends(get_desk)):
    return desk.monthly_trend()


@router.get("/beneficiaries/{name}")
def beneficiary_profile(name: str, desk: TrustDesk = Depends(get_desk)):
    return desk.beneficiary_profile(name)
