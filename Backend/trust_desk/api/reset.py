from fastapi import APIRouter, Depends

from trust_desk.api.deps import get_desk
from trust_desk.services.desk import TrustDesk

router = APIRouter()


@router.post("/reset")
def reset(desk: TrustDesk = Depends(get_desk)):
    desk.reset()
    return {"success": True}
