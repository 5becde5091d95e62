from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from trust_desk.api.deps import get_desk
from trust_desk.services.desk import TrustDesk

router = APIRouter()


class ParseRequest(BaseModel):
    raw_text: str
    beneficiary: Optional[str] = None
    request_id: Optional[str] = None


@router.post("/parse")
async def parse(req: ParseRequest, desk: TrustDesk = Depends(get_desk)):
    return await desk.parse(req.raw_text, req.beneficiary, req.request_id)


@router.post("/parse/pending")
async def parse_pending(desk: TrustDesk = Depends(get_desk)):
    result = await desk.parse_all_pending()
    return {"succeeded": result.succeeded, "failed": result.failed, "errors": result.errors}
