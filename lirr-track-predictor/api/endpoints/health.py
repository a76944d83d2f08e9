from api.core import GET_DI
from fastapi import APIRouter
from shared_types.shared_types import HealthReport

router = APIRouter()


@router.get("/health")
async def health_check(commons: GET_DI) -> HealthReport:
    return await commons.reporter.health()
