import logging
from typing import Optional

from api.core import GET_DI
from exceptions import FeedUnavailable, MissingDestination
from fastapi import APIRouter, HTTPException, Query
from pydantic import ValidationError
from redis.exceptions import ConnectionError, TimeoutError
from shared_types.shared_types import LearningStats, PredictionResponse

router = APIRouter(prefix="/api")

logger = logging.getLogger(__name__)


@router.get("/predict")
async def predict_track(
    commons: GET_DI,
    destination: Optional[str] = Query(None, description="Branch destination"),
    train_num: Optional[str] = Query(
        None, alias="trainNum", description="Train number"
    ),
) -> PredictionResponse:
    """
    Rank likely departure tracks for a destination and optional train number.
    """
    try:
        return await commons.predictor.respond(
            destination, train_num, realtime=commons.realtime
        )
    except MissingDestination as e:
        raise HTTPException(status_code=400, detail=str(e))
    except FeedUnavailable as e:
        logger.error("Realtime feed unavailable", exc_info=e)
        raise HTTPException(status_code=502, detail="Failed to fetch track data")
    except (ConnectionError, TimeoutError):
        logger.error("Store connection error generating prediction", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error")
    except ValidationError:
        logger.error("Validation error generating prediction", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error")


@router.get("/stats")
async def get_learning_stats(commons: GET_DI) -> LearningStats:
    return await commons.reporter.report()
